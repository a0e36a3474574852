import logging
import pathlib
import unittest.mock

import pytest

from rocbuild.errors import ConfigurationError, ProcessSpawnError
from rocbuild.tools import architecture, toolchain
from rocbuild.tools.toolchain import MARKER, ToolchainConfig, ToolchainLocator

from tests import fakes


def make_root(path : pathlib.Path) -> pathlib.Path:
    (path / MARKER).parent.mkdir(parents = True)
    (path / MARKER).touch()
    return path

class TestResolveSdkRoot:
    """
    Tests for :py:func:`rocbuild.tools.toolchain.resolve_sdk_root`.
    """
    def test_override_first(self, tmp_path, monkeypatch) -> None:
        override = make_root(tmp_path / 'override')
        monkeypatch.setenv('ROCM_PATH', str(make_root(tmp_path / 'env')))

        assert toolchain.resolve_sdk_root(override = override) == override

    def test_environment_order(self, tmp_path, monkeypatch) -> None:
        """
        ``ROCM_PATH`` wins over ``HIP_PATH``.
        """
        monkeypatch.setenv('HIP_PATH', str(make_root(tmp_path / 'hip')))
        monkeypatch.setenv('ROCM_PATH', str(make_root(tmp_path / 'rocm')))

        assert toolchain.resolve_sdk_root() == tmp_path / 'rocm'

    def test_marker_required(self, tmp_path, monkeypatch) -> None:
        """
        A directory that merely exists is rejected.
        """
        (tmp_path / 'empty').mkdir()
        monkeypatch.setenv('ROCM_PATH', str(tmp_path / 'empty'))
        monkeypatch.setenv('ROCM_ROOT', str(make_root(tmp_path / 'real')))

        assert toolchain.resolve_sdk_root() == tmp_path / 'real'

    def test_conventional_locations(self, tmp_path, monkeypatch) -> None:
        monkeypatch.setattr(toolchain, 'ROOTS', (tmp_path / 'missing', make_root(tmp_path / 'usr-local-rocm')))

        assert toolchain.resolve_sdk_root() == tmp_path / 'usr-local-rocm'

    def test_not_found(self, tmp_path, monkeypatch) -> None:
        monkeypatch.setattr(toolchain, 'ROOTS', (tmp_path / 'missing',))

        assert toolchain.resolve_sdk_root() is None

class TestResolveGpuArch:
    """
    Tests for :py:func:`rocbuild.tools.toolchain.resolve_gpu_arch`.
    """
    def test_environment_verbatim(self, monkeypatch) -> None:
        """
        The override is trusted, even if it is not a recognized tag.
        """
        monkeypatch.setenv('ROCM_GPU_ARCH', 'gfx9-generic')

        with unittest.mock.patch('subprocess.Popen') as process:
            assert toolchain.resolve_gpu_arch() == 'gfx9-generic'
            process.assert_not_called()

    def test_environment_not_stripped(self, monkeypatch) -> None:
        monkeypatch.setenv('ROCM_GPU_ARCH', ' gfx90a:xnack+ ')

        with unittest.mock.patch('subprocess.Popen') as process:
            assert toolchain.resolve_gpu_arch() == ' gfx90a:xnack+ '
            process.assert_not_called()

    def test_environment_empty(self, tmp_path, monkeypatch) -> None:
        """
        An empty override counts as unset.
        """
        monkeypatch.setenv('ROCM_GPU_ARCH', '')
        fakes.write_script(tmp_path / 'bin' / 'rocminfo', fakes.ROCMINFO)
        monkeypatch.setenv('PATH', str(tmp_path / 'bin'), prepend = ':')

        assert toolchain.resolve_gpu_arch() == 'gfx1100'

    def test_rocminfo(self, tmp_path, monkeypatch) -> None:
        fakes.write_script(tmp_path / 'bin' / 'rocminfo', fakes.ROCMINFO)
        monkeypatch.setenv('PATH', str(tmp_path / 'bin'), prepend = ':')

        assert toolchain.resolve_gpu_arch() == 'gfx1100'

    def test_fallback(self, tmp_path, monkeypatch, caplog) -> None:
        """
        No agent found: use the default, with a warning.
        """
        fakes.write_script(tmp_path / 'bin' / 'rocminfo', 'print("  Name:   AMD EPYC 9654")\n')
        monkeypatch.setenv('PATH', str(tmp_path / 'bin'), prepend = ':')

        with caplog.at_level(logging.WARNING):
            assert toolchain.resolve_gpu_arch() == architecture.DEFAULT

        assert f'Could not detect GPU arch, using default: {architecture.DEFAULT}' in caplog.text

    def test_rocminfo_missing(self, tmp_path, monkeypatch) -> None:
        monkeypatch.setenv('PATH', str(tmp_path / 'empty-bin'))

        with pytest.raises(ProcessSpawnError, match = 'rocminfo'):
            toolchain.resolve_gpu_arch()

class TestToolchainLocator:
    """
    Tests for :py:class:`rocbuild.tools.toolchain.ToolchainLocator`.
    """
    def test_locate_deferred(self, tmp_path, monkeypatch) -> None:
        """
        Nothing is searched before :py:meth:`rocbuild.tools.toolchain.ToolchainLocator.resolve`.
        """
        monkeypatch.setattr(toolchain, 'ROOTS', ())
        monkeypatch.setenv('PATH', str(tmp_path / 'empty-bin'))

        with unittest.mock.patch('subprocess.Popen') as process:
            locator = ToolchainLocator.locate()
            process.assert_not_called()

        with pytest.raises(ConfigurationError, match = 'Could not find ROCm in standard locations'):
            locator.resolve()

        locator.set_sdk_root(make_root(tmp_path / 'rocm'))

        with pytest.raises(ProcessSpawnError, match = 'rocminfo'):
            locator.resolve()

        locator.set_gpu_arch('gfx90a')

        assert locator.resolve() == ToolchainConfig(sdk_root = tmp_path / 'rocm', gpu_arch = 'gfx90a')

    def test_locate_from_environment(self, rocm_root, monkeypatch) -> None:
        monkeypatch.setenv('ROCM_PATH', str(rocm_root))
        monkeypatch.setenv('ROCM_GPU_ARCH', 'gfx942')

        assert ToolchainLocator.locate().resolve() == ToolchainConfig(sdk_root = rocm_root, gpu_arch = 'gfx942')

    def test_rocminfo_not_utf8(self, rocm_root, tmp_path, monkeypatch) -> None:
        """
        Invalid bytes in the ``rocminfo`` output do not hide the agents.
        """
        fakes.write_script(tmp_path / 'bin' / 'rocminfo', 'import sys\nsys.stdout.buffer.write(b"Agent \\xff\\n  Name: gfx90a\\n")\n')
        monkeypatch.setenv('PATH', str(tmp_path / 'bin'), prepend = ':')

        assert ToolchainLocator(sdk_root = rocm_root, detect = True).resolve().gpu_arch == 'gfx90a'

    def test_no_detection(self, rocm_root) -> None:
        with pytest.raises(ConfigurationError, match = 'Could not detect GPU architecture'):
            ToolchainLocator(sdk_root = rocm_root).resolve()

    def test_invalid_override(self, tmp_path) -> None:
        locator = ToolchainLocator(sdk_root = make_root(tmp_path / 'rocm'), gpu_arch = 'gfx1030')
        locator.set_sdk_root(tmp_path)

        with pytest.raises(ConfigurationError, match = 'is not a ROCm installation'):
            locator.resolve()

    def test_config(self, rocm_root) -> None:
        config = ToolchainLocator(sdk_root = rocm_root, gpu_arch = 'gfx1030').resolve()

        assert config.include_root == rocm_root / 'include'
        assert config.hipcc == rocm_root / 'bin' / 'hipcc'
        assert 'gfx1030' in str(config)

    def test_hipcc_from_path(self, tmp_path) -> None:
        config = ToolchainConfig(sdk_root = make_root(tmp_path / 'rocm'), gpu_arch = 'gfx1030')

        assert config.hipcc == pathlib.Path('hipcc')
