import pathlib
import typing

import pytest

from rocbuild.tools.toolchain import MARKER, ToolchainLocator
from rocbuild.utils.detect import GPUDetector

from tests import fakes


@pytest.fixture
def rocm_root(tmp_path) -> pathlib.Path:
    """
    A fake ROCm installation whose ``hipcc`` copies the source into the artifact.
    """
    root = tmp_path / 'rocm'
    (root / MARKER).parent.mkdir(parents = True)
    (root / MARKER).touch()
    fakes.write_script(root / 'bin' / 'hipcc', fakes.HIPCC)
    return root

@pytest.fixture
def hipcc_log(tmp_path, monkeypatch) -> pathlib.Path:
    """
    File in which the fake ``hipcc`` logs one line per invocation.
    """
    log = tmp_path / 'hipcc.log'
    monkeypatch.setenv('FAKE_HIPCC_LOG', str(log))
    return log

@pytest.fixture
def toolchain(rocm_root) -> ToolchainLocator:
    return ToolchainLocator(sdk_root = rocm_root, gpu_arch = 'gfx1030')

@pytest.fixture(autouse = True)
def isolated_environment(monkeypatch) -> typing.Generator[None, None, None]:
    """
    Keep the host environment and the detection cache out of the tests.
    """
    for name in ('ROCM_PATH', 'ROCM_ROOT', 'HIP_PATH', 'ROCM_GPU_ARCH', 'ROCBUILD_NUM_THREADS', 'OUT_DIR', 'HIPCC_FLAGS', 'FAKE_HIPCC_FAIL', 'FAKE_HIPCC_LOG'):
        monkeypatch.delenv(name, raising = False)
    GPUDetector.clear_cache()
    yield
    GPUDetector.clear_cache()
