import pathlib
import shlex

import pytest

from rocbuild.build.task import BuildTask, Settings, artifact_path, translate
from rocbuild.errors import ProcessSpawnError

from tests import fakes


@pytest.fixture
def kernel(tmp_path) -> pathlib.Path:
    source = tmp_path / 'src' / 'saxpy.hip'
    source.parent.mkdir()
    source.write_text('#include <cuda_runtime.h>\n__global__ void saxpy() {}\n')
    return source

@pytest.fixture
def out_dir(tmp_path) -> pathlib.Path:
    out_dir = tmp_path / 'out'
    out_dir.mkdir()
    return out_dir

class TestArtifactPath:
    """
    Tests for :py:func:`rocbuild.build.task.artifact_path`.
    """
    def test_nested_source_flattened(self) -> None:
        assert artifact_path(pathlib.Path('src/a/b/reduce.sum.hip'), pathlib.Path('out')) == pathlib.Path('out/reduce.sum.hsaco')

class TestTranslate:
    """
    Tests for :py:func:`rocbuild.build.task.translate`.
    """
    def test_success(self, kernel, out_dir, tmp_path) -> None:
        hipify = fakes.write_script(tmp_path / 'bin' / 'hipify-perl', fakes.HIPIFY)

        translated = translate(source = kernel, out_dir = out_dir, executable = hipify)

        assert translated == out_dir / 'saxpy.hip'
        assert translated.read_text() == '// hipified\n#include <hip_runtime.h>\n__global__ void saxpy() {}\n'

    def test_not_available(self, kernel, out_dir, tmp_path) -> None:
        assert translate(source = kernel, out_dir = out_dir, executable = tmp_path / 'missing') is None
        assert not (out_dir / 'saxpy.hip').exists()

    def test_failure_removes_partial_output(self, kernel, out_dir, tmp_path) -> None:
        hipify = fakes.write_script(tmp_path / 'bin' / 'hipify-perl', fakes.HIPIFY_FAILING)

        assert translate(source = kernel, out_dir = out_dir, executable = hipify) is None
        assert not (out_dir / 'saxpy.hip').exists()

    def test_empty_output(self, kernel, out_dir, tmp_path) -> None:
        hipify = fakes.write_script(tmp_path / 'bin' / 'hipify-perl', 'pass\n')

        assert translate(source = kernel, out_dir = out_dir, executable = hipify) is None
        assert not (out_dir / 'saxpy.hip').exists()

    def test_source_in_out_dir(self, kernel, tmp_path) -> None:
        """
        The source is never overwritten by its own translation.
        """
        hipify = fakes.write_script(tmp_path / 'bin' / 'hipify-perl', fakes.HIPIFY)
        content = kernel.read_text()

        assert translate(source = kernel, out_dir = kernel.parent, executable = hipify) is None
        assert kernel.read_text() == content

class TestBuildTask:
    """
    Tests for :py:class:`rocbuild.build.task.BuildTask`.
    """
    def test_cmd(self) -> None:
        task = BuildTask(
            source = pathlib.Path('src/saxpy.hip'),
            output = pathlib.Path('out/saxpy.hsaco'),
            gpu_arch = 'gfx90a',
            hipcc = pathlib.Path('/opt/rocm/bin/hipcc'),
            extra_args = ('-DN=256', '-g'),
            include_directories = (pathlib.Path('src'), pathlib.Path('/opt/rocm/include')),
        )

        assert task.cmd == (
            pathlib.Path('/opt/rocm/bin/hipcc'),
            '--offload-arch=gfx90a',
            '-c',
            '-o', pathlib.Path('out/saxpy.hsaco'),
            '-O3', '-ffast-math', '-fgpu-rdc',
            '-DN=256', '-g',
            '-Isrc', '-I/opt/rocm/include',
            pathlib.Path('src/saxpy.hip'),
        )
        assert shlex.split(task.command_line)[-1] == 'src/saxpy.hip'

    def test_translated_source_selected(self) -> None:
        task = BuildTask(
            source = pathlib.Path('src/saxpy.hip'),
            output = pathlib.Path('out/saxpy.hsaco'),
            gpu_arch = 'gfx1030',
            translated_source = pathlib.Path('out/saxpy.hip'),
        )

        assert task.cmd[-1] == pathlib.Path('out/saxpy.hip')

    def test_run(self, kernel, out_dir, rocm_root, hipcc_log) -> None:
        task = BuildTask(source = kernel, output = out_dir / 'saxpy.hsaco', gpu_arch = 'gfx1030', hipcc = rocm_root / 'bin' / 'hipcc')

        result = task.run(translator = None)

        assert result.success
        assert result.source == kernel
        assert (out_dir / 'saxpy.hsaco').read_bytes() == b'HSACO:' + kernel.read_bytes()
        assert hipcc_log.read_text().split() == [str(x) for x in task.cmd[1:]]

    def test_run_translated(self, kernel, out_dir, rocm_root, tmp_path) -> None:
        """
        The translated sibling is compiled, the result still refers to the original source.
        """
        hipify = fakes.write_script(tmp_path / 'bin' / 'hipify-perl', fakes.HIPIFY)
        task = BuildTask(source = kernel, output = out_dir / 'saxpy.hsaco', gpu_arch = 'gfx1030', hipcc = rocm_root / 'bin' / 'hipcc')

        result = task.run(translator = hipify)

        assert result.success
        assert result.source == kernel
        assert str(out_dir / 'saxpy.hip') in result.command
        assert (out_dir / 'saxpy.hsaco').read_text().startswith('HSACO:// hipified')

    def test_run_missing_translator(self, kernel, out_dir, rocm_root, tmp_path) -> None:
        task = BuildTask(source = kernel, output = out_dir / 'saxpy.hsaco', gpu_arch = 'gfx1030', hipcc = rocm_root / 'bin' / 'hipcc')

        result = task.run(translator = tmp_path / 'no-hipify-perl')

        assert result.success
        assert result.command.endswith(str(kernel))

    def test_run_failure(self, kernel, out_dir, rocm_root, monkeypatch) -> None:
        monkeypatch.setenv('FAKE_HIPCC_FAIL', 'saxpy')
        task = BuildTask(source = kernel, output = out_dir / 'saxpy.hsaco', gpu_arch = 'gfx1030', hipcc = rocm_root / 'bin' / 'hipcc')

        result = task.run(translator = None)

        assert not result.success
        assert result.returncode == 1
        assert result.stdout == f'compiling {kernel}\n'
        assert 'error: unknown type name' in result.stderr
        assert not (out_dir / 'saxpy.hsaco').exists()

    def test_run_hipcc_missing(self, kernel, out_dir, tmp_path) -> None:
        task = BuildTask(source = kernel, output = out_dir / 'saxpy.hsaco', gpu_arch = 'gfx1030', hipcc = tmp_path / 'no-hipcc')

        with pytest.raises(ProcessSpawnError, match = 'no-hipcc'):
            task.run(translator = None)

class TestSettings:
    """
    Tests for :py:class:`rocbuild.build.task.Settings`.
    """
    def test_hipcc_flags(self, monkeypatch) -> None:
        assert Settings().hipcc_flags is None

        monkeypatch.setenv('HIPCC_FLAGS', "-DNAME='a b' -Wall")

        assert Settings().hipcc_flags == ['-DNAME=a b', '-Wall']

class TestNotUtf8:
    """
    Tests for :py:mod:`rocbuild.build.task` with tools whose output is not valid UTF-8.
    """
    def test_translate(self, kernel, out_dir, tmp_path) -> None:
        """
        A translator failing with invalid bytes on `stderr` is a failed translation.
        """
        hipify = fakes.write_script(tmp_path / 'bin' / 'hipify-perl', 'import sys\nprint("// partial")\nsys.stderr.buffer.write(b"\\xff\\xfe warning")\nsys.exit(2)\n')

        assert translate(source = kernel, out_dir = out_dir, executable = hipify) is None
        assert not (out_dir / 'saxpy.hip').exists()

    def test_run(self, kernel, out_dir, tmp_path) -> None:
        hipcc = fakes.write_script(tmp_path / 'bin' / 'hipcc', fakes.HIPCC_NOT_UTF8)
        task = BuildTask(source = kernel, output = out_dir / 'saxpy.hsaco', gpu_arch = 'gfx1030', hipcc = hipcc)

        result = task.run(translator = None)

        assert result.returncode == 1
        assert result.stdout.startswith('compiling caf')
        assert result.stderr.startswith('error: bad char ')
