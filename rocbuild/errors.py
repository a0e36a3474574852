"""
Errors raised while configuring or running a kernel build.

Every error aborts the whole build invocation, there is no retry.
"""
import pathlib
import typing


class RocBuildError(RuntimeError):
    """
    Base class of all errors raised by :py:mod:`rocbuild`.
    """

class ConfigurationError(RocBuildError):
    """
    The build is misconfigured (toolchain, worker count, paths, constant names).

    Always raised before any compilation starts.
    """

class ProcessSpawnError(RocBuildError):
    """
    An external tool (``hipcc``, ``rocminfo``) could not be started at all.
    """
    def __init__(self, executable: str | pathlib.Path, reason: OSError) -> None:
        self.executable = executable
        self.reason = reason
        super().__init__(
            f"Failed to spawn {str(executable)!r}. Ensure that you have ROCm installed "
            f"and that {pathlib.Path(executable).name!r} is in your PATH: {reason}",
        )

class CompilationError(RocBuildError):
    """
    The device compiler exited with a nonzero status for a kernel.
    """
    def __init__(self, *,
        kernel_path: pathlib.Path,
        command: str,
        returncode: int,
        stdout: str,
        stderr: str,
    ) -> None:
        self.kernel_path = kernel_path
        self.command = command
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        super().__init__('\n'.join((
            f'hipcc error (exit status {returncode}) while compiling {str(kernel_path)!r}:',
            '',
            f'# CLI {command}',
            '',
            '# stdout',
            stdout,
            '',
            '# stderr',
            stderr,
        )))

class FileOperationError(RocBuildError):
    """
    An I/O operation on a build file failed.
    """
    ACTION: typing.ClassVar[str] = 'access'

    def __init__(self, path: pathlib.Path, reason: OSError) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f'Failed to {self.ACTION} {path}: {reason}')

class IncludeCopyError(FileOperationError):
    """
    An include header could not be copied into the output directory.
    """
    ACTION: typing.ClassVar[str] = 'copy include header'

class BindingsWriteError(FileOperationError):
    """
    The generated bindings (or their dependency file) could not be written.
    """
    ACTION: typing.ClassVar[str] = 'write'

class ToolOutputError(RocBuildError):
    """
    An external tool ran, but failed or printed something that cannot be used.
    """
