import dataclasses
import logging
import pathlib
import shlex
import subprocess
import typing

import attrs

from rocbuild.utils.environment import EnvironmentField
from rocbuild.utils.subprocess_helpers import run_captured

ARTIFACT_SUFFIX : typing.Final[str] = '.hsaco'
"""Suffix of the compiled code objects."""

TRANSLATED_SUFFIX : typing.Final[str] = '.hip'
"""Suffix of the translated sibling of a kernel source in the output directory."""

HIPCC_FLAGS : typing.Final[tuple[str, ...]] = ('-O3', '-ffast-math', '-fgpu-rdc')
"""Optimization flags passed to every compilation."""

TRANSLATOR : typing.Final[str] = 'hipify-perl'

class Settings:
    """
    Environment-provided extra compiler flags, shell-split.
    """
    hipcc_flags = EnvironmentField[list[str]](env = 'HIPCC_FLAGS', converter = shlex.split)

def artifact_path(source : pathlib.Path, out_dir : pathlib.Path) -> pathlib.Path:
    """
    Artifact of `source`: its file name with :py:data:`ARTIFACT_SUFFIX`, in `out_dir`.

    >>> import pathlib
    >>> from rocbuild.build.task import artifact_path
    >>> artifact_path(pathlib.Path('src/kernels/saxpy.hip'), pathlib.Path('/build'))
    PosixPath('/build/saxpy.hsaco')
    """
    return out_dir / source.with_suffix(ARTIFACT_SUFFIX).name

def translate(*,
    source : pathlib.Path,
    out_dir : pathlib.Path,
    executable : str | pathlib.Path = TRANSLATOR,
) -> pathlib.Path | None:
    """
    Best-effort translation of `source` to HIP, written next to the artifacts.

    Returns the translated file, or `None` if the translation is not available,
    in which case the caller falls back to `source`. Never raises for a failing
    translator.
    """
    target = out_dir / source.with_suffix(TRANSLATED_SUFFIX).name

    if target.resolve() == source.resolve():
        return None

    try:
        with target.open('w', encoding = 'utf-8') as fout:
            completed = subprocess.run(
                args = (executable, source),
                stdout = fout, stderr = subprocess.PIPE,
                text = True, errors = 'replace', check = False,
            )
    except OSError as error:
        logging.debug(f'Translation of {source} is not available: {error}')
        target.unlink(missing_ok = True)
        return None

    if completed.returncode != 0 or target.stat().st_size == 0:
        logging.debug(f'Translation of {source} failed with exit status {completed.returncode}: {completed.stderr}')
        target.unlink(missing_ok = True)
        return None

    return target

@dataclasses.dataclass(frozen = True, slots = True)
class TaskResult:
    """
    Outcome of one compilation, kept until validation.
    """
    source : pathlib.Path
    command : str
    """Command line, for diagnostics."""
    returncode : int
    stdout : str
    stderr : str

    @property
    def success(self) -> bool:
        return self.returncode == 0

@attrs.define(frozen = True, slots = True, kw_only = True)
class BuildTask:
    """
    Compile one kernel source into one code object.
    """
    source : pathlib.Path
    """Kernel source."""
    output : pathlib.Path
    """Artifact, see :py:func:`artifact_path`."""
    gpu_arch : str
    """Target of ``--offload-arch``."""
    hipcc : str | pathlib.Path = 'hipcc'
    """Device compiler."""
    extra_args : tuple[str, ...] = ()
    """User-supplied flags, passed after :py:data:`HIPCC_FLAGS`."""
    include_directories : tuple[pathlib.Path, ...] = ()
    """Include directories, the SDK one last."""
    translated_source : pathlib.Path | None = None
    """Translated sibling of :py:attr:`source`, if any."""

    @property
    def selected_source(self) -> pathlib.Path:
        return self.translated_source if self.translated_source is not None else self.source

    @property
    def cmd(self) -> tuple[str | pathlib.Path, ...]:
        return (
            self.hipcc,
            f'--offload-arch={self.gpu_arch}',
            '-c',
            '-o', self.output,
            *HIPCC_FLAGS,
            *self.extra_args,
            *(f'-I{directory}' for directory in self.include_directories),
            self.selected_source,
        )

    @property
    def command_line(self) -> str:
        return shlex.join(str(x) for x in self.cmd)

    def run(self, *, translator : str | pathlib.Path | None = TRANSLATOR) -> TaskResult:
        """
        Translate (best effort, unless `translator` is `None`), then compile.

        Raises :py:class:`rocbuild.errors.ProcessSpawnError` if the compiler cannot be started.
        """
        task = self
        if translator is not None and task.translated_source is None:
            task = attrs.evolve(task, translated_source = translate(
                source = self.source, out_dir = self.output.parent, executable = translator,
            ))

        logging.debug(f'Compiling {task.source} with {task.command_line}.')

        completed = run_captured(args = task.cmd)

        return TaskResult(
            source = task.source,
            command = task.command_line,
            returncode = completed.returncode,
            stdout = completed.stdout,
            stderr = completed.stderr,
        )
