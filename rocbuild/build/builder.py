"""
Configure and run a kernel build.

Typical use, from the build step of a host project::

    from rocbuild.build.builder import Builder

    bindings = Builder(out_dir = 'build/kernels').kernel_paths_glob('src/**/*.hip').build()
    bindings.write('build/kernels/kernels.py')

:py:meth:`Builder.build` compiles, in parallel, every kernel whose artifact is
missing or older than its source. All compilations run to completion before
any result is validated, so a failing kernel does not cancel the others; the
first failure (in kernel order) is then raised with its full diagnostics.
"""
import concurrent.futures
import dataclasses
import logging
import os
import pathlib
import shutil
import sys
import types
import typing

import psutil
import rich.table

from rocbuild.build import artifacts
from rocbuild.build.bindings import Bindings, check_unique
from rocbuild.build.sources import SourceSet
from rocbuild.build.specialize import ElementType, specialize
from rocbuild.build.staleness import is_stale
from rocbuild.build.task import TRANSLATOR, BuildTask, Settings as TaskSettings, TaskResult, artifact_path
from rocbuild.errors import CompilationError, ConfigurationError, IncludeCopyError
from rocbuild.tools.toolchain import ToolchainConfig, ToolchainLocator
from rocbuild.utils import rich_helpers
from rocbuild.utils.environment import EnvironmentField, positive_int

if sys.version_info >= (3, 11):
    from typing import Self
else:
    from typing_extensions import Self

T = typing.TypeVar('T')
R = typing.TypeVar('R')

class Settings:
    """
    Environment overrides for the build.
    """
    num_threads = EnvironmentField[int](env = 'ROCBUILD_NUM_THREADS', converter = positive_int)
    out_dir = EnvironmentField[pathlib.Path](env = 'OUT_DIR', converter = pathlib.Path)

def default_num_workers() -> int:
    """
    Number of physical cores, or ``ROCBUILD_NUM_THREADS`` if set.

    Raises :py:class:`rocbuild.errors.ConfigurationError` if ``ROCBUILD_NUM_THREADS`` is not a positive integer.
    """
    if (value := Settings().num_threads) is not None:
        return value
    return psutil.cpu_count(logical = False) or os.cpu_count() or 1

class WorkerPool:
    """
    Bounded pool of threads, each running one task at a time to completion.

    Workers spend their time blocked on child processes.
    A pool is created per build and shut down when leaving the context.
    """
    def __init__(self, num_workers : int) -> None:
        if num_workers < 1:
            raise ConfigurationError(f'The number of workers must be positive, got {num_workers}.')
        self.num_workers = num_workers
        self.executor : concurrent.futures.ThreadPoolExecutor | None = None

    def __enter__(self) -> Self:
        self.executor = concurrent.futures.ThreadPoolExecutor(max_workers = self.num_workers, thread_name_prefix = 'rocbuild')
        return self

    def __exit__(self, exc_type : type[BaseException] | None, exc_value : BaseException | None, traceback : types.TracebackType | None) -> None:
        assert self.executor is not None
        self.executor.shutdown(wait = True, cancel_futures = exc_type is not None)
        self.executor = None

    def map(self, function : typing.Callable[[T], R], items : typing.Iterable[T]) -> list[R]:
        """
        Run `function` on all `items` and wait for all of them.

        Results are in the order of `items`. A call that raises aborts the map:
        calls not started yet are cancelled and the exception is re-raised.
        """
        assert self.executor is not None, 'WorkerPool must be used as a context manager.'
        futures = [self.executor.submit(function, item) for item in items]
        done, _ = concurrent.futures.wait(futures, return_when = concurrent.futures.FIRST_EXCEPTION)
        for future in futures:
            if future in done and (error := future.exception()) is not None:
                for pending in futures:
                    pending.cancel()
                raise error
        return [future.result() for future in futures]

@dataclasses.dataclass(frozen = True, slots = True)
class BuildReport(rich_helpers.TableMixin):
    """
    What a build did, for display.
    """
    compiled : tuple[pathlib.Path, ...]
    up_to_date : tuple[pathlib.Path, ...]

    def to_table(self) -> rich.table.Table:
        rt = rich.table.Table(title = 'Kernels')
        rt.add_column('Kernel')
        rt.add_column('Status')
        for kernel in self.compiled:
            rt.add_row(str(kernel), 'compiled')
        for kernel in self.up_to_date:
            rt.add_row(str(kernel), 'up to date')
        return rt

class Builder:
    """
    Configuration of a kernel build.

    Kernels and headers default to ``src/**/*.hip`` and ``src/**/*.h``.
    The toolchain is searched by :py:meth:`build`, after the worker count is
    validated, so an invalid configuration fails before any process is spawned.
    """
    def __init__(self, *,
        out_dir : str | pathlib.Path | None = None,
        sources : SourceSet | None = None,
        toolchain : ToolchainLocator | None = None,
        verbose : bool = False,
    ) -> None:
        if out_dir is None:
            if (out_dir := Settings().out_dir) is None:
                logging.warning('OUT_DIR environment variable not set. Using current directory.')
                out_dir = pathlib.Path('.')

        self.out_dir = pathlib.Path(out_dir)
        self.sources = sources if sources is not None else SourceSet.default()
        self.toolchain = toolchain if toolchain is not None else ToolchainLocator.locate()
        self.extra_args : list[str] = []
        self.translator : str | pathlib.Path | None = TRANSLATOR
        self.verbose = verbose
        self.templates : dict[pathlib.Path, pathlib.Path] = {}
        """Specialized compilation unit to the template it includes."""
        self.report : BuildReport | None = None

    def kernel_paths(self, paths : typing.Iterable[str | pathlib.Path]) -> Self:
        """
        Replace the kernels. All must exist.
        """
        self.sources.set_kernels(paths)
        return self

    def kernel_paths_glob(self, pattern : str) -> Self:
        self.sources.set_kernels_glob(pattern)
        return self

    def include_paths(self, paths : typing.Iterable[str | pathlib.Path]) -> Self:
        """
        Replace the include headers. All must exist.
        """
        self.sources.set_includes(paths)
        return self

    def include_paths_glob(self, pattern : str) -> Self:
        self.sources.set_includes_glob(pattern)
        return self

    def watch(self, paths : typing.Iterable[str | pathlib.Path]) -> Self:
        """
        Replace the paths the kernels depend on but that are not compiled. All must exist.
        """
        self.sources.set_watched(paths)
        return self

    def watch_glob(self, pattern : str) -> Self:
        self.sources.set_watched_glob(pattern)
        return self

    def arg(self, arg : str) -> Self:
        """
        Add an extra ``hipcc`` argument.
        """
        self.extra_args.append(arg)
        return self

    def rocm_root(self, path : str | pathlib.Path) -> Self:
        """
        Force the ROCm root.
        """
        self.toolchain.set_sdk_root(path)
        return self

    def gpu_arch(self, arch : str) -> Self:
        """
        Force the architecture, bypassing detection.
        """
        self.toolchain.set_gpu_arch(arch)
        return self

    def translate_with(self, translator : str | pathlib.Path | None) -> Self:
        """
        Use `translator` instead of ``hipify-perl``, or disable translation with `None`.
        """
        self.translator = translator
        return self

    def specializations(self, template : str | pathlib.Path, element_types : typing.Iterable[ElementType | str]) -> Self:
        """
        Append one kernel per element type, generated from `template`.
        """
        template = pathlib.Path(template)
        if not template.is_file():
            raise ConfigurationError(f'Kernel template does not exist: {template}')
        try:
            units = specialize(template = template, element_types = element_types, out_dir = self.out_dir / 'specializations')
        except ValueError as error:
            raise ConfigurationError(f'Unsupported element type for {template}: {error}') from error
        self.templates.update((unit, template) for unit in units)
        self.sources.kernels.extend(unit for unit in units if unit not in self.sources.kernels)
        if template not in self.sources.watched:
            self.sources.watched.append(template)
        return self

    def is_stale(self, kernel : pathlib.Path) -> bool:
        artifact = artifact_path(kernel, self.out_dir)
        if is_stale(kernel, artifact):
            return True
        return (template := self.templates.get(kernel)) is not None and is_stale(template, artifact)

    def copy_includes(self) -> None:
        for header in self.sources.includes:
            destination = self.out_dir / header.name
            try:
                shutil.copy2(header, destination)
            except OSError as error:
                raise IncludeCopyError(path = header, reason = error) from error

    def tasks(self, toolchain : ToolchainConfig) -> list[BuildTask]:
        """
        One task per stale kernel, in kernel order.
        """
        extra_args = (*self.extra_args, *(TaskSettings().hipcc_flags or ()))
        include_directories = (*self.sources.include_directories, toolchain.include_root)
        return [
            BuildTask(
                source = kernel,
                output = artifact_path(kernel, self.out_dir),
                gpu_arch = toolchain.gpu_arch,
                hipcc = toolchain.hipcc,
                extra_args = extra_args,
                include_directories = include_directories,
            )
            for kernel in self.sources.kernels if self.is_stale(kernel)
        ]

    def run(self, task : BuildTask) -> TaskResult:
        return task.run(translator = self.translator)

    def build(self) -> Bindings:
        """
        Compile the stale kernels and return the :py:class:`rocbuild.build.bindings.Bindings`.

        Raises:

        * :py:class:`rocbuild.errors.ConfigurationError` before anything is compiled.
        * :py:class:`rocbuild.errors.ProcessSpawnError` if ``hipcc`` cannot be started.
        * :py:class:`rocbuild.errors.CompilationError` for the first kernel that failed, once all compilations completed.
        """
        num_workers = default_num_workers()
        toolchain = self.toolchain.resolve()
        constants = check_unique(self.sources.kernels)

        logging.info(f'Building {len(self.sources.kernels)} kernel(s) for {toolchain.gpu_arch} with {num_workers} worker(s) in {self.out_dir}.')

        self.out_dir.mkdir(parents = True, exist_ok = True)
        self.copy_includes()

        tasks = self.tasks(toolchain = toolchain)

        with WorkerPool(num_workers = num_workers) as pool:
            results = pool.map(self.run, tasks)

        for result in results:
            if not result.success:
                raise CompilationError(
                    kernel_path = result.source,
                    command = result.command,
                    returncode = result.returncode,
                    stdout = result.stdout,
                    stderr = result.stderr,
                )
            if self.verbose:
                logging.info(f'Compiled {result.source} with {result.command}.')

        compiled = tuple(result.source for result in results)
        self.report = BuildReport(
            compiled = compiled,
            up_to_date = tuple(k for k in self.sources.kernels if k not in compiled),
        )

        existing = artifacts.scan(self.out_dir)
        write_needed = bool(results) or len(existing) < len(self.sources.kernels)

        paired = dict(artifacts.pair(self.sources.kernels, existing))

        return Bindings(
            write_needed = write_needed,
            constants = tuple((name, paired.get(kernel) or artifact_path(kernel, self.out_dir)) for name, kernel in constants),
            out_dir = self.out_dir,
            gpu_arch = toolchain.gpu_arch,
            dependencies = tuple(self.sources.dependencies),
        )
