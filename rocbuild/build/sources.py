import dataclasses
import glob
import logging
import pathlib
import typing

from rocbuild.errors import ConfigurationError

KERNEL_SUFFIX : typing.Final[str] = '.hip'
"""Suffix of kernel sources, one compilation unit each."""

HEADER_SUFFIX : typing.Final[str] = '.h'
"""Suffix of include headers."""

def expand(pattern : str) -> list[pathlib.Path]:
    """
    Expand a glob `pattern` into a sorted list of files, at call time.

    ``**`` matches any number of directories. Matching nothing is not an error.
    """
    if not pattern.strip():
        raise ConfigurationError(f'Invalid glob pattern: {pattern!r}')
    return sorted(pathlib.Path(p) for p in glob.glob(pattern, recursive = True) if pathlib.Path(p).is_file())

def validate(paths : typing.Iterable[str | pathlib.Path], *, kind : str) -> list[pathlib.Path]:
    """
    Convert to :py:class:`pathlib.Path` and check that all exist.

    All missing paths are reported at once.
    """
    converted = [pathlib.Path(p) for p in paths]
    if missing := [p for p in converted if not p.exists()]:
        raise ConfigurationError(f"{kind.capitalize()} path does not exist: {', '.join(map(str, missing))}")
    return converted

@dataclasses.dataclass(slots = True)
class SourceSet:
    """
    Kernel sources, include headers and watched dependencies of a build.
    """
    kernels : list[pathlib.Path] = dataclasses.field(default_factory = list)
    """Kernel sources, in discovery order. One artifact per kernel."""

    includes : list[pathlib.Path] = dataclasses.field(default_factory = list)
    """Headers copied into the output directory."""

    watched : list[pathlib.Path] = dataclasses.field(default_factory = list)
    """Dependencies that are not compiled, only reported to the surrounding build system."""

    @classmethod
    def default(cls, root : str | pathlib.Path = 'src') -> 'SourceSet':
        """
        Discover ``**/*.hip`` kernels and ``**/*.h`` headers under `root`.

        Finding nothing is fine, it allows dependency-only configurations.
        """
        root = pathlib.Path(root)
        kernels = sorted(p for p in root.glob(f'**/*{KERNEL_SUFFIX}') if p.is_file())
        includes = sorted(p for p in root.glob(f'**/*{HEADER_SUFFIX}') if p.is_file())
        logging.debug(f'Discovered {len(kernels)} kernel(s) and {len(includes)} header(s) under {root}.')
        return cls(kernels = kernels, includes = includes)

    def set_kernels(self, paths : typing.Iterable[str | pathlib.Path]) -> None:
        self.kernels = validate(paths, kind = 'kernel')

    def set_includes(self, paths : typing.Iterable[str | pathlib.Path]) -> None:
        self.includes = validate(paths, kind = 'include')

    def set_watched(self, paths : typing.Iterable[str | pathlib.Path]) -> None:
        self.watched = validate(paths, kind = 'watch')

    def set_kernels_glob(self, pattern : str) -> None:
        self.kernels = expand(pattern)

    def set_includes_glob(self, pattern : str) -> None:
        self.includes = expand(pattern)

    def set_watched_glob(self, pattern : str) -> None:
        self.watched = expand(pattern)

    @property
    def include_directories(self) -> list[pathlib.Path]:
        """
        Sorted, deduplicated parent directories of the include headers.
        """
        return sorted({p.parent for p in self.includes})

    @property
    def dependencies(self) -> list[pathlib.Path]:
        """
        Every input whose change requires re-running the build.
        """
        return [*self.kernels, *self.includes, *self.watched]
