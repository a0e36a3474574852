import pathlib
import typing

from rocbuild.build.task import ARTIFACT_SUFFIX

def scan(out_dir : pathlib.Path) -> list[pathlib.Path]:
    """
    Code objects already present in `out_dir` (recursively), across runs.

    Returns a sorted list, empty if `out_dir` does not exist.
    """
    return sorted(p for p in out_dir.glob(f'**/*{ARTIFACT_SUFFIX}') if p.is_file())

def pair(
    kernels : typing.Sequence[pathlib.Path],
    artifacts : typing.Iterable[pathlib.Path],
) -> list[tuple[pathlib.Path, pathlib.Path | None]]:
    """
    Match each kernel, in order, with the artifact sharing its file stem.

    Kernels without an artifact are paired with `None`. If several artifacts
    share a stem, the least nested one wins.
    """
    by_stem = {artifact.stem: artifact for artifact in sorted(artifacts, key = lambda p: len(p.parts), reverse = True)}
    return [(kernel, by_stem.get(kernel.stem)) for kernel in kernels]
