"""
Locate the ROCm toolchain and the GPU architecture to compile for.

The SDK root is searched in order among:

1. an explicit override,
2. the ``ROCM_PATH``, ``ROCM_ROOT`` and ``HIP_PATH`` environment variables,
3. conventional install locations.

A candidate is only accepted if it holds ``include/hip/hip_runtime.h``.

The architecture is, in order:

1. the ``ROCM_GPU_ARCH`` environment variable, trusted verbatim (empty means unset),
2. the first GPU agent reported by ``rocminfo``,
3. :py:data:`rocbuild.tools.architecture.DEFAULT`, with a warning.

The search only happens in :py:meth:`ToolchainLocator.resolve`, so that callers
may override afterwards and that nothing is spawned before a build starts.
"""
import dataclasses
import logging
import os
import pathlib
import typing

import rich.table

from rocbuild.errors import ConfigurationError
from rocbuild.tools import architecture
from rocbuild.utils import rich_helpers
from rocbuild.utils.detect import GPUDetector
from rocbuild.utils.environment import EnvironmentField

MARKER : typing.Final[pathlib.Path] = pathlib.Path('include') / 'hip' / 'hip_runtime.h'

ENVIRONMENT_VARIABLES : typing.Final[tuple[str, ...]] = ('ROCM_PATH', 'ROCM_ROOT', 'HIP_PATH')

ROOTS : typing.Final[tuple[pathlib.Path, ...]] = (
    pathlib.Path('/opt/rocm'),
    pathlib.Path('/usr'),
    pathlib.Path('/usr/local/rocm'),
)

class Settings:
    """
    Environment overrides for the architecture.
    """
    gpu_arch = EnvironmentField[str](env = 'ROCM_GPU_ARCH', converter = str)

def is_sdk_root(path : pathlib.Path) -> bool:
    return (path / MARKER).is_file()

def candidates(override : pathlib.Path | None = None) -> typing.Generator[pathlib.Path, None, None]:
    """
    Yield SDK root candidates in resolution order.
    """
    if override is not None:
        yield override
    for name in ENVIRONMENT_VARIABLES:
        if value := os.environ.get(name):
            yield pathlib.Path(value)
    yield from ROOTS

def resolve_sdk_root(override : pathlib.Path | None = None) -> pathlib.Path | None:
    """
    First candidate that holds :py:data:`MARKER`, if any.
    """
    for candidate in candidates(override = override):
        if is_sdk_root(candidate):
            logging.debug(f'Found ROCm at {candidate}.')
            return candidate
        logging.debug(f'Rejected ROCm candidate {candidate}.')
    return None

def resolve_gpu_arch() -> str:
    """
    Resolve the architecture tag.

    Raises :py:class:`rocbuild.errors.ProcessSpawnError` if ``rocminfo`` is needed but cannot be started.
    """
    if (arch := Settings().gpu_arch):
        return arch

    if (detected := GPUDetector.first(cache = False)) is not None:
        if architecture.AMDGPUArch.is_tag(detected):
            return detected
        logging.warning(f"Ignoring unrecognized architecture {detected!r} reported by 'rocminfo'.")

    logging.warning(f'Could not detect GPU arch, using default: {architecture.DEFAULT}.')
    return architecture.DEFAULT

@dataclasses.dataclass(frozen = True, slots = True)
class ToolchainConfig(rich_helpers.TableMixin):
    """
    Resolved toolchain. Required before any compilation.
    """
    sdk_root : pathlib.Path
    gpu_arch : str

    @property
    def include_root(self) -> pathlib.Path:
        return self.sdk_root / 'include'

    @property
    def hipcc(self) -> pathlib.Path:
        """
        Device compiler shipped with the SDK, falling back to the one found in ``PATH``.
        """
        if (candidate := self.sdk_root / 'bin' / 'hipcc').is_file():
            return candidate
        return pathlib.Path('hipcc')

    def to_table(self) -> rich.table.Table:
        return rich_helpers.mapping_to_table({
            'ROCm root' : self.sdk_root,
            'include root' : self.include_root,
            'GPU arch' : self.gpu_arch,
        }, title = 'Toolchain')

class ToolchainLocator:
    """
    Describe where the toolchain comes from, and probe for it only in :py:meth:`resolve`.

    Nothing is searched nor spawned on construction, so that configuration errors
    found earlier in a build are reported before any external tool runs, and so
    that callers may override afterwards.
    """
    def __init__(self, *, sdk_root : pathlib.Path | None = None, gpu_arch : str | None = None, detect : bool = False) -> None:
        self.override : pathlib.Path | None = None
        self.sdk_root : pathlib.Path | None = sdk_root
        self.gpu_arch : str | None = gpu_arch
        self.detect = detect
        """Search the environment, the conventional locations and ``rocminfo`` for what is not set."""

    @classmethod
    def locate(cls) -> 'ToolchainLocator':
        return cls(detect = True)

    def set_sdk_root(self, path : str | pathlib.Path) -> None:
        """
        Force the SDK root. It is validated by :py:meth:`resolve`.
        """
        self.override = pathlib.Path(path)

    def set_gpu_arch(self, arch : str) -> None:
        self.gpu_arch = arch

    def resolve(self) -> ToolchainConfig:
        """
        Raises :py:class:`rocbuild.errors.ConfigurationError` if the SDK root is missing or invalid,
        and :py:class:`rocbuild.errors.ProcessSpawnError` if ``rocminfo`` is needed but cannot be started.
        """
        if self.override is not None:
            if not is_sdk_root(self.override):
                raise ConfigurationError(f'{self.override} is not a ROCm installation: {self.override / MARKER} does not exist.')
            sdk_root = self.override
        elif self.sdk_root is not None:
            sdk_root = self.sdk_root
        elif self.detect and (found := resolve_sdk_root()) is not None:
            sdk_root = found
        else:
            raise ConfigurationError(
                'Could not find ROCm in standard locations. Set it manually using Builder().rocm_root(...) '
                f"or set {', '.join(ENVIRONMENT_VARIABLES)} environment variable.",
            )

        if (gpu_arch := self.gpu_arch) is None:
            if not self.detect:
                raise ConfigurationError('Could not detect GPU architecture. Set ROCM_GPU_ARCH environment variable.')
            gpu_arch = resolve_gpu_arch()

        return ToolchainConfig(sdk_root = sdk_root, gpu_arch = gpu_arch)
