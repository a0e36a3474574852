import dataclasses
import functools
import re
import sys
import typing

if sys.version_info >= (3, 11):
    from enum import StrEnum
else:
    from backports.strenum import StrEnum

DEFAULT: typing.Final[str] = 'gfx1030'
"""
Architecture used when none is configured and none can be detected (RDNA2).
"""

PATTERN: typing.Final[re.Pattern[str]] = re.compile(
    r'^gfx(?P<major>[0-9]+)(?P<minor>[0-9a-f])(?P<stepping>[0-9a-f])(?P<features>(?::[a-z0-9_-]+[+-])*)$',
)

class AMDGPUFamily(StrEnum):
    """
    AMD GPU architecture families.
    """
    GCN = 'GCN'
    CDNA = 'CDNA'
    RDNA = 'RDNA'

    @staticmethod
    def from_version(major : int, minor : int, stepping : int) -> "AMDGPUFamily":
        """
        Get the family from the ``gfx`` version triplet.

        See https://llvm.org/docs/AMDGPUUsage.html#processors.
        """
        if major < 9:
            return AMDGPUFamily.GCN
        if major == 9:
            if (minor, stepping) in [(0, 8), (0, 10)] or minor == 4:
                return AMDGPUFamily.CDNA
            return AMDGPUFamily.GCN
        return AMDGPUFamily.RDNA

@functools.total_ordering
@dataclasses.dataclass(frozen = True, slots = True)
class AMDGPUArch:
    """
    AMD GPU architecture, as identified by its ``gfx`` tag.

    The tag encodes a version triplet (``gfx90a`` is 9.0.10) and optionally
    target features (``gfx942:sramecc+:xnack-``).

    References:

    * https://llvm.org/docs/AMDGPUUsage.html#target-features
    """
    major : int
    minor : int
    stepping : int
    features : tuple[str, ...] = ()

    @property
    def family(self) -> AMDGPUFamily:
        return AMDGPUFamily.from_version(self.major, self.minor, self.stepping)

    @property
    def processor(self) -> str:
        """
        >>> from rocbuild.tools.architecture import AMDGPUArch
        >>> AMDGPUArch.from_str('gfx90a:xnack+').processor
        'gfx90a'
        """
        return f'gfx{self.major}{self.minor:x}{self.stepping:x}'

    @property
    def offload_arch(self) -> str:
        """
        Value for ``hipcc --offload-arch=``.

        >>> from rocbuild.tools.architecture import AMDGPUArch
        >>> AMDGPUArch.from_str('gfx942:sramecc+:xnack-').offload_arch
        'gfx942:sramecc+:xnack-'
        """
        return self.processor + ''.join(f':{feature}' for feature in self.features)

    def __str__(self) -> str:
        return self.offload_arch

    def __lt__(self, other : object) -> bool:
        if isinstance(other, AMDGPUArch):
            return (self.major, self.minor, self.stepping) < (other.major, other.minor, other.stepping)
        return NotImplemented

    @staticmethod
    def is_tag(value : str) -> bool:
        return PATTERN.match(value) is not None

    @staticmethod
    def from_str(arch : str) -> 'AMDGPUArch':
        """
        >>> from rocbuild.tools.architecture import AMDGPUArch
        >>> AMDGPUArch.from_str('gfx1030')
        AMDGPUArch(major=10, minor=3, stepping=0, features=())
        >>> AMDGPUArch.from_str('gfx90a').family
        <AMDGPUFamily.CDNA: 'CDNA'>
        """
        if (matched := PATTERN.match(arch.strip())) is None:
            raise ValueError(f'unsupported architecture {arch}')
        return AMDGPUArch(
            major = int(matched.group('major')),
            minor = int(matched.group('minor'), 16),
            stepping = int(matched.group('stepping'), 16),
            features = tuple(f for f in matched.group('features').split(':') if f),
        )
