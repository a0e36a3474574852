import argparse
import logging
import subprocess
import typing

import pandas

from rocbuild.tools.architecture import AMDGPUArch
from rocbuild.utils import rich_helpers
from rocbuild.utils.subprocess_helpers import popen_stream


def parse_agents(lines : typing.Iterable[str]) -> list[dict[str, str]]:
    """
    Parse ``rocminfo`` output line-by-line.

    A GPU agent is announced by a line that, once stripped, starts with ``Name:``
    and holds a token starting with ``gfx``. Its ``Marketing Name:`` follows::

        Agent 2
        *******
          Name:                    gfx1030
          Uuid:                    GPU-XX
          Marketing Name:          AMD Radeon RX 6800 XT

    ISA lines such as ``Name: amdgcn-amd-amdhsa--gfx1030`` do not match because
    no token starts with ``gfx``.
    """
    agents : list[dict[str, str]] = []
    for line in lines:
        stripped = line.strip()
        if stripped.startswith('Name:') and 'gfx' in stripped:
            if (token := next((t for t in stripped.split() if t.startswith('gfx')), None)) is not None:
                agents.append({'name': token, 'marketing_name': ''})
        elif stripped.startswith('Marketing Name:') and agents and not agents[-1]['marketing_name']:
            agents[-1]['marketing_name'] = stripped.removeprefix('Marketing Name:').strip()
    return agents

class GPUDetector:
    """
    Detect all available GPU agents using `rocminfo`.

    .. note::

        By default, results are cached.
    """
    COLUMNS : typing.ClassVar[tuple[str, ...]] = ('name', 'marketing_name')

    EXECUTABLE : typing.ClassVar[str] = 'rocminfo'

    _cache : typing.ClassVar[pandas.DataFrame | None] = None

    @classmethod
    def clear_cache(cls) -> None:
        """
        Clear the cached `GPU` detection results.
        """
        cls._cache = None

    @classmethod
    def get(cls, *, cache : bool = True, enrich : bool = True) -> pandas.DataFrame:
        if cache and cls._cache is not None:
            return cls._cache

        results = cls.detect(enrich = enrich)

        if cache:
            cls._cache = results

        return results

    @classmethod
    def detect(cls, *, enrich : bool = True) -> pandas.DataFrame:
        """
        Implementation of the detection.

        Raises :py:class:`rocbuild.errors.ProcessSpawnError` if `rocminfo` cannot be started.
        If it runs but fails, the failure is logged and no agent is reported.
        """
        lines : list[str] = []
        try:
            lines.extend(popen_stream(args = (cls.EXECUTABLE,), errors = 'replace'))
        except subprocess.CalledProcessError as error:
            logging.warning(f"'{cls.EXECUTABLE}' failed with exit status {error.returncode}: {error.stderr}")
            lines.clear()

        gpus = pandas.DataFrame(parse_agents(lines), columns = list(cls.COLUMNS))

        if enrich:
            gpus['architecture'] = gpus['name'].apply(
                lambda x: AMDGPUArch.from_str(x) if AMDGPUArch.is_tag(x) else None,
            )
        return gpus

    @classmethod
    def count(cls, *, cache : bool = True) -> int:
        """
        Get the number of available GPU agents.
        """
        return len(cls.get(cache = cache))

    @classmethod
    def first(cls, *, cache : bool = True) -> str | None:
        """
        Architecture tag of the first GPU agent, if any.
        """
        gpus = cls.get(cache = cache, enrich = False)
        return None if gpus.empty else str(gpus['name'].iloc[0])

def main() -> None:

    parser = argparse.ArgumentParser(
        description = 'Print the list of detected GPU architectures.',
        formatter_class = argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument('--sep', type = str, required = False, default = ';', help = 'Separator between GPUs.')

    parser.add_argument('--table', action = 'store_true', help = 'Print a table of the detected agents.')

    args = parser.parse_args()

    if args.table:
        print(rich_helpers.to_string(rich_helpers.df_to_table(GPUDetector.get(enrich = False))), end = '')
    else:
        print(args.sep.join(str(x) for x in GPUDetector.get(enrich = False)['name']), end = '')

if __name__ == "__main__":

    main()
