import pathlib
import re
import subprocess

import semantic_version

from rocbuild.errors import ToolOutputError
from rocbuild.utils.subprocess_helpers import popen_stream

def parse_version(output : str) -> semantic_version.Version:
    """
    Parse the output of ``hipcc --version``.

    >>> from rocbuild.utils.hipcc import parse_version
    >>> parse_version('HIP version: 6.2.41133-dd7f95766\\nAMD clang version 18.0.0git')
    Version('6.2.41133')
    """
    if (matched := re.search(pattern = r'HIP version: ([0-9]+)\.([0-9]+)\.([0-9]+)', string = output)) is None:
        raise ToolOutputError('hipcc --version cannot be parsed.')

    return semantic_version.Version(major = int(matched.group(1)), minor = int(matched.group(2)), patch = int(matched.group(3)))

def get_version(executable : str | pathlib.Path = 'hipcc') -> semantic_version.Version:
    """
    Get version of ``hipcc``.

    Raises :py:class:`rocbuild.errors.ToolOutputError` if it fails or its output cannot be parsed.
    """
    try:
        output = ''.join(popen_stream(args = (executable, '--version'), errors = 'replace'))
    except subprocess.CalledProcessError as error:
        raise ToolOutputError(f"'{executable} --version' failed with exit status {error.returncode}: {error.stderr}") from error
    return parse_version(output)
