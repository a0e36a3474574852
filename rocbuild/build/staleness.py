"""
Decide whether a previously built artifact is still valid for its kernel.

The decision only compares modification times, so it is bound by the clock
resolution of the file system and does not notice changes that keep the mtime
(e.g. restoring an old file with its timestamp).
"""
import logging
import pathlib


def is_stale(source : pathlib.Path, artifact : pathlib.Path) -> bool:
    """
    Return `True` if `source` needs to be compiled again.

    The artifact is fresh only if it exists and its mtime is strictly later than
    the mtime of `source`. Any error reading either timestamp means stale.
    """
    try:
        artifact_mtime = artifact.stat().st_mtime_ns
    except FileNotFoundError:
        return True
    except OSError as error:
        logging.debug(f'Cannot read the modification time of {artifact}: {error}')
        return True

    try:
        source_mtime = source.stat().st_mtime_ns
    except OSError as error:
        logging.debug(f'Cannot read the modification time of {source}: {error}')
        return True

    return not artifact_mtime > source_mtime
