"""
Generate the Python module exposing the compiled code objects.

For kernels ``saxpy.hip`` and ``reduce-sum.hip``, the module reads::

    # Generated by rocbuild. Do not edit.
    import os
    import pathlib
    import typing

    OUT_DIR: typing.Final[pathlib.Path] = pathlib.Path(os.environ.get('ROCBUILD_OUT_DIR', '/path/to/build'))
    GPU_ARCH: typing.Final[str] = 'gfx1030'

    SAXPY: typing.Final[bytes] = (OUT_DIR / 'saxpy.hsaco').read_bytes()
    REDUCE_SUM: typing.Final[bytes] = (OUT_DIR / 'reduce-sum.hsaco').read_bytes()

A Makefile-style dependency file is written next to it (``<module>.d``) so
that the surrounding build system knows when to run the build again.
"""
import dataclasses
import logging
import pathlib
import re
import typing

from rocbuild.errors import BindingsWriteError, ConfigurationError

RESERVED : typing.Final[frozenset[str]] = frozenset({'OUT_DIR', 'GPU_ARCH'})
"""Names declared by the generated module itself."""

OUT_DIR_VARIABLE : typing.Final[str] = 'ROCBUILD_OUT_DIR'
"""Environment variable that relocates the output directory when the generated module is imported."""

HEADER : typing.Final[str] = '# Generated by rocbuild. Do not edit.'

def constant_name(kernel : pathlib.Path) -> str:
    """
    Uppercased file stem, with every non-identifier character mapped to ``_``.

    >>> import pathlib
    >>> from rocbuild.build.bindings import constant_name
    >>> constant_name(pathlib.Path('src/reduce-sum.v2.hip'))
    'REDUCE_SUM_V2'
    >>> constant_name(pathlib.Path('2d_stencil.hip'))
    '_2D_STENCIL'
    """
    name = re.sub(r'\W', '_', kernel.stem.upper(), flags = re.ASCII)
    if not name or name[0].isdigit():
        name = f'_{name}'
    return name

def check_unique(kernels : typing.Iterable[pathlib.Path]) -> list[tuple[str, pathlib.Path]]:
    """
    Name each kernel, in order, and make sure that no two names collide.

    Raises :py:class:`rocbuild.errors.ConfigurationError` listing every collision.
    """
    named : list[tuple[str, pathlib.Path]] = []
    owners : dict[str, list[pathlib.Path]] = {}
    for kernel in kernels:
        name = constant_name(kernel)
        owners.setdefault(name, []).append(kernel)
        named.append((name, kernel))

    collisions = {name: paths for name, paths in owners.items() if len(paths) > 1 or name in RESERVED}
    if collisions:
        raise ConfigurationError('Kernel constant names collide: ' + '; '.join(
            f"{name} <- {', '.join(map(str, paths))}" + (' (reserved)' if name in RESERVED else '')
            for name, paths in collisions.items()
        ))
    return named

def render(*,
    out_dir : pathlib.Path,
    gpu_arch : str,
    constants : typing.Sequence[tuple[str, pathlib.Path]],
) -> str:
    """
    Source of the generated module, see the module documentation.
    """
    lines = [
        HEADER,
        'import os',
        'import pathlib',
        'import typing',
        '',
        f"OUT_DIR: typing.Final[pathlib.Path] = pathlib.Path(os.environ.get({OUT_DIR_VARIABLE!r}, {str(out_dir.resolve())!r}))",
        f'GPU_ARCH: typing.Final[str] = {gpu_arch!r}',
        '',
    ]
    for name, artifact in constants:
        relative = artifact.relative_to(out_dir) if artifact.is_relative_to(out_dir) else pathlib.Path(artifact.name)
        lines.append(f'{name}: typing.Final[bytes] = (OUT_DIR / {relative.as_posix()!r}).read_bytes()')
    return '\n'.join(lines) + '\n'

def render_depfile(*, target : pathlib.Path, dependencies : typing.Iterable[pathlib.Path]) -> str:
    """
    Makefile rule listing the `dependencies` of `target`, spaces escaped.
    """
    def escape(path : pathlib.Path) -> str:
        return str(path).replace(' ', '\\ ')

    return ' \\\n  '.join((f'{escape(target)}:', *(escape(d) for d in dependencies))) + '\n'

@dataclasses.dataclass(frozen = True, slots = True)
class Bindings:
    """
    Result of a build, able to write the generated module.
    """
    write_needed : bool
    """Whether the generated module must be (re)written."""
    constants : tuple[tuple[str, pathlib.Path], ...]
    """Constant names and artifact paths, in kernel discovery order."""
    out_dir : pathlib.Path
    gpu_arch : str
    dependencies : tuple[pathlib.Path, ...] = ()
    """Inputs listed in the dependency file."""

    def write(self, out : str | pathlib.Path) -> bool:
        """
        Write the generated module to `out` if :py:attr:`write_needed`.

        Otherwise the module from the previous run is left untouched (it is still
        written if it does not exist). The dependency file is refreshed whenever
        its content changed.

        Returns `True` if the module was written.
        """
        out = pathlib.Path(out)

        self.write_depfile(out)

        if not self.write_needed and out.is_file():
            logging.debug(f'Bindings {out} are up to date.')
            return False

        text = render(out_dir = self.out_dir, gpu_arch = self.gpu_arch, constants = self.constants)
        try:
            out.parent.mkdir(parents = True, exist_ok = True)
            out.write_text(text, encoding = 'utf-8')
        except OSError as error:
            raise BindingsWriteError(path = out, reason = error) from error

        logging.info(f'Wrote {len(self.constants)} kernel constant(s) to {out}.')
        return True

    def write_depfile(self, out : pathlib.Path) -> None:
        depfile = out.with_name(out.name + '.d')
        text = render_depfile(target = out, dependencies = self.dependencies)
        try:
            if depfile.is_file() and depfile.read_text(encoding = 'utf-8') == text:
                return
            depfile.parent.mkdir(parents = True, exist_ok = True)
            depfile.write_text(text, encoding = 'utf-8')
        except OSError as error:
            raise BindingsWriteError(path = depfile, reason = error) from error
