"""
One compilation unit per supported element type.

A kernel template is written once, against the ``ELEMENT_TYPE`` macro::

    extern "C" __global__ void CONCAT(sort_odd_, ELEMENT_SUFFIX)(ELEMENT_TYPE* data, bool ascending);

and :py:func:`specialize` generates ``sort_i32.hip``, ``sort_f64.hip``, ...
that define the macros and include the template. The set of types is
resolved when configuring the build.
"""
import logging
import pathlib
import sys
import typing

if sys.version_info >= (3, 11):
    from enum import StrEnum
else:
    from backports.strenum import StrEnum

from rocbuild.build.sources import KERNEL_SUFFIX

class ElementType(StrEnum):
    """
    Element types a kernel template can be specialized for.
    """
    I8 = 'i8'
    I16 = 'i16'
    I32 = 'i32'
    I64 = 'i64'
    U8 = 'u8'
    U16 = 'u16'
    U32 = 'u32'
    U64 = 'u64'
    F32 = 'f32'
    F64 = 'f64'

    @property
    def ctype(self) -> str:
        """
        >>> from rocbuild.build.specialize import ElementType
        >>> ElementType.U16.ctype
        'uint16_t'
        """
        return C_TYPES[self]

C_TYPES : typing.Final[dict[ElementType, str]] = {
    ElementType.I8 : 'int8_t',
    ElementType.I16 : 'int16_t',
    ElementType.I32 : 'int32_t',
    ElementType.I64 : 'int64_t',
    ElementType.U8 : 'uint8_t',
    ElementType.U16 : 'uint16_t',
    ElementType.U32 : 'uint32_t',
    ElementType.U64 : 'uint64_t',
    ElementType.F32 : 'float',
    ElementType.F64 : 'double',
}

def render(template : pathlib.Path, element_type : ElementType) -> str:
    return '\n'.join((
        '// Generated by rocbuild. Do not edit.',
        '#include <stdint.h>',
        f'#define ELEMENT_TYPE {element_type.ctype}',
        f'#define ELEMENT_SUFFIX {element_type.value}',
        f'#include "{template.resolve().as_posix()}"',
    )) + '\n'

def specialize(*,
    template : pathlib.Path,
    element_types : typing.Iterable[ElementType | str],
    out_dir : pathlib.Path,
) -> list[pathlib.Path]:
    """
    Write one compilation unit ``<stem>_<type>.hip`` per element type in `out_dir`.

    A unit is only rewritten if its content changes, so that its modification
    time keeps reflecting the last actual change.

    Raises :py:class:`ValueError` for an unsupported element type.
    """
    out_dir.mkdir(parents = True, exist_ok = True)

    units : list[pathlib.Path] = []
    for element_type in dict.fromkeys(ElementType(t) for t in element_types):
        unit = out_dir / f'{template.stem}_{element_type.value}{KERNEL_SUFFIX}'
        text = render(template = template, element_type = element_type)
        if not unit.is_file() or unit.read_text(encoding = 'utf-8') != text:
            logging.debug(f'Writing specialization {unit}.')
            unit.write_text(text, encoding = 'utf-8')
        units.append(unit)
    return units
