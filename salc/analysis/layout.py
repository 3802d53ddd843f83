"""Byte layout of constant buffers (std140) and vertex formats."""

from __future__ import annotations
from dataclasses import dataclass
from typing import Mapping, Sequence

from salc.builtins.types import (
    SalType, ScalarType, VectorType, MatrixType, StructType, ArrayType,
    component_size,
)

_VEC4_ALIGN = 16


@dataclass(frozen=True)
class MemberLayout:
    name: str
    offset: int
    size: int


@dataclass(frozen=True)
class StructLayout:
    members: tuple[MemberLayout, ...]
    size: int
    alignment: int

    def offset_of(self, name: str) -> int:
        for m in self.members:
            if m.name == name:
                return m.offset
        raise KeyError(name)


@dataclass(frozen=True)
class LayoutField:
    name: str
    type: SalType
    packed: bool = False


def std140_size_align(t: SalType, structs: Mapping[StructType, StructLayout]) -> tuple[int, int]:
    """Return (size, alignment) in bytes for std140 layout."""
    if isinstance(t, ScalarType):
        c = component_size(t)
        return (c, c)
    if isinstance(t, VectorType):
        c = component_size(t)
        if t.size == 2:
            return (2 * c, 2 * c)
        return (t.size * c, 4 * c)  # vec3 has the alignment of vec4
    if isinstance(t, MatrixType):
        # Columns are vectors laid out as an array, each padded to vec4.
        column = VectorType(f"vec{t.size}{t.component}", t.component, t.size)
        return _array_size_align(column, t.size, structs)
    if isinstance(t, ArrayType):
        return _array_size_align(t.element, t.size, structs)
    if isinstance(t, StructType):
        layout = structs[t]
        return (layout.size, layout.alignment)
    raise ValueError(f"type '{t}' cannot be placed in a constant buffer")


def _array_size_align(element: SalType, count: int, structs) -> tuple[int, int]:
    size, align = std140_size_align(element, structs)
    align = align_up(align, _VEC4_ALIGN)
    stride = align_up(size, align)
    return (stride * count, align)


def compute_std140_layout(fields: Sequence[LayoutField],
                          structs: Mapping[StructType, StructLayout] | None = None) -> StructLayout:
    """Compute std140 offsets for ``fields`` in declaration order.

    A packed field that directly follows another packed field is placed at
    the current offset without alignment padding.
    """
    structs = structs or {}
    members = []
    offset = 0
    max_align = 0
    prev_packed = False
    for f in fields:
        size, align = std140_size_align(f.type, structs)
        if not (f.packed and prev_packed):
            offset = align_up(offset, align)
        members.append(MemberLayout(f.name, offset, size))
        offset += size
        max_align = max(max_align, align)
        prev_packed = f.packed

    struct_align = align_up(max_align, _VEC4_ALIGN) if members else _VEC4_ALIGN
    total = align_up(offset, struct_align) if members else 0
    return StructLayout(tuple(members), total, struct_align)


def compute_vertex_layout(fields: Sequence[LayoutField]) -> StructLayout:
    """Tightly packed per-vertex attribute offsets."""
    members = []
    offset = 0
    for f in fields:
        size = _vertex_attribute_size(f.type)
        members.append(MemberLayout(f.name, offset, size))
        offset += size
    return StructLayout(tuple(members), offset, 1)


def _vertex_attribute_size(t: SalType) -> int:
    if isinstance(t, ScalarType):
        return component_size(t)
    if isinstance(t, VectorType):
        return component_size(t) * t.size
    if isinstance(t, MatrixType):
        return component_size(t) * t.size * t.size
    raise ValueError(f"type '{t}' cannot be a vertex attribute")


def align_up(offset: int, alignment: int) -> int:
    return (offset + alignment - 1) // alignment * alignment
