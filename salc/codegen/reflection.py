"""Reflection metadata emitter.

Generates ``.json`` sidecar files alongside the generated GLSL, describing
every bound resource so a runtime can set up vertex input state, buffer
bindings and texture units without hardcoded values. Runs after
``assign_bindings()`` so all slots are filled in.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field

from salc.builtins.types import ArrayType, MatrixType, ScalarType, VectorType
from salc.analysis.model import FileModel
from salc.parser.ast_nodes import Identifier

REFLECTION_VERSION = 1

# Vulkan format strings for vertex attribute types
_COMPONENT_FORMAT = {
    "f": ("32", "SFLOAT"),
    "d": ("64", "SFLOAT"),
    "i": ("32", "SINT"),
    "u": ("32", "UINT"),
    "b": ("32", "UINT"),
}
_CHANNELS = "RGBA"


def vk_format(t) -> str:
    """Vertex input format of a scalar or vector type, or "" if none."""
    if isinstance(t, ScalarType):
        bits, kind = _COMPONENT_FORMAT[t.component]
        return f"R{bits}_{kind}"
    # Matrices report the format of one column
    if isinstance(t, (VectorType, MatrixType)):
        bits, kind = _COMPONENT_FORMAT[t.component]
        return "".join(f"{c}{bits}" for c in _CHANNELS[:t.size]) + f"_{kind}"
    return ""


@dataclass(frozen=True)
class VertexAttribute:
    name: str
    type: str
    location: int
    offset: int
    format: str


@dataclass(frozen=True)
class BufferMember:
    name: str
    type: str
    offset: int
    size: int
    array_size: int = 0


@dataclass(frozen=True)
class ConstantBufferInfo:
    name: str
    binding: int
    size: int
    members: tuple[BufferMember, ...] = ()


@dataclass(frozen=True)
class TextureBinding:
    name: str
    binding: int
    sampler: str
    type: str


@dataclass(frozen=True)
class OutputSlot:
    name: str
    type: str
    location: int


@dataclass(frozen=True)
class StateBlock:
    name: str
    entries: tuple[tuple[str, object], ...] = ()


@dataclass(frozen=True)
class ReflectionDescriptor:
    source: str
    stage: str
    version: int = REFLECTION_VERSION
    vertex_attributes: tuple[VertexAttribute, ...] = ()
    vertex_stride: int = 0
    constant_buffers: tuple[ConstantBufferInfo, ...] = ()
    textures: tuple[TextureBinding, ...] = ()
    outputs: tuple[OutputSlot, ...] = ()
    pipelines: tuple[StateBlock, ...] = field(default=())
    blendfuncs: tuple[StateBlock, ...] = field(default=())

    def to_dict(self) -> dict:
        d = asdict(self)
        d["pipelines"] = [_state_dict(s) for s in self.pipelines]
        d["blendfuncs"] = [_state_dict(s) for s in self.blendfuncs]
        return {
            "version": d["version"],
            "source": d["source"],
            "stage": d["stage"],
            "vertex_attributes": d["vertex_attributes"],
            "vertex_stride": d["vertex_stride"],
            "constant_buffers": d["constant_buffers"],
            "textures": d["textures"],
            "outputs": d["outputs"],
            "pipelines": d["pipelines"],
            "blendfuncs": d["blendfuncs"],
        }


def _state_dict(block: StateBlock) -> dict:
    return {"name": block.name, "entries": {k: v for k, v in block.entries}}


def _state_value(value):
    if isinstance(value, Identifier):
        return value.name
    return value


def generate_reflection(model: FileModel, source_name: str = "") -> ReflectionDescriptor:
    """Build the reflection descriptor for one compiled file.

    Every list is ordered by slot, so two compilations of the same batch
    produce identical descriptors.
    """
    attributes = ()
    stride = 0
    vf = model.vertex_format
    if vf is not None:
        stride = vf.stride
        attributes = tuple(sorted(
            (VertexAttribute(f"{vf.name}_{i.name}", i.type_name, i.location, i.offset, vk_format(i.type))
             for i in vf.inputs),
            key=lambda a: a.location,
        ))

    buffers = []
    for cb in model.constant_buffers:
        members = tuple(
            BufferMember(
                m.name, m.type_name, m.offset, m.size,
                m.type.size if isinstance(m.type, ArrayType) else 0,
            )
            for m in cb.members
        )
        buffers.append(ConstantBufferInfo(cb.name, cb.binding, cb.size, members))
    buffers.sort(key=lambda b: b.binding)

    textures = sorted(
        (TextureBinding(t.name, t.binding, t.sampler, t.type_name) for t in model.textures),
        key=lambda t: t.binding,
    )
    outputs = sorted(
        (OutputSlot(o.name, o.type_name, o.location) for o in model.outputs),
        key=lambda o: o.location,
    )

    def state(blocks):
        return tuple(
            StateBlock(b.name, tuple((e.key, _state_value(e.value)) for e in b.entries))
            for b in blocks
        )

    return ReflectionDescriptor(
        source=source_name or model.file,
        stage=model.stage,
        vertex_attributes=attributes,
        vertex_stride=stride,
        constant_buffers=tuple(buffers),
        textures=tuple(textures),
        outputs=tuple(outputs),
        pipelines=state(model.pipelines),
        blendfuncs=state(model.blendfuncs),
    )


def emit_reflection_json(reflection: ReflectionDescriptor | dict) -> str:
    """Serialize reflection data to a JSON string."""
    if isinstance(reflection, ReflectionDescriptor):
        reflection = reflection.to_dict()
    return json.dumps(reflection, indent=2, sort_keys=False) + "\n"
