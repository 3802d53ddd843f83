"""Typed semantic entities built from a file's statements."""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Optional

from salc.builtins.types import SalType, StructType, TextureType
from salc.analysis.layout import StructLayout
from salc.parser.ast_nodes import Attribute, SourceLocation, StateEntry

UNASSIGNED = -1


@dataclass
class Member:
    name: str
    type: SalType
    type_name: str
    attribute: Optional[Attribute] = None
    index: int = 0
    offset: int = 0
    size: int = 0


@dataclass
class ConstantBuffer:
    name: str
    members: list[Member]
    order: Optional[int]
    decl_index: int
    origin: str
    loc: Optional[SourceLocation] = None
    layout: Optional[StructLayout] = None
    binding: int = UNASSIGNED
    is_root: bool = False

    @property
    def size(self) -> int:
        return self.layout.size if self.layout else 0


@dataclass
class StructDef:
    """Layout-only struct used as a member type."""
    type: StructType
    members: list[Member]
    layout: StructLayout
    dependencies: list[StructType] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.type.name


@dataclass
class VertexInput:
    name: str
    type: SalType
    type_name: str
    order: Optional[int]
    index: int
    offset: int = 0
    location: int = UNASSIGNED


@dataclass
class VertexFormat:
    name: str
    inputs: list[VertexInput]
    stride: int
    decl_index: int
    origin: str
    loc: Optional[SourceLocation] = None


@dataclass
class Sampler:
    name: str
    decl_index: int
    loc: Optional[SourceLocation] = None


@dataclass
class Texture:
    name: str
    type: TextureType
    type_name: str
    sampler: str
    decl_index: int
    loc: Optional[SourceLocation] = None
    binding: int = UNASSIGNED


@dataclass
class Output:
    name: str
    type: SalType
    type_name: str
    order: Optional[int]
    decl_index: int
    loc: Optional[SourceLocation] = None
    location: int = UNASSIGNED


@dataclass
class StateBlockDecl:
    name: str
    entries: list[StateEntry]
    decl_index: int
    loc: Optional[SourceLocation] = None


@dataclass
class FileModel:
    file: str
    stage: str
    constant_buffers: list[ConstantBuffer] = field(default_factory=list)
    struct_types: dict[StructType, StructDef] = field(default_factory=dict)
    vertex_format: Optional[VertexFormat] = None
    samplers: list[Sampler] = field(default_factory=list)
    textures: list[Texture] = field(default_factory=list)
    outputs: list[Output] = field(default_factory=list)
    pipelines: list[StateBlockDecl] = field(default_factory=list)
    blendfuncs: list[StateBlockDecl] = field(default_factory=list)

    def buffer(self, name: str) -> ConstantBuffer:
        for cb in self.constant_buffers:
            if cb.name == name:
                return cb
        raise KeyError(name)

    def texture(self, name: str) -> Texture:
        for tex in self.textures:
            if tex.name == name:
                return tex
        raise KeyError(name)
