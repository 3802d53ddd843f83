"""AST node definitions for SAL."""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Optional, Union


@dataclass
class SourceLocation:
    line: int
    column: int


# --- Attributes ---
# Closed set: a numbered slot, a packing tag, or a sampler reference.

@dataclass(frozen=True)
class OrderAttribute:
    slot: int

    def __str__(self):
        return f"Order({self.slot})"


@dataclass(frozen=True)
class PackAttribute:
    def __str__(self):
        return "Pack"


@dataclass(frozen=True)
class SamplerRefAttribute:
    name: str

    def __str__(self):
        return self.name


Attribute = Union[OrderAttribute, PackAttribute, SamplerRefAttribute]


# --- Properties ---

@dataclass
class TypeRef:
    name: str
    sub_type: Optional[str] = None
    array_size: Optional[int] = None

    def __str__(self):
        s = self.name
        if self.sub_type is not None:
            s += f":{self.sub_type}"
        if self.array_size is not None:
            s += f"[{self.array_size}]"
        return s


@dataclass
class Property:
    type_ref: TypeRef
    name: str
    attribute: Optional[Attribute] = None
    index: int = 0
    loc: Optional[SourceLocation] = None


# --- Statements ---

@dataclass
class UseStmt:
    namespace: str
    member: str
    alias: Optional[str] = None
    loc: Optional[SourceLocation] = None

    @property
    def name(self) -> str:
        return self.alias or self.member


@dataclass
class ConstantBufferStmt:
    name: str
    properties: list[Property]
    attribute: Optional[Attribute] = None
    loc: Optional[SourceLocation] = None


@dataclass
class VertexFormatStmt:
    name: str
    properties: list[Property]
    attribute: Optional[Attribute] = None
    loc: Optional[SourceLocation] = None


@dataclass
class ConstantStmt:
    prop: Property
    loc: Optional[SourceLocation] = None

    @property
    def name(self) -> str:
        return self.prop.name


@dataclass
class OutputStmt:
    prop: Property
    loc: Optional[SourceLocation] = None

    @property
    def name(self) -> str:
        return self.prop.name


@dataclass(frozen=True)
class Identifier:
    """Bare identifier used as a state value (``CullingMode = BackFace``)."""
    name: str

    def __str__(self):
        return self.name


Value = Union[bool, int, float, Identifier]


@dataclass
class StateEntry:
    key: str
    value: Value


@dataclass
class PipelineStmt:
    name: str
    entries: list[StateEntry] = field(default_factory=list)
    loc: Optional[SourceLocation] = None


@dataclass
class BlendFuncStmt:
    name: str
    entries: list[StateEntry] = field(default_factory=list)
    loc: Optional[SourceLocation] = None


@dataclass
class CommentStmt:
    text: str
    loc: Optional[SourceLocation] = None


Statement = Union[
    UseStmt, ConstantBufferStmt, ConstantStmt, OutputStmt,
    VertexFormatStmt, PipelineStmt, BlendFuncStmt, CommentStmt,
]


# --- Module ---

@dataclass
class Module:
    file: str
    stage: str = "vertex"
    statements: list[Statement] = field(default_factory=list)

    @property
    def uses(self) -> list[UseStmt]:
        return [s for s in self.statements if isinstance(s, UseStmt)]

    def declarations(self) -> list[Statement]:
        """Named, non-import statements in declaration order."""
        return [
            s for s in self.statements
            if not isinstance(s, (UseStmt, CommentStmt))
        ]
