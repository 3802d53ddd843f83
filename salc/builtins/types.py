"""Built-in type definitions for SAL."""

from __future__ import annotations
import re
from dataclasses import dataclass


@dataclass(frozen=True)
class SalType:
    name: str

    def __str__(self):
        return self.name


@dataclass(frozen=True)
class ScalarType(SalType):
    component: str  # "f", "d", "i", "u", "b"


@dataclass(frozen=True)
class VectorType(SalType):
    component: str
    size: int        # 2, 3, 4


@dataclass(frozen=True)
class MatrixType(SalType):
    component: str
    size: int        # 2, 3, 4 (square)


@dataclass(frozen=True)
class SamplerType(SalType):
    pass


@dataclass(frozen=True)
class TextureType(SalType):
    element: SalType  # scalar or vector


@dataclass(frozen=True)
class StructType(SalType):
    """Reference to a constant struct, by the name it was declared with."""
    origin: str = ""  # defining file


@dataclass(frozen=True)
class ArrayType(SalType):
    element: SalType
    size: int


# Singleton type instances
FLOAT = ScalarType("float", "f")
DOUBLE = ScalarType("double", "d")
INT = ScalarType("int", "i")
UINT = ScalarType("uint", "u")
BOOL = ScalarType("bool", "b")
SAMPLER = SamplerType("Sampler")

SCALARS: dict[str, ScalarType] = {
    "float": FLOAT,
    "double": DOUBLE,
    "int": INT,
    "uint": UINT,
    "bool": BOOL,
}

TEXTURE_KINDS = ("Texture2D", "Texture3D", "Texture2DArray", "TextureCube")

_COMPONENT_SIZE = {"f": 4, "d": 8, "i": 4, "u": 4, "b": 4}

# GLSL prefix for vector/matrix component types
_GLSL_PREFIX = {"f": "", "d": "d", "i": "i", "u": "u", "b": "b"}

_SAMPLER_GLSL = {
    "Texture2D": "sampler2D",
    "Texture3D": "sampler3D",
    "Texture2DArray": "sampler2DArray",
    "TextureCube": "samplerCube",
}

_VEC_RE = re.compile(r"^(vec|mat)([2-4])([fdiub])$")


def resolve_builtin(name: str) -> SalType | None:
    """Resolve a built-in scalar, vector, matrix or sampler type name."""
    if name in SCALARS:
        return SCALARS[name]
    if name == "Sampler":
        return SAMPLER
    m = _VEC_RE.match(name)
    if m is None:
        return None
    kind, size, comp = m.group(1), int(m.group(2)), m.group(3)
    if kind == "vec":
        return VectorType(name, comp, size)
    if comp == "b":
        return None
    return MatrixType(name, comp, size)


def resolve_texture(name: str, element: str) -> TextureType | None:
    if name not in TEXTURE_KINDS:
        return None
    elem = resolve_builtin(element)
    if not isinstance(elem, (ScalarType, VectorType)):
        return None
    return TextureType(f"{name}:{element}", elem)


def is_texture_name(name: str) -> bool:
    return name in TEXTURE_KINDS


def is_packable(t: SalType) -> bool:
    return isinstance(t, (ScalarType, VectorType))


def is_object(t: SalType) -> bool:
    return isinstance(t, (SamplerType, TextureType))


def component_size(t: ScalarType | VectorType | MatrixType) -> int:
    return _COMPONENT_SIZE[t.component]


def glsl_type_name(t: SalType) -> str:
    """GLSL spelling of a SAL type (arrays yield the element type)."""
    if isinstance(t, ScalarType):
        return t.name
    if isinstance(t, VectorType):
        return f"{_GLSL_PREFIX[t.component]}vec{t.size}"
    if isinstance(t, MatrixType):
        return f"{_GLSL_PREFIX[t.component]}mat{t.size}"
    if isinstance(t, TextureType):
        kind = t.name.split(":", 1)[0]
        comp = t.element.component
        prefix = _GLSL_PREFIX[comp] if comp in ("i", "u") else ""
        return prefix + _SAMPLER_GLSL[kind]
    if isinstance(t, StructType):
        return f"{t.name}Type"
    if isinstance(t, ArrayType):
        return glsl_type_name(t.element)
    raise ValueError(f"type '{t}' has no GLSL equivalent")


def location_count(t: SalType) -> int:
    """Number of consecutive shader input locations an attribute occupies.

    Matrices take one location per column; three and four component
    double vectors take two locations each.
    """
    if not isinstance(t, (VectorType, MatrixType)):
        return 1
    wide = 2 if t.component == "d" and t.size > 2 else 1
    if isinstance(t, MatrixType):
        return t.size * wide
    return wide
