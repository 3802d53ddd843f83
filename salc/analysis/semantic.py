"""Build the typed semantic model of one file and validate attribute usage."""

from __future__ import annotations
import logging

from salc.errors import (
    AttributeMisuseError, DuplicateDefinitionError, TypeResolutionError,
    UnresolvedReferenceError,
)
from salc.parser.ast_nodes import (
    Module, Property, UseStmt, CommentStmt, ConstantBufferStmt, ConstantStmt,
    OutputStmt, VertexFormatStmt, PipelineStmt, BlendFuncStmt,
    OrderAttribute, PackAttribute, SamplerRefAttribute,
)
from salc.builtins.types import (
    SAMPLER, ArrayType, MatrixType, ScalarType, StructType, VectorType,
    is_object, is_packable, is_texture_name, resolve_builtin, resolve_texture,
)
from salc.analysis.layout import (
    LayoutField, compute_std140_layout, compute_vertex_layout, std140_size_align,
)
from salc.analysis.model import (
    ConstantBuffer, FileModel, Member, Output, Sampler, StateBlockDecl,
    StructDef, Texture, VertexFormat, VertexInput,
)
from salc.analysis.namespace import FrozenNamespace, ResolvedImport

logger = logging.getLogger(__name__)

ROOT_BUFFER = "Root"


def build_model(module: Module, namespace: FrozenNamespace,
                imports: list[ResolvedImport]) -> FileModel:
    return ModelBuilder(module, namespace, imports).build()


def _pos(node) -> tuple[int, int]:
    loc = getattr(node, "loc", None)
    if loc is None:
        return (0, 0)
    return (loc.line, loc.column)


class ModelBuilder:
    def __init__(self, module: Module, namespace: FrozenNamespace, imports: list[ResolvedImport]):
        self.module = module
        self.file = module.file
        self.namespace = namespace
        self.model = FileModel(module.file, module.stage)
        self._imports = {id(r.use): r.symbol for r in imports}
        self._names: set[str] = set()
        self._building: set[StructType] = set()
        self._root: list[tuple[Member, int | None, int, object]] = []
        self._sampler_refs: list[tuple[Texture, str, Property]] = []

    def build(self) -> FileModel:
        self._declare_names()
        for index, stmt in enumerate(self.module.statements):
            if isinstance(stmt, CommentStmt):
                continue
            if isinstance(stmt, UseStmt):
                sym = self._imports[id(stmt)]
                self._visit(sym.statement, stmt.name, sym.file, index, stmt.loc)
            else:
                self._visit(stmt, stmt.name, self.file, index, stmt.loc)
        self._build_root()
        self._check_sampler_refs()
        return self.model

    def _declare_names(self):
        for stmt in self.module.statements:
            if isinstance(stmt, CommentStmt):
                continue
            if stmt.name in self._names:
                raise DuplicateDefinitionError(stmt.name, self.file, *_pos(stmt))
            self._names.add(stmt.name)

    def _visit(self, stmt, name, origin, index, loc):
        if isinstance(stmt, ConstantBufferStmt):
            self._visit_constant_buffer(stmt, name, origin, index, loc)
        elif isinstance(stmt, ConstantStmt):
            self._visit_constant(stmt.prop, name, origin, index, loc)
        elif isinstance(stmt, OutputStmt):
            self._visit_output(stmt.prop, name, origin, index, loc)
        elif isinstance(stmt, VertexFormatStmt):
            self._visit_vertex_format(stmt, name, origin, index, loc)
        elif isinstance(stmt, PipelineStmt):
            logger.debug("visit pipeline: %s", name)
            self.model.pipelines.append(self._state_block(stmt, name, origin, index, loc))
        elif isinstance(stmt, BlendFuncStmt):
            logger.debug("visit blend function: %s", name)
            self.model.blendfuncs.append(self._state_block(stmt, name, origin, index, loc))

    def _state_block(self, stmt, name, origin, index, loc) -> StateBlockDecl:
        keys = set()
        for entry in stmt.entries:
            if entry.key in keys:
                raise DuplicateDefinitionError(entry.key, origin, *_pos(stmt), what=f"state key in '{name}'")
            keys.add(entry.key)
        return StateBlockDecl(name, list(stmt.entries), index, loc)

    # --- Constant buffers and struct types ---

    def _visit_constant_buffer(self, stmt: ConstantBufferStmt, name, origin, index, loc):
        attr = stmt.attribute
        if isinstance(attr, PackAttribute):
            logger.debug("constant struct '%s' is a packed struct type", name)
            self._struct_def(StructType(stmt.name, origin), stmt)
            return
        if isinstance(attr, SamplerRefAttribute):
            raise AttributeMisuseError(
                f"'{attr.name}' is not a valid attribute for constant buffer '{name}'",
                origin, *_pos(stmt),
            )
        order = self._order(attr, origin, stmt)
        members, layout = self._struct_members(stmt, origin)
        logger.debug("visit constant buffer: %s (order=%s, size=%d)", name, order, layout.size)
        self.model.constant_buffers.append(
            ConstantBuffer(name, members, order, index, origin, loc, layout)
        )

    def _struct_members(self, stmt: ConstantBufferStmt, origin: str):
        seen = set()
        members = []
        fields = []
        for prop in stmt.properties:
            if prop.name in seen:
                raise DuplicateDefinitionError(prop.name, origin, *_pos(prop), what="member")
            seen.add(prop.name)
            t = self._member_type(prop, origin)
            attr = prop.attribute
            if isinstance(attr, PackAttribute) and not is_packable(t):
                raise AttributeMisuseError(
                    f"Pack is only valid on scalar or vector members, not on '{prop.name}' ({prop.type_ref})",
                    origin, *_pos(prop),
                )
            if isinstance(attr, (OrderAttribute, SamplerRefAttribute)):
                raise AttributeMisuseError(
                    f"attribute '{attr}' is not valid on member '{stmt.name}.{prop.name}'",
                    origin, *_pos(prop),
                )
            members.append(Member(prop.name, t, str(prop.type_ref), attr, prop.index))
            fields.append(LayoutField(prop.name, t, isinstance(attr, PackAttribute)))

        layouts = {st: d.layout for st, d in self.model.struct_types.items()}
        layout = compute_std140_layout(fields, layouts)
        for member, ml, prop in zip(members, layout.members, stmt.properties):
            member.offset = ml.offset
            member.size = ml.size
            if isinstance(member.attribute, PackAttribute):
                # GLSL rejects offsets that are not a multiple of the base alignment
                _, align = std140_size_align(member.type, layouts)
                if ml.offset % align:
                    raise AttributeMisuseError(
                        f"packed member '{prop.name}' lands at offset {ml.offset}, "
                        f"which is not a multiple of its alignment {align}",
                        origin, *_pos(prop),
                    )
        return members, layout

    def _member_type(self, prop: Property, origin: str):
        ref = prop.type_ref
        if ref.sub_type is not None:
            raise TypeResolutionError(f"type '{ref}' is not allowed in a struct", origin, *_pos(prop))
        base = resolve_builtin(ref.name)
        if base is None:
            base = self._struct_type(ref.name, origin, prop)
        elif is_object(base):
            raise TypeResolutionError(f"type '{ref}' is not allowed in a struct", origin, *_pos(prop))
        if ref.array_size is not None:
            if ref.array_size == 0:
                raise TypeResolutionError(f"array '{prop.name}' has zero size", origin, *_pos(prop))
            return ArrayType(str(ref), base, ref.array_size)
        return base

    def _struct_type(self, name: str, origin: str, prop: Property) -> StructType:
        sym = self.namespace.resolve_name(origin, name)
        if sym is None or not isinstance(sym.statement, ConstantBufferStmt):
            raise TypeResolutionError(f"unknown type '{name}'", origin, *_pos(prop))
        st = StructType(sym.statement.name, sym.file)
        self._struct_def(st, sym.statement)
        return st

    def _struct_def(self, st: StructType, stmt: ConstantBufferStmt) -> None:
        if st in self.model.struct_types:
            return
        if st in self._building:
            raise TypeResolutionError(f"struct '{st.name}' contains itself", st.origin, *_pos(stmt))
        self._building.add(st)
        members, layout = self._struct_members(stmt, st.origin)
        self._building.discard(st)
        deps = []
        for m in members:
            t = m.type.element if isinstance(m.type, ArrayType) else m.type
            if isinstance(t, StructType) and t not in deps:
                deps.append(t)
        self.model.struct_types[st] = StructDef(st, members, layout, deps)

    # --- Top-level constants ---

    def _visit_constant(self, prop: Property, name, origin, index, loc):
        ref = prop.type_ref
        attr = prop.attribute
        if is_texture_name(ref.name):
            self._visit_texture(prop, name, origin, index, loc)
            return
        if ref.sub_type is not None:
            raise TypeResolutionError(f"unknown type '{ref}'", origin, *_pos(prop))
        t = resolve_builtin(ref.name)
        if t is None:
            raise TypeResolutionError(
                f"constant '{name}' must have a numeric, Sampler or texture type, not '{ref}'",
                origin, *_pos(prop),
            )
        if t is SAMPLER:
            if attr is not None:
                raise AttributeMisuseError(
                    f"attribute '{attr}' is not valid on sampler '{name}'", origin, *_pos(prop)
                )
            logger.debug("visit sampler: %s", name)
            self.model.samplers.append(Sampler(name, index, loc))
            return
        if isinstance(attr, (PackAttribute, SamplerRefAttribute)):
            raise AttributeMisuseError(
                f"attribute '{attr}' is not valid on constant '{name}'", origin, *_pos(prop)
            )
        if ref.array_size is not None:
            t = ArrayType(str(ref), t, ref.array_size)
        order = self._order(attr, origin, prop)
        logger.debug("visit root constant: %s", name)
        self._root.append((Member(name, t, str(ref), attr), order, index, loc))

    def _visit_texture(self, prop: Property, name, origin, index, loc):
        ref = prop.type_ref
        if ref.sub_type is None:
            raise TypeResolutionError(
                f"texture '{name}' needs an element type (e.g. {ref.name}:vec4f)", origin, *_pos(prop)
            )
        t = resolve_texture(ref.name, ref.sub_type)
        if t is None or ref.array_size is not None:
            raise TypeResolutionError(f"invalid texture type '{ref}'", origin, *_pos(prop))
        attr = prop.attribute
        if not isinstance(attr, SamplerRefAttribute):
            what = f"attribute '{attr}'" if attr is not None else "no attribute"
            raise AttributeMisuseError(
                f"texture '{name}' must reference a sampler, got {what}", origin, *_pos(prop)
            )
        logger.debug("visit texture: %s (sampler %s)", name, attr.name)
        tex = Texture(name, t, str(ref), attr.name, index, loc)
        self.model.textures.append(tex)
        self._sampler_refs.append((tex, origin, prop))

    def _build_root(self):
        if not self._root:
            return
        if ROOT_BUFFER in self._names:
            _, _, _, loc = self._root[0]
            raise DuplicateDefinitionError(ROOT_BUFFER, self.file, loc.line if loc else 0,
                                           loc.column if loc else 0)
        orders = sorted({o for _, o, _, _ in self._root if o is not None})
        if len(orders) > 1:
            _, _, _, loc = self._root[0]
            raise AttributeMisuseError(
                f"root constants are pinned to conflicting slots {orders}",
                self.file, loc.line if loc else 0, loc.column if loc else 0,
            )
        members = [m for m, _, _, _ in self._root]
        layout = compute_std140_layout([LayoutField(m.name, m.type) for m in members])
        for member, ml in zip(members, layout.members):
            member.offset = ml.offset
            member.size = ml.size
        _, _, first_index, first_loc = self._root[0]
        root = ConstantBuffer(
            ROOT_BUFFER, members, orders[0] if orders else None, first_index,
            self.file, first_loc, layout, is_root=True,
        )
        self.model.constant_buffers.append(root)
        self.model.constant_buffers.sort(key=lambda cb: cb.decl_index)

    def _check_sampler_refs(self):
        for tex, origin, prop in self._sampler_refs:
            sym = self.namespace.resolve_name(origin, tex.sampler)
            if sym is None:
                raise UnresolvedReferenceError(tex.sampler, origin, *_pos(prop), referrer=tex.name)
            stmt = sym.statement
            is_sampler = (
                isinstance(stmt, ConstantStmt)
                and stmt.prop.type_ref.name == "Sampler"
                and stmt.prop.type_ref.sub_type is None
            )
            if not is_sampler:
                raise AttributeMisuseError(
                    f"texture '{tex.name}' references '{tex.sampler}', which is not a Sampler",
                    origin, *_pos(prop),
                )

    # --- Outputs and vertex formats ---

    def _visit_output(self, prop: Property, name, origin, index, loc):
        ref = prop.type_ref
        t = resolve_builtin(ref.name)
        if not isinstance(t, (ScalarType, VectorType)) or ref.sub_type is not None or ref.array_size is not None:
            raise TypeResolutionError(
                f"output '{name}' must be a scalar or vector, not '{ref}'", origin, *_pos(prop)
            )
        attr = prop.attribute
        if isinstance(attr, (PackAttribute, SamplerRefAttribute)):
            raise AttributeMisuseError(
                f"attribute '{attr}' is not valid on output '{name}'", origin, *_pos(prop)
            )
        logger.debug("visit output: %s", name)
        self.model.outputs.append(
            Output(name, t, str(ref), self._order(attr, origin, prop), index, loc)
        )

    def _visit_vertex_format(self, stmt: VertexFormatStmt, name, origin, index, loc):
        if self.model.vertex_format is not None:
            raise DuplicateDefinitionError(name, self.file, *_pos(stmt), what="vertex format")
        if stmt.attribute is not None:
            raise AttributeMisuseError(
                f"attribute '{stmt.attribute}' is not valid on vertex format '{name}'",
                origin, *_pos(stmt),
            )
        seen = set()
        inputs = []
        fields = []
        for prop in stmt.properties:
            if prop.name in seen:
                raise DuplicateDefinitionError(prop.name, origin, *_pos(prop), what="member")
            seen.add(prop.name)
            ref = prop.type_ref
            t = resolve_builtin(ref.name)
            if not isinstance(t, (ScalarType, VectorType, MatrixType)) \
                    or ref.sub_type is not None or ref.array_size is not None:
                raise TypeResolutionError(
                    f"vertex attribute '{prop.name}' must be numeric, not '{ref}'", origin, *_pos(prop)
                )
            attr = prop.attribute
            if isinstance(attr, (PackAttribute, SamplerRefAttribute)):
                raise AttributeMisuseError(
                    f"attribute '{attr}' is not valid on vertex attribute '{prop.name}'",
                    origin, *_pos(prop),
                )
            inputs.append(VertexInput(prop.name, t, str(ref), self._order(attr, origin, prop), prop.index))
            fields.append(LayoutField(prop.name, t))
        layout = compute_vertex_layout(fields)
        for inp, ml in zip(inputs, layout.members):
            inp.offset = ml.offset
        logger.debug("visit vertex format: %s (%d attribute(s))", name, len(inputs))
        self.model.vertex_format = VertexFormat(name, inputs, layout.size, index, origin, loc)

    def _order(self, attr, origin, node) -> int | None:
        if not isinstance(attr, OrderAttribute):
            return None
        if attr.slot < 0:
            raise AttributeMisuseError(f"slot number {attr.slot} is negative", origin, *_pos(node))
        return attr.slot
