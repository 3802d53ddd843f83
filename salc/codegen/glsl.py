"""Generate plain GLSL from a file's semantic model.

SAL blocks are replaced in place by the declarations they describe; the
rest of the file is copied through ``BodyRewriter``.
"""

from __future__ import annotations
import logging
from collections import defaultdict

from salc.builtins.types import ArrayType, StructType, glsl_type_name
from salc.analysis.model import ConstantBuffer, FileModel, Member
from salc.codegen.rewrite import BodyRewriter
from salc.options import CompileOptions
from salc.preprocessor import PreprocessedSource

logger = logging.getLogger(__name__)

_INDENT = "    "


def _member_decl(m: Member) -> str:
    if isinstance(m.type, ArrayType):
        return f"{glsl_type_name(m.type)} {m.name}[{m.type.size}];"
    return f"{glsl_type_name(m.type)} {m.name};"


def buffer_instance_name(cb: ConstantBuffer) -> str | None:
    """Name of the block instance, or None for the root buffer."""
    return None if cb.is_root else cb.name


def build_rewriter(model: FileModel) -> BodyRewriter:
    members = {}
    for cb in model.constant_buffers:
        instance = buffer_instance_name(cb)
        if instance is None:
            continue
        for m in cb.members:
            members[f"{cb.name}_{m.name}"] = f"{instance}.{m.name}"
    textures = {tex.name: tex.name for tex in model.textures}
    return BodyRewriter(members, textures)


class GlslGenerator:
    def __init__(self, pre: PreprocessedSource, model: FileModel, options: CompileOptions):
        self.pre = pre
        self.model = model
        self.options = options
        self._emitted_structs: set[StructType] = set()

    def generate(self) -> str:
        decls = self._block_declarations()
        rewriter = build_rewriter(self.model)
        out = []
        has_version = any(
            line.lstrip().startswith("#version")
            for n, line in enumerate(self.pre.lines, start=1)
            if self.pre.block_for_line(n) < 0
        )
        if not has_version:
            out.append(f"#version {self.options.glsl_version} {self.options.profile}".rstrip())

        chunk: list[str] = []

        def flush():
            if chunk:
                out.extend(rewriter.rewrite("\n".join(chunk)).split("\n"))
                chunk.clear()

        block_starts = {b.start_line: i for i, b in enumerate(self.pre.blocks)}
        for lineno, line in enumerate(self.pre.lines, start=1):
            if lineno in block_starts:
                flush()
                out.extend(decls.get(block_starts[lineno], []))
                continue
            if lineno in self.pre.directive_lines or self.pre.block_for_line(lineno) >= 0:
                continue
            chunk.append(line)
        flush()
        return "\n".join(out) + "\n"

    def _block_of(self, loc) -> int:
        if loc is None:
            return 0
        idx = self.pre.block_for_line(loc.line)
        return idx if idx >= 0 else 0

    def _block_declarations(self) -> dict[int, list[str]]:
        items = []
        vf = self.model.vertex_format
        if vf is not None:
            items.append((vf.decl_index, self._block_of(vf.loc), self._vertex_inputs()))
        for cb in self.model.constant_buffers:
            items.append((cb.decl_index, self._block_of(cb.loc), self._buffer(cb)))
        for tex in self.model.textures:
            items.append((tex.decl_index, self._block_of(tex.loc), [self._texture(tex)]))
        for out in self.model.outputs:
            items.append((out.decl_index, self._block_of(out.loc), [self._output(out)]))

        decls = defaultdict(list)
        for _, block, lines in sorted(items, key=lambda item: item[0]):
            decls[block].extend(lines)
        return decls

    def _vertex_inputs(self) -> list[str]:
        vf = self.model.vertex_format
        return [
            f"layout(location = {inp.location}) in {glsl_type_name(inp.type)} {vf.name}_{inp.name};"
            for inp in vf.inputs
        ]

    def _struct(self, st: StructType) -> list[str]:
        if st in self._emitted_structs:
            return []
        self._emitted_structs.add(st)
        d = self.model.struct_types[st]
        lines = []
        for dep in d.dependencies:
            lines.extend(self._struct(dep))
        lines.append(f"struct {glsl_type_name(st)} {{")
        lines.extend(_INDENT + _member_decl(m) for m in d.members)
        lines.append("};")
        return lines

    def _buffer(self, cb: ConstantBuffer) -> list[str]:
        lines = []
        for m in cb.members:
            t = m.type.element if isinstance(m.type, ArrayType) else m.type
            if isinstance(t, StructType):
                lines.extend(self._struct(t))
        qualifiers = "std140"
        if self.options.explicit_bindings:
            qualifiers = f"binding = {cb.binding}, std140"
        lines.append(f"layout({qualifiers}) uniform {cb.name}Block {{")
        for m in cb.members:
            prefix = f"layout(offset = {m.offset}) " if self.options.member_offsets else ""
            lines.append(f"{_INDENT}{prefix}{_member_decl(m)}")
        instance = buffer_instance_name(cb)
        lines.append(f"}} {instance};" if instance else "};")
        return lines

    def _texture(self, tex) -> str:
        if self.options.explicit_bindings:
            return f"layout(binding = {tex.binding}) uniform {glsl_type_name(tex.type)} {tex.name};"
        return f"uniform {glsl_type_name(tex.type)} {tex.name};"

    def _output(self, out) -> str:
        return f"layout(location = {out.location}) out {glsl_type_name(out.type)} {out.name};"


def generate_glsl(pre: PreprocessedSource, model: FileModel,
                  options: CompileOptions | None = None) -> str:
    text = GlslGenerator(pre, model, options or CompileOptions()).generate()
    logger.debug("%s: generated %d line(s) of GLSL", model.file, text.count("\n"))
    return text
