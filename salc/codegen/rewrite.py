"""Rewrite SAL references in the shader body.

Only two forms are touched: ``Struct_Member`` identifiers of declared
constant buffers, and ``Texture_Sample(args)`` calls of declared textures.
Every other identifier, underscore-joined or not, is left as it is.
"""

from __future__ import annotations
import re

_IDENT_RE = re.compile(r"\b[A-Za-z_][A-Za-z0-9_]*")

SAMPLE_SUFFIX = "_Sample"


class BodyRewriter:
    def __init__(self, members: dict[str, str], textures: dict[str, str]):
        # members: "Material_BaseColor" -> "Material.BaseColor"
        # textures: "BaseTexture" -> name of the generated combined sampler
        self.members = members
        self.textures = textures

    def rewrite(self, text: str) -> str:
        out = []
        pos = 0
        while True:
            m = _IDENT_RE.search(text, pos)
            if m is None:
                out.append(text[pos:])
                break
            out.append(text[pos:m.start()])
            ident = m.group()
            pos = m.end()
            if m.start() > 0 and text[m.start() - 1] == ".":
                out.append(ident)
                continue
            if ident in self.members:
                out.append(self.members[ident])
                continue
            call = self._sample_call(text, ident, pos)
            if call is None:
                out.append(ident)
                continue
            replacement, pos = call
            out.append(replacement)
        return "".join(out)

    def _sample_call(self, text: str, ident: str, pos: int) -> tuple[str, int] | None:
        if not ident.endswith(SAMPLE_SUFFIX):
            return None
        texture = self.textures.get(ident[: -len(SAMPLE_SUFFIX)])
        if texture is None:
            return None
        open_paren = pos
        while open_paren < len(text) and text[open_paren] in " \t":
            open_paren += 1
        if open_paren >= len(text) or text[open_paren] != "(":
            return None
        close_paren = _matching_paren(text, open_paren)
        if close_paren < 0:
            return None
        args = self.rewrite(text[open_paren + 1:close_paren]).strip()
        if args:
            return f"texture({texture}, {args})", close_paren + 1
        return f"texture({texture})", close_paren + 1


def _matching_paren(text: str, open_paren: int) -> int:
    depth = 0
    for i in range(open_paren, len(text)):
        c = text[i]
        if c == "(":
            depth += 1
        elif c == ")":
            depth -= 1
            if depth == 0:
                return i
    return -1
