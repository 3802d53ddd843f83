"""Lark Transformer that builds our AST from the parse tree."""

from __future__ import annotations
from lark import Transformer, Token, v_args
from lark.exceptions import UnexpectedCharacters, UnexpectedInput, UnexpectedToken, VisitError

from salc.errors import LexError, SalError, SalSyntaxError
from salc.parser.lexer import TokenKind, describe_terminal, sal_lark, tokenize
from salc.parser.ast_nodes import (
    SourceLocation, TypeRef, Property,
    OrderAttribute, PackAttribute, SamplerRefAttribute,
    UseStmt, ConstantBufferStmt, ConstantStmt, OutputStmt, VertexFormatStmt,
    PipelineStmt, BlendFuncStmt, CommentStmt, StateEntry, Identifier,
)


def _loc(meta) -> SourceLocation | None:
    if not getattr(meta, "empty", True):
        return SourceLocation(meta.line, meta.column)
    return None


def _tok_loc(tok: Token) -> SourceLocation | None:
    if tok is not None and hasattr(tok, "line"):
        return SourceLocation(tok.line, tok.column)
    return None


def _present(items):
    return [a for a in items if a is not None]


def parse_attribute(name: str, arg: int | None = None) -> OrderAttribute | PackAttribute | SamplerRefAttribute:
    """Map an attribute spelling onto the closed attribute variant.

    ``Pack`` is the packing tag, ``ORDER_<n>`` and ``Order(<n>)`` are
    numbered slots, any other bare identifier is a sampler reference.
    """
    if arg is not None:
        if name != "Order":
            raise ValueError(f"unknown attribute '{name}({arg})'")
        return OrderAttribute(arg)
    if name == "Pack":
        return PackAttribute()
    if name.startswith("ORDER_") and name[6:].isdigit():
        return OrderAttribute(int(name[6:]))
    return SamplerRefAttribute(name)


class SalTransformer(Transformer):
    def __init__(self, file: str = "<sal>"):
        super().__init__()
        self.file = file

    def start(self, items):
        return list(items)

    # --- Statements ---

    @v_args(meta=True)
    def use_stmt(self, meta, args):
        idents = _present(args)
        alias = str(idents[2]) if len(idents) > 2 else None
        return UseStmt(str(idents[0]), str(idents[1]), alias, _loc(meta))

    @v_args(meta=True)
    def constant_buffer(self, meta, args):
        name = args[0]
        attr = args[1] if len(args) > 1 and not isinstance(args[1], Property) else None
        props = self._number([a for a in args if isinstance(a, Property)])
        return ConstantBufferStmt(str(name), props, attr, _loc(meta))

    @v_args(meta=True)
    def vformat(self, meta, args):
        name = args[0]
        attr = args[1] if len(args) > 1 and not isinstance(args[1], Property) else None
        props = self._number([a for a in args if isinstance(a, Property)])
        return VertexFormatStmt(str(name), props, attr, _loc(meta))

    @v_args(meta=True)
    def constant(self, meta, args):
        return ConstantStmt(args[0], _loc(meta))

    @v_args(meta=True)
    def output(self, meta, args):
        return OutputStmt(args[0], _loc(meta))

    @v_args(meta=True)
    def pipeline(self, meta, args):
        entries = [a for a in args[1:] if isinstance(a, StateEntry)]
        return PipelineStmt(str(args[0]), entries, _loc(meta))

    @v_args(meta=True)
    def blendfunc(self, meta, args):
        entries = [a for a in args[1:] if isinstance(a, StateEntry)]
        return BlendFuncStmt(str(args[0]), entries, _loc(meta))

    def state_entry(self, args):
        *keys, value = _present(args)
        return StateEntry("::".join(str(k) for k in keys), value)

    # --- Values ---

    def float_value(self, args):
        return float(args[0])

    def int_value(self, args):
        return int(args[0])

    def true_value(self, args):
        return True

    def false_value(self, args):
        return False

    def ident_value(self, args):
        return Identifier(str(args[0]))

    # --- Properties ---

    def property(self, args):
        type_ref, name = args[0], args[1]
        attr = args[2] if len(args) > 2 else None
        return Property(type_ref, str(name), attr, loc=_tok_loc(name))

    def type_ref(self, args):
        parts = _present(args)
        type_ref = TypeRef(str(parts[0]))
        for tok in parts[1:]:
            if tok.type == "INT":
                size = int(tok)
                if size < 0:
                    raise SalSyntaxError(["array size"], str(size), self.file, tok.line, tok.column)
                type_ref.array_size = size
            else:
                type_ref.sub_type = str(tok)
        return type_ref

    def attr_ident(self, args):
        return parse_attribute(str(args[0]))

    def attr_call(self, args):
        name, arg = args
        try:
            return parse_attribute(str(name), int(arg))
        except ValueError:
            raise SalSyntaxError(["'Order'"], str(name), self.file, name.line, name.column) from None

    @staticmethod
    def _number(props: list[Property]) -> list[Property]:
        for i, p in enumerate(props):
            p.index = i
        return props


def _syntax_error(e: UnexpectedInput, file: str) -> SalError:
    if isinstance(e, UnexpectedCharacters):
        return LexError(f"unexpected character {e.char!r}", file, e.line, e.column)
    expected = sorted({describe_terminal(t) for t in getattr(e, "expected", ()) or ()})
    if isinstance(e, UnexpectedToken) and e.token.type != "$END":
        found = f"{describe_terminal(e.token.type)} '{e.token}'"
        if describe_terminal(e.token.type).startswith("'"):
            found = describe_terminal(e.token.type)
    else:
        found = "end of input"
    line = e.line if e.line and e.line > 0 else 0
    column = e.column if e.column and e.column > 0 else 0
    return SalSyntaxError(expected, found, file, line, column)


def parse_sal(text: str, file: str = "<sal>") -> list:
    """Parse SAL text into an ordered statement list.

    Statements keep their declaration order; top-level ``#`` comments are
    interleaved as ``CommentStmt`` entries at their source position.
    """
    try:
        tree = sal_lark.parse(text)
    except UnexpectedInput as e:
        raise _syntax_error(e, file) from None

    spans = [(child.meta.line, child.meta.end_line) for child in tree.children
             if not child.meta.empty]
    try:
        statements = SalTransformer(file).transform(tree)
    except VisitError as e:
        if isinstance(e.orig_exc, SalError):
            raise e.orig_exc from None
        raise

    comments = []
    for tok in tokenize(text, file):
        if tok.kind is not TokenKind.COMMENT:
            continue
        if any(start <= tok.line <= end for start, end in spans):
            continue
        comments.append(CommentStmt(tok.lexeme[1:].strip(), SourceLocation(tok.line, tok.column)))

    if not comments:
        return statements
    merged = statements + comments
    merged.sort(key=lambda s: (s.loc.line, s.loc.column) if s.loc else (0, 0))
    return merged
