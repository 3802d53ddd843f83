"""Tokenizer for SAL block text.

The token set is the terminal set of ``grammar/sal.lark``; the same Lark
instance is shared with the tree builder so both always agree on what a
keyword, identifier or literal is.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from lark import Lark
from lark.exceptions import UnexpectedCharacters

from salc.errors import LexError

_GRAMMAR_PATH = Path(__file__).parent.parent / "grammar" / "sal.lark"

sal_lark = Lark(
    _GRAMMAR_PATH.read_text(encoding="utf-8"),
    parser="lalr",
    lexer="basic",
    propagate_positions=True,
    maybe_placeholders=True,
)


class TokenKind(Enum):
    KEYWORD = "keyword"
    IDENTIFIER = "identifier"
    LITERAL = "literal"
    PUNCTUATION = "punctuation"
    COMMENT = "comment"


_KEYWORDS = frozenset({
    "_USE", "_AS", "_CONST", "_STRUCT", "_OUTPUT",
    "_VFORMAT", "_PIPELINE", "_BLENDFUNC",
})
_LITERALS = frozenset({"INT", "FLOAT", "TRUE", "FALSE"})

_FRIENDLY_NAMES = {
    "IDENT": "identifier",
    "INT": "integer",
    "FLOAT": "float",
    "$END": "end of input",
}


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    lexeme: str
    file: str
    line: int
    column: int

    def __str__(self):
        return f"{self.kind.value}({self.lexeme})"


def _kind_of(terminal: str) -> TokenKind:
    if terminal in _KEYWORDS:
        return TokenKind.KEYWORD
    if terminal in _LITERALS:
        return TokenKind.LITERAL
    if terminal == "IDENT":
        return TokenKind.IDENTIFIER
    if terminal == "COMMENT":
        return TokenKind.COMMENT
    return TokenKind.PUNCTUATION


def tokenize(text: str, file: str = "<sal>") -> list[Token]:
    """Split SAL text into tokens. Whitespace is dropped, comments are kept."""
    tokens = []
    try:
        for tok in sal_lark.lex(text, dont_ignore=True):
            if tok.type == "WS":
                continue
            tokens.append(Token(_kind_of(tok.type), str(tok), file, tok.line, tok.column))
    except UnexpectedCharacters as e:
        raise LexError(
            f"unexpected character {e.char!r}", file, e.line, e.column
        ) from None
    return tokens


def describe_terminal(name: str) -> str:
    """Human readable form of a grammar terminal, for diagnostics."""
    if name in _FRIENDLY_NAMES:
        return _FRIENDLY_NAMES[name]
    try:
        term = sal_lark.get_terminal(name)
    except KeyError:
        return name.lstrip("_").lower()
    if term.pattern.type == "str":
        return f"'{term.pattern.value}'"
    return name.lower()
