"""Diagnostic taxonomy for the SAL compiler.

Every error carries the file identifier and the line/column it was raised
at. Errors are raised inside a compilation phase and caught by the batch
driver at the per-file boundary, where they become ``Diagnostic`` records.
"""

from __future__ import annotations
from dataclasses import dataclass


class SalError(Exception):
    kind = "error"

    def __init__(self, message: str, file: str = "", line: int = 0, column: int = 0):
        super().__init__(message)
        self.message = message
        self.file = file
        self.line = line
        self.column = column

    def __str__(self):
        return f"{self.file}:{self.line}:{self.column}: {self.kind}: {self.message}"


class LexError(SalError):
    kind = "lex error"

    def __init__(self, reason: str, file: str = "", line: int = 0, column: int = 0):
        super().__init__(reason, file, line, column)
        self.reason = reason


class SalSyntaxError(SalError):
    kind = "syntax error"

    def __init__(self, expected: list[str], found: str, file: str = "", line: int = 0, column: int = 0):
        exp = " or ".join(expected) if expected else "end of block"
        super().__init__(f"expected {exp} but got {found}", file, line, column)
        self.expected = expected
        self.found = found


class StageError(SalError):
    kind = "stage error"


class UnresolvedImportError(SalError):
    kind = "unresolved import"

    def __init__(self, namespace: str, member: str, file: str = "", line: int = 0, column: int = 0):
        super().__init__(f"cannot resolve '{namespace}::{member}'", file, line, column)
        self.namespace = namespace
        self.member = member


class CyclicImportError(SalError):
    kind = "cyclic import"

    def __init__(self, cycle: list[str], file: str = "", line: int = 0, column: int = 0):
        super().__init__("import cycle " + " -> ".join(cycle), file, line, column)
        self.cycle = cycle


class DuplicateDefinitionError(SalError):
    kind = "duplicate definition"

    def __init__(self, name: str, file: str = "", line: int = 0, column: int = 0, what: str = "name"):
        super().__init__(f"{what} '{name}' is already defined", file, line, column)
        self.name = name


class AttributeMisuseError(SalError):
    kind = "attribute misuse"


class TypeResolutionError(SalError):
    kind = "type error"


class SlotCollisionError(SalError):
    kind = "slot collision"

    def __init__(self, slot: int, names: list[str], resource_class: str = "",
                 file: str = "", line: int = 0, column: int = 0, detail: str = ""):
        joined = ", ".join(f"'{n}'" for n in names)
        msg = f"{resource_class} slot {slot} is claimed by {joined}"
        if detail:
            msg = f"{msg} ({detail})"
        super().__init__(msg, file, line, column)
        self.slot = slot
        self.names = names
        self.resource_class = resource_class


class UnresolvedReferenceError(SalError):
    kind = "unresolved reference"

    def __init__(self, name: str, file: str = "", line: int = 0, column: int = 0, referrer: str = ""):
        msg = f"sampler '{name}' is not declared"
        if referrer:
            msg = f"sampler '{name}' referenced by '{referrer}' is not declared"
        super().__init__(msg, file, line, column)
        self.name = name


class BackendCompileError(SalError):
    """Wraps the backend collaborator's diagnostic log verbatim."""

    kind = "backend error"

    def __init__(self, log: str, file: str = ""):
        super().__init__(log, file)
        self.log = log

    def __str__(self):
        return f"{self.file}: {self.kind}:\n{self.log}"


@dataclass(frozen=True)
class Diagnostic:
    kind: str
    message: str
    file: str
    line: int = 0
    column: int = 0

    @classmethod
    def from_error(cls, err: SalError) -> Diagnostic:
        return cls(err.kind, err.message, err.file, err.line, err.column)

    def __str__(self):
        return f"{self.file}:{self.line}:{self.column}: {self.kind}: {self.message}"
