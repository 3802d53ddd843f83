"""Split a shader source file into its stage directive, SAL blocks and body.

SAL blocks are delimited by lines whose trimmed content is ``#sal``. The
extracted SAL text keeps the file's line numbering: every line that is not
inside a block is blanked, so lexer and parser positions are file positions.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field

from salc.errors import LexError, StageError

logger = logging.getLogger(__name__)

SAL_SENTINEL = "#sal"

STAGES = ("vertex", "hull", "domain", "geometry", "pixel")
DEFAULT_STAGE = "vertex"


@dataclass
class SalBlock:
    start_line: int  # line of the opening sentinel (1-based)
    end_line: int    # line of the closing sentinel

    def contains(self, line: int) -> bool:
        return self.start_line < line < self.end_line


@dataclass
class PreprocessedSource:
    file: str
    stage: str
    sal_text: str
    lines: list[str]
    blocks: list[SalBlock] = field(default_factory=list)
    directive_lines: set[int] = field(default_factory=set)

    def block_for_line(self, line: int) -> int:
        """Index of the SAL block containing ``line``."""
        for i, block in enumerate(self.blocks):
            if block.contains(line):
                return i
        return -1


def preprocess(source: str, file: str = "<source>") -> PreprocessedSource:
    lines = source.splitlines()
    sal_lines = []
    blocks = []
    directive_lines = set()
    stage = None
    open_line = None

    for lineno, line in enumerate(lines, start=1):
        trimmed = line.strip()
        if trimmed == SAL_SENTINEL:
            directive_lines.add(lineno)
            if open_line is None:
                open_line = lineno
            else:
                blocks.append(SalBlock(open_line, lineno))
                open_line = None
            sal_lines.append("")
            continue
        if open_line is not None:
            sal_lines.append(line)
            continue
        sal_lines.append("")
        if trimmed.startswith("#"):
            name, _, value = trimmed[1:].strip().partition(" ")
            if name == "stage":
                value = value.strip()
                if value not in STAGES:
                    raise StageError(f"unknown shader stage '{value}'", file, lineno, line.index("#") + 1)
                if stage is not None and stage != value:
                    logger.warning("%s: stage directive overrides '%s' with '%s'", file, stage, value)
                stage = value
                directive_lines.add(lineno)

    if open_line is not None:
        raise LexError("unterminated SAL block", file, open_line, 1)

    if stage is None:
        logger.warning("%s: no shader stage specified, assuming %s", file, DEFAULT_STAGE)
        stage = DEFAULT_STAGE

    return PreprocessedSource(
        file=file,
        stage=stage,
        sal_text="\n".join(sal_lines) + "\n",
        lines=lines,
        blocks=blocks,
        directive_lines=directive_lines,
    )
