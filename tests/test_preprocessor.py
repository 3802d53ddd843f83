"""Tests for splitting shader files into stage, SAL blocks and body."""

import logging
import pytest

from salc.errors import LexError, StageError
from salc.preprocessor import DEFAULT_STAGE, preprocess


SOURCE = """#stage pixel
#sal
const float Time;
#sal
void main() {}
"""


class TestBlocks:
    def test_single_block(self):
        pre = preprocess(SOURCE, "a")
        assert len(pre.blocks) == 1
        assert pre.blocks[0].start_line == 2
        assert pre.blocks[0].end_line == 4

    def test_sal_text_keeps_line_numbers(self):
        pre = preprocess(SOURCE, "a")
        lines = pre.sal_text.split("\n")
        assert lines[2] == "const float Time;"
        assert lines[0] == ""
        assert lines[4] == ""

    def test_block_for_line(self):
        pre = preprocess(SOURCE, "a")
        assert pre.block_for_line(3) == 0
        assert pre.block_for_line(2) == -1
        assert pre.block_for_line(5) == -1

    def test_multiple_blocks(self):
        src = "#stage vertex\n#sal\nconst float A;\n#sal\nint x;\n  #sal  \nconst float B;\n#sal\n"
        pre = preprocess(src, "a")
        assert len(pre.blocks) == 2
        assert pre.block_for_line(7) == 1

    def test_unterminated_block(self):
        with pytest.raises(LexError) as exc:
            preprocess("#stage vertex\nint x;\n#sal\nconst float A;\n", "a")
        assert exc.value.line == 3
        assert exc.value.file == "a"


class TestStage:
    def test_stage_directive(self):
        assert preprocess(SOURCE, "a").stage == "pixel"

    @pytest.mark.parametrize("stage", ["vertex", "hull", "domain", "geometry", "pixel"])
    def test_known_stages(self, stage):
        assert preprocess(f"#stage {stage}\n", "a").stage == stage

    def test_unknown_stage(self):
        with pytest.raises(StageError) as exc:
            preprocess("\n#stage compute\n", "a")
        assert exc.value.line == 2

    def test_missing_stage_defaults_with_warning(self, caplog):
        with caplog.at_level(logging.WARNING, logger="salc.preprocessor"):
            pre = preprocess("void main() {}\n", "a")
        assert pre.stage == DEFAULT_STAGE
        assert "no shader stage" in caplog.text

    def test_directive_lines_recorded(self):
        pre = preprocess(SOURCE, "a")
        assert pre.directive_lines == {1, 2, 4}

    def test_other_directives_are_body(self):
        pre = preprocess("#stage vertex\n#define FOO 1\n", "a")
        assert 2 not in pre.directive_lines
