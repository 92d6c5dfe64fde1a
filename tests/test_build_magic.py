"""Tests for magic comment program detection."""

import logging

import pytest

from texbuild_mcp.build.magic import (
    DEFAULT_PROGRAM,
    find_program_in_text,
    find_program_magic,
)


class TestFindProgramInText:
    """Tests for directive matching."""

    @pytest.mark.parametrize(
        "line,expected",
        [
            ("% !TEX program = xelatex", "xelatex"),
            ("% !TeX program = lualatex", "lualatex"),
            ("%!TEX program=xelatex", "xelatex"),
            ("%  !  TEX program   =   pdflatex", "pdflatex"),
            ("% !TEX TS-program = xelatex", "xelatex"),
            ("%!TeX TS-program=uplatex", "uplatex"),
        ],
    )
    def test_directive_variants(self, line, expected):
        """Test accepted directive spellings."""
        assert find_program_in_text(line + "\n\\documentclass{article}\n") == expected

    def test_no_directive(self):
        """Test document without directive."""
        assert find_program_in_text("\\documentclass{article}\n") is None

    def test_first_match_wins(self):
        """Test only the first directive counts."""
        content = "% !TEX program = xelatex\n% !TEX program = lualatex\n"
        assert find_program_in_text(content) == "xelatex"

    def test_directive_not_on_first_line(self):
        """Test directive further down is still found."""
        content = "% comment\n\n% !TEX program = lualatex\n\\begin{document}\n"
        assert find_program_in_text(content) == "lualatex"

    def test_lowercase_tex_not_matched(self):
        """Test only TEX/TeX spellings are recognised."""
        assert find_program_in_text("% !tex program = xelatex\n") is None

    def test_crlf_line_endings(self):
        """Test Windows line endings do not end up in the token."""
        assert find_program_in_text("% !TEX program = xelatex\r\nbody\r\n") == "xelatex"

    def test_trailing_text_not_matched(self):
        """Test token must end the line."""
        assert find_program_in_text("% !TEX program = xelatex extra\n") is None

    def test_empty_token_is_absent(self):
        """Test directive without program counts as absent."""
        assert find_program_in_text("% !TEX program =\n") is None


class TestFindProgramMagic:
    """Tests for file-based detection."""

    def test_default_without_directive(self, tex_document):
        """Test default program when no directive exists."""
        assert find_program_magic(tex_document) == DEFAULT_PROGRAM
        assert DEFAULT_PROGRAM == "pdflatex"

    def test_reads_directive(self, tmp_path):
        """Test directive is read from file."""
        doc = tmp_path / "main.tex"
        doc.write_text("% !TEX program = xelatex\n\\documentclass{article}\n")

        assert find_program_magic(str(doc)) == "xelatex"

    def test_custom_default(self, tex_document):
        """Test caller-provided default."""
        assert find_program_magic(tex_document, default="lualatex") == "lualatex"

    def test_logs_found_program(self, tmp_path, caplog):
        """Test found directive is logged to logger and sink."""
        doc = tmp_path / "main.tex"
        doc.write_text("% !TEX program = xelatex\n")
        sink: list[str] = []

        with caplog.at_level(logging.INFO, logger="texbuild_mcp.build.magic"):
            find_program_magic(str(doc), log=sink.append)

        assert sink == ["Found program by magic comment: xelatex"]
        assert "Found program by magic comment: xelatex" in caplog.text

    def test_no_log_without_directive(self, tex_document, caplog):
        """Test nothing is logged when the default is used."""
        sink: list[str] = []

        with caplog.at_level(logging.INFO, logger="texbuild_mcp.build.magic"):
            find_program_magic(tex_document, log=sink.append)

        assert sink == []
        assert "Found program" not in caplog.text

    def test_undecodable_bytes_tolerated(self, tmp_path):
        """Test non-UTF-8 content does not raise."""
        doc = tmp_path / "latin1.tex"
        doc.write_bytes(b"% !TEX program = xelatex\n\xe9t\xe9\n")

        assert find_program_magic(str(doc)) == "xelatex"

    def test_missing_file_raises(self, tmp_path):
        """Test unreadable file raises OSError."""
        with pytest.raises(OSError):
            find_program_magic(str(tmp_path / "missing.tex"))
