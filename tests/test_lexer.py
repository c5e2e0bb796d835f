# =============================================================================
# test_lexer.py - Input Frames, Block Capture and Lexer Helpers
# =============================================================================
# Tests for the character-level input layer of the assembler.
#
# Test coverage includes:
#   - Processing of raw file bytes (line breaks, blanks, comments, braces)
#   - Line number tracking, including through captured blocks
#   - Frame switching and restoration of the caller's last byte
#   - Block capture (nesting, quotes, missing '}')
#   - Keyword, comma, filename and terminator helpers
# =============================================================================

import io

import pytest

from flowasm.assembler.cursor import (
    CHAR_EOB,
    CHAR_EOF,
    CHAR_EOS,
    CHAR_SOL,
    InputStack,
)
from flowasm.assembler.lexer import Lexer, is_keyword_char, is_keyword_start
from flowasm.assembler.symbols import GLOBAL_ZONE
from flowasm.errors import AssemblySyntaxError, MissingBlockDelimiterError


# =============================================================================
# Helper Functions
# =============================================================================

def file_stack(data: bytes, filename: str = "test.a") -> InputStack:
    """Create a stack with one file frame reading the given bytes."""
    stack = InputStack()
    stack.enter_file_scope(io.BytesIO(data), filename)
    return stack


def read_all(stack: InputStack, limit: int = 200) -> list[str]:
    """Fetch characters up to and including the first CHAR_EOF."""
    chars = []
    while len(chars) < limit:
        char = stack.get_byte()
        chars.append(char)
        if char == CHAR_EOF:
            break
    return chars


def memory_lexer(text: str) -> tuple[InputStack, Lexer]:
    """Create a lexer over a memory frame, positioned on the first char."""
    stack = InputStack()
    stack.enter_memory_scope(text + CHAR_EOS, line_number=1, filename="<test>")
    stack.get_byte()
    return stack, Lexer(stack)


# =============================================================================
# File Processing Tests
# =============================================================================

class TestFileProcessing:
    """Test conversion of raw source bytes into the processed stream."""

    def test_newline_ends_statement(self):
        """A line break is delivered as end of statement."""
        assert read_all(file_stack(b"a\nb")) == ["a", CHAR_EOS, "b", CHAR_EOS, CHAR_EOF]

    def test_crlf_and_cr(self):
        """CRLF and lone CR behave like LF."""
        expected = ["a", CHAR_EOS, "b", CHAR_EOS, CHAR_EOF]
        assert read_all(file_stack(b"a\r\nb")) == expected
        assert read_all(file_stack(b"a\rb")) == expected

    def test_blank_runs_collapse(self):
        """Runs of spaces and tabs become a single space."""
        assert read_all(file_stack(b"a \t  b")) == ["a", " ", "b", CHAR_EOS, CHAR_EOF]

    def test_comment_dropped(self):
        """A ';' comment ends the statement and is not delivered."""
        chars = read_all(file_stack(b"a ; hi } there\nb"))
        assert chars == ["a", " ", CHAR_EOS, "b", CHAR_EOS, CHAR_EOF]

    def test_closing_brace_preceded_by_eos(self):
        """'}' always arrives after an end of statement."""
        chars = read_all(file_stack(b"x}"))
        assert chars == ["x", CHAR_EOS, CHAR_EOB, CHAR_EOS, CHAR_EOF]

    def test_quotes_protect_special_characters(self):
        """Inside quotes, ';' and '}' are ordinary characters."""
        chars = read_all(file_stack(b'"a;}"'))
        assert chars == ['"', "a", ";", "}", '"', CHAR_EOS, CHAR_EOF]

    def test_line_break_closes_quote(self):
        """An unterminated quote ends at the line break."""
        chars = read_all(file_stack(b'"ab\n;c'))
        assert chars == ['"', "a", "b", CHAR_EOS, CHAR_EOS, CHAR_EOF]

    def test_eof_repeats(self):
        """Reading past the end keeps returning end of file."""
        stack = file_stack(b"")
        assert stack.get_byte() == CHAR_EOS
        assert stack.get_byte() == CHAR_EOF
        assert stack.get_byte() == CHAR_EOF

    def test_large_file_read_in_chunks(self):
        """Files larger than one read chunk are processed completely."""
        data = b"ab\n" * 5000
        chars = read_all(file_stack(data), limit=20000)
        assert chars.count("a") == 5000
        assert chars[-1] == CHAR_EOF

    def test_line_numbers(self):
        """Start-of-line markers advance the line number invisibly."""
        stack = file_stack(b"a\n\nb")
        assert stack.get_byte() == "a"
        assert stack.line_number == 1
        stack.get_byte()  # EOS
        stack.get_byte()  # EOS of the empty line
        assert stack.get_byte() == "b"
        assert stack.line_number == 3


# =============================================================================
# Frame Switching Tests
# =============================================================================

class TestFrameSwitching:
    """Test pushing and popping of input frames."""

    def test_memory_frame_starts_at_eos(self):
        """A fresh frame has end of statement as its last byte."""
        stack = file_stack(b"abc")
        stack.get_byte()
        with stack.memory_scope("xy", line_number=7) as frame:
            assert frame.last_byte == CHAR_EOS
            assert stack.line_number == 7

    def test_leaving_restores_last_byte(self):
        """The caller sees its own last byte again after the switch."""
        stack = file_stack(b"ab")
        assert stack.get_byte() == "a"
        with stack.memory_scope("xyz" + CHAR_EOS, line_number=1):
            assert stack.get_byte() == "x"
            assert stack.get_byte() == "y"
        assert stack.last_byte == "a"
        assert stack.get_byte() == "b"

    def test_memory_frame_inherits_filename(self):
        """Captured text reports the file it came from."""
        stack = file_stack(b"a", filename="main.a")
        with stack.memory_scope("x", line_number=3):
            assert str(stack.location()) == "main.a:3"

    def test_memory_frame_counts_lines(self):
        """SOL markers in captured text advance the line number."""
        stack = file_stack(b"")
        text = "a" + CHAR_EOS + CHAR_SOL + "b" + CHAR_EOS
        with stack.memory_scope(text, line_number=10):
            stack.get_byte()
            assert stack.line_number == 10
            stack.get_byte()
            assert stack.get_byte() == "b"
            assert stack.line_number == 11

    def test_memory_frame_past_end_is_eof(self):
        """Reading past a captured buffer yields end of file."""
        stack = file_stack(b"")
        with stack.memory_scope("a", line_number=1):
            stack.get_byte()
            assert stack.get_byte() == CHAR_EOF

    def test_frame_popped_on_exception(self):
        """A frame is removed even when parsing inside it fails."""
        stack = file_stack(b"a")
        with pytest.raises(ValueError):
            with stack.memory_scope("x", line_number=1):
                raise ValueError("boom")
        assert stack.depth == 1

    def test_file_scope_closes_handle(self):
        """Leaving a file frame closes its handle."""
        stack = InputStack()
        handle = io.BytesIO(b"abc")
        with pytest.raises(RuntimeError):
            with stack.file_scope(handle, "x.a"):
                raise RuntimeError("abort")
        assert handle.closed
        assert stack.depth == 0

    def test_leave_without_enter(self):
        """Leaving an empty stack is a programming error."""
        with pytest.raises(RuntimeError):
            InputStack().leave_scope()


# =============================================================================
# Block Capture Tests
# =============================================================================

class TestBlockCapture:
    """Test skipping and storing of brace-delimited blocks."""

    def test_store_nested_block(self):
        """Nested blocks are captured up to the matching brace."""
        stack = file_stack(b"{ab{c}d}e")
        assert stack.get_byte() == "{"
        block = stack.skip_or_store_block(store=True)
        assert block.text == (
            "ab{c" + CHAR_EOS + "}d" + CHAR_EOS + "}" + CHAR_EOS + CHAR_EOF
        )
        assert stack.last_byte == "}"
        assert stack.get_byte() == "e"

    def test_quoted_brace_ignored(self):
        """A brace inside quotes does not close the block."""
        stack = file_stack(b'{"}"}x')
        stack.get_byte()
        block = stack.skip_or_store_block(store=True)
        assert block.text.startswith('"}"')
        assert stack.get_byte() == "x"

    def test_capture_keeps_line_markers(self):
        """Captured text keeps SOL markers and the starting line."""
        stack = file_stack(b"\n{\na\n}")
        stack.get_byte()
        assert stack.get_byte() == "{"
        block = stack.skip_or_store_block(store=True)
        assert block.line_number == 2
        assert block.filename == "test.a"
        assert block.text.count(CHAR_SOL) == 2
        assert stack.line_number == 4

    def test_skip_returns_none(self):
        """Skipping discards the block text."""
        stack = file_stack(b"{abc}d")
        stack.get_byte()
        assert stack.skip_or_store_block(store=False) is None
        assert stack.get_byte() == "d"

    def test_unterminated_block(self):
        """Running out of input before '}' is a serious error."""
        stack = file_stack(b"{abc\ndef")
        stack.get_byte()
        with pytest.raises(MissingBlockDelimiterError) as exc_info:
            stack.skip_or_store_block(store=True)
        assert "Missing '}'" in str(exc_info.value)
        assert "line 1" in exc_info.value.hint


# =============================================================================
# Lexer Helper Tests
# =============================================================================

class TestKeywords:
    """Test keyword reading."""

    def test_keyword_characters(self):
        """Letters, digits, '_' and high characters form keywords."""
        assert is_keyword_char("a")
        assert is_keyword_char("_")
        assert is_keyword_char("7")
        assert is_keyword_char("\xe9")
        assert not is_keyword_char(".")
        assert not is_keyword_char(CHAR_EOS)
        assert not is_keyword_start("7")

    def test_read_keyword(self):
        """A keyword stops at the first non-keyword character."""
        stack, lexer = memory_lexer("Hello_1 x")
        assert lexer.read_keyword() == "Hello_1"
        assert lexer.last_byte == " "

    def test_read_keyword_empty(self):
        """No keyword character gives an empty string."""
        _, lexer = memory_lexer("=5")
        assert lexer.read_keyword() == ""

    def test_read_and_lower(self):
        """Keywords can be folded to lower case."""
        _, lexer = memory_lexer("UNTIL x")
        assert lexer.read_and_lower_keyword() == "until"

    def test_local_name(self):
        """A leading '.' selects the current zone."""
        _, lexer = memory_lexer(".loop")
        assert lexer.read_zone_and_keyword(5) == (5, "loop")

    def test_global_name(self):
        """Names without '.' are global."""
        _, lexer = memory_lexer("  start")
        assert lexer.read_zone_and_keyword(5) == (GLOBAL_ZONE, "start")

    def test_force_bit(self):
        """A +1/+2/+3 postfix is read."""
        _, lexer = memory_lexer("+2 ,")
        assert lexer.get_force_bit() == 2
        assert lexer.last_byte == ","

    def test_illegal_force_bit(self):
        """Other postfixes are rejected."""
        _, lexer = memory_lexer("+9")
        with pytest.raises(AssemblySyntaxError):
            lexer.get_force_bit()


class TestStatementHelpers:
    """Test comma, end-of-statement and terminator helpers."""

    def test_accept_comma(self):
        """A comma and following blanks are consumed."""
        _, lexer = memory_lexer(" ,  5")
        assert lexer.accept_comma()
        assert lexer.last_byte == "5"

    def test_no_comma(self):
        """Without a comma nothing is consumed."""
        _, lexer = memory_lexer("5")
        assert not lexer.accept_comma()
        assert lexer.last_byte == "5"

    def test_ensure_eos(self):
        """Trailing blanks are fine, anything else is garbage."""
        _, lexer = memory_lexer("  ")
        lexer.ensure_eos()
        _, lexer = memory_lexer(" x")
        with pytest.raises(AssemblySyntaxError, match="Garbage"):
            lexer.ensure_eos()

    def test_skip_remainder(self):
        """The rest of the statement is discarded."""
        _, lexer = memory_lexer("a b c")
        lexer.skip_remainder()
        assert lexer.last_byte == CHAR_EOS

    def test_until_terminator(self):
        """Text is collected up to the terminator, quotes taken whole."""
        _, lexer = memory_lexer('x<"{"{')
        assert lexer.until_terminator("{") == 'x<"{"'
        assert lexer.last_byte == "{"

    def test_until_terminator_stops_at_eos(self):
        """The end of statement also ends the collection."""
        _, lexer = memory_lexer("n < 3")
        assert lexer.until_terminator(CHAR_EOS) == "n < 3"


class TestFilenames:
    """Test "!source" argument reading."""

    def test_quoted(self):
        """A quoted name is relative to the including file."""
        _, lexer = memory_lexer('"inc/a.a"')
        assert lexer.read_filename() == ("inc/a.a", False)

    def test_library(self):
        """An angle-bracketed name is a library file."""
        _, lexer = memory_lexer("<lib.a>")
        assert lexer.read_filename() == ("lib.a", True)

    def test_bare(self):
        """A bare name ends at the first blank."""
        _, lexer = memory_lexer("bare.a rest")
        assert lexer.read_filename() == ("bare.a", False)
        assert lexer.last_byte == " "

    def test_unclosed_quote(self):
        """A missing closing quote is a syntax error."""
        _, lexer = memory_lexer('"abc')
        with pytest.raises(AssemblySyntaxError, match="Quotes still open"):
            lexer.read_filename()

    def test_missing_name(self):
        """An empty argument is a syntax error."""
        _, lexer = memory_lexer("")
        with pytest.raises(AssemblySyntaxError):
            lexer.read_filename()
