# =============================================================================
# test_flow.py - Flow Control Pseudo Opcode Tests
# =============================================================================
# Tests for loops, conditional assembly and source inclusion.
#
# Test coverage includes:
#   - "!for" in old and new syntax, counting up and down
#   - "!do" with head and tail conditions ("until"/"while")
#   - "!if"/"!ifdef"/"!ifndef" with and without "else"
#   - "!source" search paths, error recovery and nesting limits
#   - Line numbers reported from inside loop bodies
# =============================================================================

import os

import pytest

from flowasm.assembler import Assembler
from flowasm.assembler.symbols import GLOBAL_ZONE
from flowasm.errors import (
    AssemblyError,
    AssemblySyntaxError,
    IncludeError,
    LoopCountError,
    MissingBlockDelimiterError,
    NestingDepthError,
    SeriousError,
)


# =============================================================================
# Helper Functions
# =============================================================================

def assemble(source: str, **kwargs) -> bytes:
    """Assemble source and return the emitted bytes."""
    return Assembler(**kwargs).assemble_string(source)


def assemble_errors(source: str, **kwargs) -> list:
    """Assemble source that is expected to fail; return the recorded errors."""
    with pytest.raises(AssemblyError) as exc_info:
        Assembler(**kwargs).assemble_string(source)
    return exc_info.value.errors


def write_sources(directory, files: dict) -> None:
    """Write a set of source files below a directory."""
    for name, text in files.items():
        path = directory / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text)


# =============================================================================
# !for Tests
# =============================================================================

class TestFor:
    """Test the counting loop."""

    def test_old_syntax_counts_from_one(self):
        """'!for VAR, END' runs with VAR = 1 .. END."""
        asm = Assembler()
        assert asm.assemble_string("!for i, 3 {\n!byte i\n}\n") == bytes([1, 2, 3])
        assert asm.get_symbol("i") == 3

    def test_old_syntax_warns(self):
        """The old syntax draws a warning by default."""
        asm = Assembler()
        asm.assemble_string("!for i, 2 {\n}\n")
        assert asm.warnings == ['<input>:1: warning: Found old "!for" syntax.']

    def test_old_syntax_zero(self):
        """A count of zero runs the body not at all."""
        assert assemble("!for i, 0 {\n!byte 1\n}\n") == b""

    def test_old_syntax_negative(self):
        """A negative count is a serious error."""
        errors = assemble_errors("!for i, -1 {\n}\n")
        assert isinstance(errors[0], LoopCountError)
        assert errors[0].message == "Loop count is negative."

    def test_new_syntax_up(self):
        """'!for VAR, START, END' includes both ends."""
        asm = Assembler()
        assert asm.assemble_string("!for i, 2, 5 {\n!byte i\n}\n") == bytes([2, 3, 4, 5])
        assert asm.get_symbol("i") == 6
        assert asm.warnings == []

    def test_new_syntax_down(self):
        """The counter runs backwards when END < START."""
        assert assemble("!for i, 5, 2 {\n!byte i\n}\n") == bytes([5, 4, 3, 2])

    def test_new_syntax_single(self):
        """START == END runs exactly once."""
        assert assemble("!for i, 7, 7 {\n!byte i\n}\n") == bytes([7])

    def test_warn_on_new_syntax(self):
        """The warning can be switched to the new syntax."""
        asm = Assembler(warn_on_old_for=False)
        asm.assemble_string("!for i, 1, 2 {\n}\n!for j, 2 {\n}\n")
        assert asm.warnings == ['<input>:1: warning: Found new "!for" syntax.']

    def test_nested_loops(self):
        """Loops nest; the inner body sees both counters."""
        source = "!for i, 0, 1 {\n!for j, 0, 2 {\n!byte i * 3 + j\n}\n}\n"
        assert assemble(source) == bytes(range(6))

    def test_local_counter(self):
        """A '.name' counter lives in the current zone."""
        asm = Assembler()
        asm.assemble_string("!for .i, 1, 2 {\n!byte .i\n}\n")
        assert asm.symbols.lookup("i", GLOBAL_ZONE) is None

    def test_missing_comma(self):
        """The counter must be followed by a comma."""
        errors = assemble_errors("!for i 3 {\n}\n")
        assert isinstance(errors[0], AssemblySyntaxError)
        assert errors[0].hint == "expected ',' after loop counter"

    def test_missing_block(self):
        """Anything but '{' after the arguments is a serious error."""
        errors = assemble_errors("!for i, 1, 2 x\n")
        assert isinstance(errors[0], MissingBlockDelimiterError)
        assert errors[0].message == "Missing '{'."

    def test_undefined_end(self):
        """Loop bounds must be known when the loop runs."""
        errors = assemble_errors("!for i, 1, later {\n}\nlater = 2\n")
        assert isinstance(errors[0], SeriousError)
        assert errors[0].message == "Value not defined."


# =============================================================================
# !do Tests
# =============================================================================

class TestDo:
    """Test the conditional loop."""

    def test_while_head(self):
        """A 'while' head condition is checked before every iteration."""
        source = "n = 0\n!do while n < 3 {\n!byte n\n!set n = n + 1\n}\n"
        assert assemble(source) == bytes([0, 1, 2])

    def test_until_head(self):
        """'until' inverts the condition."""
        source = "!set n = 0\n!do until n = 2 {\n!byte 9\n!set n = n + 1\n}\n"
        assert assemble(source) == bytes([9, 9])

    def test_until_tail(self):
        """A tail condition is checked after the body has run."""
        assert assemble("!do {\n!byte 7\n} until 1\n") == bytes([7])

    def test_while_tail(self):
        source = "c = 0\n!do {\n!set c = c + 1\n} while c < 4\n!byte c\n"
        assert assemble(source) == bytes([4])

    def test_false_head_skips_body(self):
        """With a false head condition the body never runs."""
        assert assemble("!do while 0 {\n!byte 1\n}\n") == b""

    def test_tail_not_evaluated_without_iteration(self):
        """The tail is only evaluated after an iteration."""
        asm = Assembler()
        assert asm.assemble_string("!do while 0 {\n!byte 1\n} until missing\n") == b""
        assert asm.passes == 1

    def test_both_conditions(self):
        """Head and tail conditions combine."""
        source = (
            "!set n = 0\n"
            "!do while n < 10 {\n"
            "!set n = n + 1\n"
            "!byte n\n"
            "} until n = 3\n"
        )
        assert assemble(source) == bytes([1, 2, 3])

    def test_condition_keyword_case(self):
        """Condition keywords are case-insensitive."""
        assert assemble("!do {\n!byte 1\n} UNTIL 1\n") == bytes([1])

    def test_bad_condition_keyword(self):
        """Anything but 'until'/'while' is a syntax error."""
        errors = assemble_errors("!do unless 1 {\n!byte 1\n} until 1\n")
        assert isinstance(errors[0], AssemblySyntaxError)
        assert errors[0].hint == 'expected "until" or "while"'

    def test_garbage_after_condition(self):
        """Text after the condition expression is reported."""
        errors = assemble_errors("!do {\n!byte 1\n} until 1 2\n")
        assert errors[0].hint == "garbage after loop condition"

    def test_missing_block(self):
        """A '!do' without a block is a serious error."""
        errors = assemble_errors("!do while 1\n")
        assert isinstance(errors[0], MissingBlockDelimiterError)

    def test_unterminated_block(self):
        """A body running into the end of file is a serious error."""
        errors = assemble_errors("!do {\n!byte 1\n")
        assert errors[0].message == "Missing '}'."
        assert errors[0].hint == "block started at line 1"


# =============================================================================
# Line Number Tests
# =============================================================================

class TestLineNumbers:
    """Test that diagnostics point into the original source."""

    def test_loop_body_lines(self):
        """Each iteration reports the body's real line numbers."""
        source = (
            "c = 0\n"
            "!do {\n"
            "!warn \"in loop\"\n"
            "!set c = c + 1\n"
            "} until c = 2\n"
            "!warn \"after\"\n"
        )
        asm = Assembler()
        asm.assemble_string(source)
        assert asm.warnings == [
            "<input>:3: warning: in loop",
            "<input>:3: warning: in loop",
            "<input>:6: warning: after",
        ]

    def test_error_in_loop_body(self):
        """Errors inside a loop body carry the body's line."""
        errors = assemble_errors("!for i, 1 {\n\n!byte 300\n}\n")
        assert str(errors[0].location) == "<input>:3"


# =============================================================================
# Conditional Assembly Tests
# =============================================================================

class TestIf:
    """Test "!if"."""

    def test_true(self):
        assert assemble("!if 1 {\n!byte 1\n} else {\n!byte 2\n}\n") == bytes([1])

    def test_false(self):
        assert assemble("!if 0 {\n!byte 1\n} else {\n!byte 2\n}\n") == bytes([2])

    def test_without_else(self):
        assert assemble("!if 0 {\n!byte 1\n}\n!byte 3\n") == bytes([3])

    def test_expression(self):
        """Any nonzero value is true."""
        assert assemble("x = 4\n!if x & 4 {\n!byte 1\n}\n") == bytes([1])

    def test_skipped_block_not_parsed(self):
        """The skipped block may contain anything balanced."""
        assert assemble("!if 0 {\n!nonsense ???\n}\n") == b""

    def test_nested(self):
        source = "!if 1 {\n!if 0 {\n!byte 1\n} else {\n!byte 2\n}\n}\n"
        assert assemble(source) == bytes([2])

    def test_bad_else_keyword(self):
        """Only 'else' may follow the first block."""
        errors = assemble_errors("!if 1 {\n} elsif {\n}\n")
        assert errors[0].hint == 'expected "else"'

    def test_unbalanced_skipped_block(self):
        """A skipped block must still be closed before the end of file."""
        errors = assemble_errors("!if 1 {\n!byte 1\n} else {\n!byte 2\n")
        assert isinstance(errors[0], MissingBlockDelimiterError)
        assert errors[0].hint == "block started at line 3"

    def test_undefined_condition(self):
        """An undefined condition is a serious error."""
        errors = assemble_errors("!if later {\n}\nlater = 1\n")
        assert errors[0].message == "Value not defined."


class TestIfdef:
    """Test "!ifdef" and "!ifndef"."""

    def test_undefined_symbol(self):
        source = "!ifdef foo {\n!byte 1\n} else {\n!byte 2\n}\n"
        asm = Assembler()
        assert asm.assemble_string(source) == bytes([2])
        assert asm.symbols.lookup("foo", GLOBAL_ZONE) is None

    def test_defined_symbol(self):
        source = "!ifdef foo {\n!byte 1\n} else {\n!byte 2\n}\n"
        assert assemble(source, defines={"foo": 1}) == bytes([1])

    def test_ifndef(self):
        assert assemble("!ifndef foo {\n!byte 1\n}\n") == bytes([1])

    def test_ifndef_defined_takes_else(self):
        source = "!ifndef foo {\n!byte 1\n} else {\n!byte 2\n}\n"
        assert assemble(source, defines={"foo": 1}) == bytes([2])

    def test_single_line_skipped(self):
        """Without a block, the rest of the statement is skipped."""
        assert assemble("!ifdef foo !byte 1\n!byte 2\n") == bytes([2])

    def test_single_line_parsed(self):
        """Without a block, the rest of the statement is parsed."""
        assert assemble("!ifndef foo !byte 1\n") == bytes([1])

    def test_counts_usage(self):
        """Testing a symbol counts as a use."""
        asm = Assembler()
        asm.assemble_string("foo = 1\n!ifdef foo {\n}\n")
        assert asm.unused_symbols() == []


# =============================================================================
# !source Tests
# =============================================================================

class TestSource:
    """Test source file inclusion."""

    def test_include_relative(self, tmp_path):
        """Files are found relative to the including file."""
        write_sources(tmp_path, {
            "main.a": '!byte 1\n!source "sub/inc.a"\n!byte 3\n',
            "sub/inc.a": "!byte 2\n",
        })
        asm = Assembler()
        assert asm.assemble_file(tmp_path / "main.a") == bytes([1, 2, 3])

    def test_nested_relative(self, tmp_path):
        """Nested includes search the directory of their includer."""
        write_sources(tmp_path, {
            "main.a": '!src "sub/a.a"\n',
            "sub/a.a": '!src "b.a"\n',
            "sub/b.a": "!byte 5\n",
        })
        assert Assembler().assemble_file(tmp_path / "main.a") == bytes([5])

    def test_line_numbers_resume_after_include(self, tmp_path):
        """Each includer continues with its own line numbers."""
        write_sources(tmp_path, {
            "main.a": '!warn "main"\n!source "a.a"\n!warn "after"\n',
            "a.a": '\n!source "b.a"\n!warn "in a"\n',
            "b.a": '!warn "in b"\n',
        })
        asm = Assembler()
        asm.assemble_file(tmp_path / "main.a")
        assert [os.path.basename(warning) for warning in asm.warnings] == [
            "main.a:1: warning: main",
            "b.a:1: warning: in b",
            "a.a:3: warning: in a",
            "main.a:3: warning: after",
        ]

    def test_library_include(self, tmp_path):
        """'<name>' is searched in the include paths."""
        write_sources(tmp_path, {
            "main.a": "!source <lib.a>\n",
            "lib/lib.a": "!byte 4\n",
        })
        asm = Assembler(include_paths=[tmp_path / "lib"])
        assert asm.assemble_file(tmp_path / "main.a") == bytes([4])

    def test_not_found(self, tmp_path):
        """A missing file is reported and assembly continues."""
        write_sources(tmp_path, {
            "main.a": '!source "nope.a"\n!error "continued"\n',
        })
        with pytest.raises(AssemblyError) as exc_info:
            Assembler().assemble_file(tmp_path / "main.a")
        errors = exc_info.value.errors
        assert isinstance(errors[0], IncludeError)
        assert "searched in" in errors[0].hint
        assert errors[1].message == "continued"

    def test_serious_error_abandons_file(self, tmp_path):
        """A serious error ends the included file only."""
        write_sources(tmp_path, {
            "main.a": '!source "inc.a"\n!error "main continued"\n',
            "inc.a": '!serious "bad"\n!error "not reached"\n',
        })
        with pytest.raises(AssemblyError) as exc_info:
            Assembler().assemble_file(tmp_path / "main.a")
        messages = [error.message for error in exc_info.value.errors]
        assert messages == ["bad", "main continued"]
        location = exc_info.value.errors[0].location
        assert location.filename.endswith("inc.a")
        assert location.line == 1

    def test_recursive_include(self, tmp_path):
        """A file including itself hits the nesting limit."""
        write_sources(tmp_path, {"main.a": '!source "main.a"\n'})
        with pytest.raises(NestingDepthError) as exc_info:
            Assembler(max_nesting_depth=4).assemble_file(tmp_path / "main.a")
        assert exc_info.value.hint == "nesting limit is 4"

    def test_depth_limit(self, tmp_path):
        """The limit counts open files, not the main file."""
        write_sources(tmp_path, {
            "main.a": '!source "a.a"\n',
            "a.a": '!source "b.a"\n',
            "b.a": "!byte 1\n",
        })
        assert Assembler(max_nesting_depth=2).assemble_file(tmp_path / "main.a") == bytes([1])
        with pytest.raises(NestingDepthError):
            Assembler(max_nesting_depth=1).assemble_file(tmp_path / "main.a")

    def test_sequential_includes(self, tmp_path):
        """Depth is given back when an included file ends."""
        write_sources(tmp_path, {
            "main.a": '!source "a.a"\n!source "a.a"\n',
            "a.a": "!byte 2\n",
        })
        asm = Assembler(max_nesting_depth=1)
        assert asm.assemble_file(tmp_path / "main.a") == bytes([2, 2])

    def test_brace_in_included_file(self, tmp_path):
        """A stray '}' in an included file is reported there."""
        write_sources(tmp_path, {
            "main.a": '!source "inc.a"\n',
            "inc.a": "!byte 1\n}\n",
        })
        with pytest.raises(AssemblyError) as exc_info:
            Assembler().assemble_file(tmp_path / "main.a")
        error = exc_info.value.errors[0]
        assert error.message == "Found '}' instead of end-of-file."
        assert error.location.filename.endswith("inc.a")
