"""
Statement Parser
================

The statement parser reads the active input frame statement by statement
and acts on each one immediately; there is no intermediate syntax tree.
Loop and macro bodies are re-parsed from captured text by pushing a memory
frame and calling parse_until_eob_or_eof() again.

Statement Types
---------------
1. **Pseudo opcode**: ``!keyword ...`` - dispatched through the pseudo
   opcode table

2. **Macro call**: ``+name arg, arg``

3. **Program counter**: ``*= expr``

4. **Symbol assignment**: ``name = expr`` or ``.local = expr``

5. **Label**: ``name`` alone, optionally followed by a pseudo opcode or a
   macro call on the same line

Error Recovery
--------------
A recoverable error ends the current statement: it is recorded and the
rest of the statement is skipped. Serious errors are passed up to
parse_and_close_file(), which records them and abandons the file. Fatal
errors are never caught here.
"""

import logging
from typing import TYPE_CHECKING, BinaryIO

from flowasm.assembler import macros
from flowasm.assembler.cursor import CHAR_EOB, CHAR_EOF, CHAR_EOS
from flowasm.assembler.directives import Eos
from flowasm.assembler.lexer import LOCAL_PREFIX, is_keyword_start
from flowasm.assembler.symbols import GLOBAL_ZONE
from flowasm.errors import (
    AssemblerError,
    AssemblySyntaxError,
    FatalError,
    MissingBlockDelimiterError,
    NestingDepthError,
    SeriousError,
)

if TYPE_CHECKING:
    from flowasm.assembler.context import AssemblyContext

logger = logging.getLogger(__name__)


PSEUDO_OPCODE_PREFIX = "!"
MACRO_CALL_PREFIX = "+"
PC_MARKER = "*"


# =============================================================================
# Block and File Level
# =============================================================================

def parse_until_eob_or_eof(ctx: "AssemblyContext") -> None:
    """
    Parse statements until a '}' or the end of the input is reached.

    On return, last_byte is CHAR_EOB or CHAR_EOF; which one it is tells the
    caller whether the block was properly closed.
    """
    lexer = ctx.lexer
    while True:
        char = lexer.next_and_skip_space()
        if char == CHAR_EOB or char == CHAR_EOF:
            return
        parse_statement(ctx)


def parse_block(ctx: "AssemblyContext") -> None:
    """
    Parse a block whose '{' has just been read, up to its '}'.

    Raises:
        MissingBlockDelimiterError: If the input ends first
    """
    parse_until_eob_or_eof(ctx)
    if ctx.input.last_byte != CHAR_EOB:
        raise MissingBlockDelimiterError(CHAR_EOB, ctx.location())


def parse_and_close_file(ctx: "AssemblyContext", handle: BinaryIO, filename: str) -> None:
    """
    Parse a whole file, then close it.

    The caller's frame is restored afterwards with its last_byte intact.
    Serious errors abandon the rest of this file only.

    Args:
        ctx: Assembly context
        handle: Open binary file handle (closed on return)
        filename: Name used in diagnostics and for relative includes
    """
    logger.debug(f"Parsing source file '{filename}' (pass {ctx.pass_number})")

    with ctx.input.file_scope(handle, filename):
        try:
            parse_until_eob_or_eof(ctx)
            if ctx.input.last_byte != CHAR_EOF:
                ctx.record(AssemblySyntaxError(
                    "Found '}' instead of end-of-file.", ctx.location()
                ))
        except SeriousError as error:
            ctx.record(error)
            logger.debug(f"Abandoned '{filename}' after serious error")


# =============================================================================
# Statement Level
# =============================================================================

def parse_statement(ctx: "AssemblyContext") -> None:
    """Parse one statement; record recoverable errors and skip past them."""
    try:
        _parse_statement(ctx)
    except (SeriousError, FatalError):
        raise
    except AssemblerError as error:
        ctx.record(error)
        ctx.lexer.skip_remainder()


def _parse_statement(ctx: "AssemblyContext") -> None:
    lexer = ctx.lexer
    while True:
        char = lexer.skip_space()
        if char == CHAR_EOS:
            return

        if char == PSEUDO_OPCODE_PREFIX:
            _parse_pseudo_opcode(ctx)
        elif char == MACRO_CALL_PREFIX:
            _parse_macro_call(ctx)
        elif char == PC_MARKER:
            _parse_pc_def(ctx)
        elif char == LOCAL_PREFIX or is_keyword_start(char):
            _parse_symbol_def(ctx)
        else:
            raise AssemblySyntaxError("Syntax error.", ctx.location())


def _parse_pseudo_opcode(ctx: "AssemblyContext") -> None:
    lexer = ctx.lexer
    location = ctx.location()
    lexer.get_byte()
    keyword = lexer.read_and_lower_keyword()
    if not keyword:
        raise AssemblySyntaxError("Missing pseudo opcode.", location)

    handler = ctx.pseudo_opcodes.lookup(keyword)
    if handler is None:
        raise AssemblySyntaxError(
            "Unknown pseudo opcode.", location, hint=f"!{keyword}"
        )

    then = handler(ctx)
    if then is Eos.SKIP_REMAINDER:
        lexer.skip_remainder()
    elif then is Eos.ENSURE_EOS:
        lexer.ensure_eos()


def _parse_pc_def(ctx: "AssemblyContext") -> None:
    lexer = ctx.lexer
    if lexer.next_and_skip_space() != "=":
        raise AssemblySyntaxError("Syntax error.", ctx.location(), hint="expected '*='")
    lexer.get_byte()
    ctx.pc = ctx.evaluator.defined_int()
    lexer.ensure_eos()


def _parse_symbol_def(ctx: "AssemblyContext") -> None:
    lexer = ctx.lexer
    location = ctx.location()
    zone, name = lexer.read_zone_and_keyword(ctx.zone)
    if not name:
        raise AssemblySyntaxError("Missing symbol name.", location)
    force_bit = lexer.get_force_bit()
    symbol = ctx.symbols.find(name, zone, force_bit, location)

    if lexer.last_byte == "=":
        lexer.get_byte()
        result = ctx.evaluator.evaluate()
        ctx.symbols.set_value(symbol, result.value, result.defined, location=location)
        lexer.ensure_eos()
        return

    ctx.symbols.set_value(symbol, ctx.pc, location=location)
    if lexer.last_byte not in (CHAR_EOS, PSEUDO_OPCODE_PREFIX, MACRO_CALL_PREFIX):
        raise AssemblySyntaxError(
            "Syntax error.", ctx.location(), hint=f"unexpected text after label '{name}'"
        )


def _parse_macro_call(ctx: "AssemblyContext") -> None:
    """
    Run a macro body in a fresh zone with its parameters bound.

    Nested calls count against the nesting limit.
    """
    macro, arguments = macros.read_call(ctx)

    ctx.macro_depth_left -= 1
    try:
        if ctx.macro_depth_left < 0:
            raise NestingDepthError(
                "macro calls", ctx.config.max_nesting_depth, ctx.location()
            )

        outer_zone = ctx.zone
        ctx.zone = ctx.new_zone()
        try:
            for parameter, argument in zip(macro.parameters, arguments):
                zone = ctx.zone if parameter.is_local else GLOBAL_ZONE
                symbol = ctx.symbols.find(parameter.name, zone)
                ctx.symbols.set_value(
                    symbol, argument.value, argument.defined, change_allowed=True
                )

            body = macro.body
            with ctx.input.memory_scope(body.text, body.line_number, body.filename):
                parse_block(ctx)
        finally:
            ctx.zone = outer_zone
    finally:
        ctx.macro_depth_left += 1
