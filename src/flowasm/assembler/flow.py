"""
Flow Control Pseudo Opcodes
===========================

Loops, conditional assembly, macro definitions and source inclusion.

Loops
-----
```asm
!do [until|while COND] {
    ...
} [until|while COND]

!for VAR, END {        ; old syntax: VAR = 1 .. END, END = 0 runs nothing
    ...
}

!for VAR, START, END { ; new syntax: counts up or down, END inclusive
    ...
}
```

Loop bodies are captured once and re-parsed from memory on every
iteration. A ``!do`` condition is captured as text and re-evaluated each
time it is checked. ``until`` inverts the condition; ``while`` does not.
The head condition is checked before every iteration, the tail condition
only after an iteration has run.

Conditional Assembly
--------------------
```asm
!if EXPR { ... } [else { ... }]
!ifdef SYMBOL { ... } [else { ... }]
!ifndef SYMBOL { ... } [else { ... }]
!ifdef SYMBOL statement       ; single-line form, no block
```

Exactly one block is parsed; the other is skipped but must still be
balanced. The value of an ``!if`` expression must be known in the pass
where it is evaluated.

Inclusion
---------
``!source "file"`` (or ``!src``) parses another file in place.
``!source <file>`` searches the include paths only.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from flowasm.assembler import macros
from flowasm.assembler.cursor import (
    CHAR_EOB,
    CHAR_EOF,
    CHAR_EOS,
    CHAR_SOB,
    CapturedBlock,
)
from flowasm.assembler.directives import Eos, PseudoOpcodeTable
from flowasm.assembler.parser import parse_and_close_file, parse_block
from flowasm.errors import (
    AssemblySyntaxError,
    IncludeError,
    LoopCountError,
    MacroError,
    MissingBlockDelimiterError,
    NestingDepthError,
)

if TYPE_CHECKING:
    from flowasm.assembler.context import AssemblyContext

logger = logging.getLogger(__name__)


# Condition keyword -> whether the condition is inverted
CONDITION_KEYWORDS = {
    "until": True,
    "while": False,
}


# =============================================================================
# Loop Conditions
# =============================================================================

@dataclass
class LoopCondition:
    """
    A captured "!do" condition.

    Attributes:
        line_number: Line the condition was read from
        invert: True for "until"
        body: Expression text terminated by CHAR_EOS, or None if there is
            no condition (always true)
    """
    line_number: int
    invert: bool = False
    body: Optional[str] = None


def _store_condition(ctx: "AssemblyContext", terminator: str) -> LoopCondition:
    """
    Read an optional "until"/"while" condition up to the terminator.

    A bad keyword is recorded as a syntax error; the rest of the condition
    is discarded and the condition treated as always true.
    """
    lexer = ctx.lexer
    condition = LoopCondition(line_number=ctx.input.line_number)

    if lexer.skip_space() in (terminator, CHAR_EOS):
        return condition

    location = ctx.location()
    keyword = lexer.read_and_lower_keyword()
    if keyword not in CONDITION_KEYWORDS:
        ctx.record(AssemblySyntaxError(
            "Syntax error.", location, hint='expected "until" or "while"'
        ))
        lexer.until_terminator(terminator)
        return condition

    condition.invert = CONDITION_KEYWORDS[keyword]
    lexer.skip_space()
    condition.body = lexer.until_terminator(terminator) + CHAR_EOS
    return condition


def _check_condition(ctx: "AssemblyContext", condition: LoopCondition) -> bool:
    """Evaluate a captured condition; a missing condition is true."""
    if condition.body is None:
        return True

    with ctx.input.memory_scope(condition.body, condition.line_number):
        ctx.lexer.get_byte()
        value = ctx.evaluator.defined_int()
        if ctx.input.last_byte != CHAR_EOS:
            ctx.record(AssemblySyntaxError(
                "Syntax error.", ctx.location(), hint="garbage after loop condition"
            ))

    if condition.invert:
        return not value
    return bool(value)


def _parse_ram_block(ctx: "AssemblyContext", block: CapturedBlock) -> None:
    """Run a captured block once."""
    with ctx.input.memory_scope(block.text, block.line_number, block.filename):
        parse_block(ctx)


def _expect_block_start(ctx: "AssemblyContext") -> None:
    if ctx.lexer.skip_space() != CHAR_SOB:
        raise MissingBlockDelimiterError(CHAR_SOB, ctx.location())


# =============================================================================
# !do
# =============================================================================

def po_do(ctx: "AssemblyContext") -> Eos:
    """
    Handle "!do": a loop with optional head and tail conditions.
    """
    lexer = ctx.lexer

    head = _store_condition(ctx, CHAR_SOB)
    _expect_block_start(ctx)
    body = ctx.input.skip_or_store_block(store=True)
    lexer.next_and_skip_space()
    tail = _store_condition(ctx, CHAR_EOS)

    iterations = 0
    while _check_condition(ctx, head):
        _parse_ram_block(ctx, body)
        iterations += 1
        if not _check_condition(ctx, tail):
            break

    logger.debug(f"!do loop at line {body.line_number} ran {iterations} times")
    return Eos.AT_EOS_ANYWAY


# =============================================================================
# !for
# =============================================================================

def po_for(ctx: "AssemblyContext") -> Eos:
    """
    Handle "!for" in both its old and new syntax.
    """
    lexer = ctx.lexer
    evaluator = ctx.evaluator
    location = ctx.location()

    zone, name = lexer.read_zone_and_keyword(ctx.zone)
    if not name:
        raise AssemblySyntaxError("Missing loop counter name.", location)
    force_bit = lexer.get_force_bit()
    symbol = ctx.symbols.find(name, zone, force_bit, location)

    if not lexer.accept_comma():
        raise AssemblySyntaxError(
            "Syntax error.", ctx.location(), hint="expected ',' after loop counter"
        )

    first_arg = evaluator.defined_int()
    if lexer.accept_comma():
        old_algo = False
        if not ctx.config.warn_on_old_for:
            ctx.first_pass_warning('Found new "!for" syntax.')
        counter_first = first_arg
        counter_last = evaluator.defined_int()
        increment = -1 if counter_last < counter_first else 1
    else:
        old_algo = True
        if ctx.config.warn_on_old_for:
            ctx.first_pass_warning('Found old "!for" syntax.')
        if first_arg < 0:
            raise LoopCountError("Loop count is negative.", ctx.location())
        counter_first = 0
        counter_last = first_arg
        increment = 1

    _expect_block_start(ctx)
    body = ctx.input.skip_or_store_block(store=True)

    counter = counter_first
    ctx.symbols.set_value(symbol, counter, change_allowed=True)
    if old_algo:
        while counter < counter_last:
            counter += increment
            ctx.symbols.set_value(symbol, counter, change_allowed=True)
            _parse_ram_block(ctx, body)
    else:
        while True:
            _parse_ram_block(ctx, body)
            counter += increment
            ctx.symbols.set_value(symbol, counter, change_allowed=True)
            if counter == counter_last + increment:
                break

    lexer.get_byte()
    return Eos.ENSURE_EOS


# =============================================================================
# !if / !ifdef / !ifndef
# =============================================================================

def _skip_or_parse_block(ctx: "AssemblyContext", parse: bool) -> None:
    if parse:
        parse_block(ctx)
    else:
        ctx.input.skip_or_store_block(store=False)


def _parse_block_else_block(ctx: "AssemblyContext", parse_first: bool) -> None:
    """
    Handle "{ ... } [else { ... }]" with last_byte on the first '{'.

    Leaves last_byte after the last '}'.
    """
    lexer = ctx.lexer

    _skip_or_parse_block(ctx, parse_first)
    if lexer.next_and_skip_space() == CHAR_EOS:
        return

    location = ctx.location()
    keyword = lexer.read_and_lower_keyword()
    if keyword:
        if keyword != "else":
            ctx.record(AssemblySyntaxError(
                "Syntax error.", location, hint='expected "else"'
            ))
        else:
            _expect_block_start(ctx)
            _skip_or_parse_block(ctx, not parse_first)
            lexer.get_byte()


def po_if(ctx: "AssemblyContext") -> Eos:
    """Handle "!if": parse one of two blocks depending on a value."""
    condition = ctx.evaluator.defined_int()
    _expect_block_start(ctx)
    _parse_block_else_block(ctx, bool(condition))
    return Eos.ENSURE_EOS


def _ifdef_ifndef(ctx: "AssemblyContext", invert: bool) -> Eos:
    lexer = ctx.lexer
    location = ctx.location()
    zone, name = lexer.read_zone_and_keyword(ctx.zone)
    if not name:
        raise AssemblySyntaxError("Missing symbol name.", location)

    # Only look: testing a name must not create it
    symbol = ctx.symbols.lookup(name, zone)
    defined = False
    if symbol is not None:
        if ctx.is_first_pass:
            symbol.usage += 1
        defined = symbol.defined

    if invert:
        defined = not defined

    if lexer.skip_space() != CHAR_SOB:
        return Eos.PARSE_REMAINDER if defined else Eos.SKIP_REMAINDER

    _parse_block_else_block(ctx, defined)
    return Eos.ENSURE_EOS


def po_ifdef(ctx: "AssemblyContext") -> Eos:
    """Handle "!ifdef"."""
    return _ifdef_ifndef(ctx, invert=False)


def po_ifndef(ctx: "AssemblyContext") -> Eos:
    """Handle "!ifndef"."""
    return _ifdef_ifndef(ctx, invert=True)


# =============================================================================
# !macro
# =============================================================================

def po_macro(ctx: "AssemblyContext") -> Eos:
    """
    Handle "!macro".

    The definition is recorded in the first pass. Later passes only skip
    over the body.
    """
    lexer = ctx.lexer

    if ctx.is_first_pass:
        location = ctx.location()
        macro = macros.parse_definition(ctx)
        try:
            ctx.macros.define(macro, location)
        except MacroError as error:
            ctx.record(error)
        else:
            logger.debug(f"Defined macro '{macro.name}' at {location}")
    else:
        while lexer.last_byte != CHAR_SOB:
            if lexer.last_byte == CHAR_EOF:
                raise MissingBlockDelimiterError(CHAR_SOB, ctx.location())
            lexer.get_byte()
        ctx.input.skip_or_store_block(store=False)

    lexer.get_byte()
    return Eos.ENSURE_EOS


# =============================================================================
# !source
# =============================================================================

def _search_paths(ctx: "AssemblyContext", is_library: bool) -> list[Path]:
    paths = []
    if not is_library:
        including = ctx.input.filename
        if not including.startswith("<"):
            paths.append(Path(including).parent)
        else:
            paths.append(Path.cwd())
    paths.extend(ctx.config.include_paths)
    return paths


def _find_source(filename: str, search_paths: list[Path]) -> Optional[Path]:
    path = Path(filename)
    if path.is_absolute():
        return path if path.is_file() else None

    for directory in search_paths:
        candidate = directory / path
        if candidate.is_file():
            return candidate
    return None


def po_source(ctx: "AssemblyContext") -> Eos:
    """
    Handle "!source": parse another file, then continue after the
    directive.
    """
    ctx.source_depth_left -= 1
    try:
        if ctx.source_depth_left < 0:
            raise NestingDepthError(
                '"!source"', ctx.config.max_nesting_depth, ctx.location()
            )

        location = ctx.location()
        filename, is_library = ctx.lexer.read_filename()
        search_paths = _search_paths(ctx, is_library)
        path = _find_source(filename, search_paths)
        if path is None:
            ctx.record(IncludeError(
                filename, "not found", location, [str(p) for p in search_paths]
            ))
            return Eos.ENSURE_EOS

        try:
            handle = open(path, "rb")
        except OSError as e:
            ctx.record(IncludeError(filename, e.strerror or str(e), location))
            return Eos.ENSURE_EOS

        parse_and_close_file(ctx, handle, str(path))
    finally:
        ctx.source_depth_left += 1

    return Eos.ENSURE_EOS


# =============================================================================
# Registration
# =============================================================================

def register(table: PseudoOpcodeTable) -> None:
    """Add the flow control pseudo opcodes to a table."""
    table.add_table({
        "do": po_do,
        "for": po_for,
        "if": po_if,
        "ifdef": po_ifdef,
        "ifndef": po_ifndef,
        "macro": po_macro,
        "source": po_source,
        "src": po_source,
    })
