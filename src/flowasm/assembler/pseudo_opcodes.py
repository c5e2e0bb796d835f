"""
Basic Pseudo Opcodes
====================

The non flow control pseudo opcodes:

| Pseudo opcode              | Effect                                   |
|----------------------------|------------------------------------------|
| !byte/!by/!08/!8 a, b ...  | Emit one byte per value                  |
| !set name = expr           | Assign, redefinition allowed             |
| !zone [title] [{ ... }]    | Open a new zone for local symbols        |
| !warn "text"               | Warning (first pass only)                |
| !error "text"              | Error, assembly continues                |
| !serious "text"            | Serious error, rest of file abandoned    |
"""

from typing import TYPE_CHECKING

from flowasm.assembler.cursor import CHAR_SOB
from flowasm.assembler.directives import Eos, PseudoOpcodeTable
from flowasm.assembler.lexer import is_keyword_start
from flowasm.assembler.parser import parse_block
from flowasm.errors import AssemblerError, AssemblySyntaxError, SeriousError

if TYPE_CHECKING:
    from flowasm.assembler.context import AssemblyContext


def po_byte(ctx: "AssemblyContext") -> Eos:
    """Emit a list of byte values; undefined values emit 0."""
    while True:
        result = ctx.evaluator.evaluate()
        ctx.emit_byte(result.value if result.defined else 0)
        if not ctx.lexer.accept_comma():
            break
    return Eos.ENSURE_EOS


def po_set(ctx: "AssemblyContext") -> Eos:
    lexer = ctx.lexer
    location = ctx.location()
    zone, name = lexer.read_zone_and_keyword(ctx.zone)
    if not name:
        raise AssemblySyntaxError("Missing symbol name.", location)
    force_bit = lexer.get_force_bit()
    symbol = ctx.symbols.find(name, zone, force_bit, location)

    if lexer.last_byte != "=":
        raise AssemblySyntaxError("Syntax error.", ctx.location(), hint="expected '='")
    lexer.get_byte()
    result = ctx.evaluator.evaluate()
    ctx.symbols.set_value(symbol, result.value, result.defined, change_allowed=True)
    return Eos.ENSURE_EOS


def po_zone(ctx: "AssemblyContext") -> Eos:
    """
    Open a new zone.

    Without a block, the zone lasts until the next "!zone". With a block,
    the previous zone is restored after it.
    """
    lexer = ctx.lexer
    char = lexer.skip_space()
    if char == '"':
        lexer.read_string()
    elif is_keyword_start(char):
        lexer.read_keyword()

    new_zone = ctx.new_zone()
    if lexer.skip_space() != CHAR_SOB:
        ctx.zone = new_zone
        return Eos.ENSURE_EOS

    outer_zone = ctx.zone
    ctx.zone = new_zone
    try:
        parse_block(ctx)
    finally:
        ctx.zone = outer_zone
    lexer.get_byte()
    return Eos.ENSURE_EOS


def po_warn(ctx: "AssemblyContext") -> Eos:
    ctx.first_pass_warning(ctx.lexer.read_string())
    return Eos.ENSURE_EOS


def po_error(ctx: "AssemblyContext") -> Eos:
    location = ctx.location()
    raise AssemblerError(ctx.lexer.read_string(), location)


def po_serious(ctx: "AssemblyContext") -> Eos:
    location = ctx.location()
    raise SeriousError(ctx.lexer.read_string(), location)


def register(table: PseudoOpcodeTable) -> None:
    """Add the basic pseudo opcodes to a table."""
    table.add_table({
        "byte": po_byte,
        "by": po_byte,
        "08": po_byte,
        "8": po_byte,
        "set": po_set,
        "zone": po_zone,
        "zn": po_zone,
        "warn": po_warn,
        "error": po_error,
        "serious": po_serious,
    })
