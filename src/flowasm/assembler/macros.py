"""
Macro Definitions
=================

Macros are defined with:

    !macro name [param, .localparam ...] {
        ...body...
    }

and called with:

    +name [arg, arg ...]

The body is captured verbatim during the first pass and re-parsed from
memory at every call. Each call opens a new zone, so local symbols inside
the body (and parameters written with a leading '.') are private to that
call. Parameters without '.' are bound as global symbols.

A macro name written with a leading '.' is local to the zone it was
defined in.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterator, Optional

from flowasm.assembler.cursor import CHAR_EOS, CHAR_SOB, CapturedBlock
from flowasm.assembler.expressions import Result
from flowasm.assembler.symbols import GLOBAL_ZONE
from flowasm.errors import (
    AssemblySyntaxError,
    MacroError,
    MissingBlockDelimiterError,
    SourceLocation,
)

if TYPE_CHECKING:
    from flowasm.assembler.context import AssemblyContext


@dataclass(frozen=True)
class MacroParameter:
    """A formal macro parameter."""
    name: str
    is_local: bool


@dataclass
class Macro:
    """
    A macro definition.

    Attributes:
        name: Macro name (without '.')
        zone: Zone the name belongs to (GLOBAL_ZONE unless defined with '.')
        parameters: Formal parameters in order
        body: Captured body text
    """
    name: str
    zone: int
    parameters: tuple[MacroParameter, ...]
    body: CapturedBlock

    @property
    def location(self) -> SourceLocation:
        return SourceLocation(self.body.filename, self.body.line_number)


class MacroRegistry:
    """
    All macros known to an assembly run.

    Definitions are made in the first pass only and persist for the rest
    of the run.
    """

    def __init__(self):
        self._macros: dict[tuple[int, str], Macro] = {}

    def define(self, macro: Macro, location: Optional[SourceLocation] = None) -> None:
        """
        Register a macro.

        Raises:
            MacroError: If a macro of that name already exists
        """
        key = (macro.zone, macro.name)
        if key in self._macros:
            previous = self._macros[key]
            raise MacroError(
                f"Macro already defined ({macro.name}).",
                location,
                hint=f"previous definition at {previous.location}",
            )
        self._macros[key] = macro

    def get(self, name: str, zone: int) -> Optional[Macro]:
        return self._macros.get((zone, name))

    def names(self) -> list[str]:
        return sorted(name for _, name in self._macros)

    def __iter__(self) -> Iterator[Macro]:
        return iter(self._macros.values())

    def __len__(self) -> int:
        return len(self._macros)


# =============================================================================
# Parsing
# =============================================================================

def parse_definition(ctx: "AssemblyContext") -> Macro:
    """
    Parse the remainder of a "!macro" statement and capture the body.

    Leaves last_byte on the body's closing '}'.
    """
    lexer = ctx.lexer
    zone, name = lexer.read_zone_and_keyword(ctx.zone)
    if not name:
        raise AssemblySyntaxError("Missing macro name.", lexer.location())

    parameters = []
    if lexer.skip_space() != CHAR_SOB:
        while True:
            param_zone, param_name = lexer.read_zone_and_keyword(ctx.zone)
            if not param_name:
                raise AssemblySyntaxError(
                    "Missing parameter name.", lexer.location()
                )
            parameters.append(MacroParameter(param_name, param_zone != GLOBAL_ZONE))
            if not lexer.accept_comma():
                break

    if lexer.skip_space() != CHAR_SOB:
        raise MissingBlockDelimiterError(CHAR_SOB, lexer.location())

    body = ctx.input.skip_or_store_block(store=True)
    return Macro(name, zone, tuple(parameters), body)


def read_call(ctx: "AssemblyContext") -> tuple[Macro, list[Result]]:
    """
    Parse a macro call statement up to its end.

    Called with last_byte on the '+' that introduces the call.

    Returns:
        The macro and the evaluated arguments

    Raises:
        MacroError: If no macro with that name and argument count exists
    """
    lexer = ctx.lexer
    location = lexer.location()
    lexer.get_byte()
    zone, name = lexer.read_zone_and_keyword(ctx.zone)
    if not name:
        raise AssemblySyntaxError("Missing macro name.", location)

    arguments: list[Result] = []
    if lexer.skip_space() != CHAR_EOS:
        arguments.append(ctx.evaluator.evaluate())
        while lexer.accept_comma():
            arguments.append(ctx.evaluator.evaluate())
    lexer.ensure_eos()

    macro = ctx.macros.get(name, zone)
    if macro is None:
        raise MacroError(f"Macro not defined ({name}).", location)
    if len(macro.parameters) != len(arguments):
        raise MacroError(
            f"Wrong number of arguments for macro {name}.",
            location,
            hint=f"expected {len(macro.parameters)}, got {len(arguments)}",
        )
    return macro, arguments
