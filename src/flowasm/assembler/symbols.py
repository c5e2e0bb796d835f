"""
Symbol Table
============

Symbols are keyed by (zone, name). Global symbols live in GLOBAL_ZONE;
local symbols (written with a leading '.') live in the zone that was
current when they were referenced. Zones are numbered per pass in the
order they are opened, so the same source text gets the same zone numbers
in every pass.

A symbol can exist without being defined: referencing an unknown name in
an expression creates the entry so later passes can resolve it. The table
survives from pass to pass; that is how forward references work.
"""

from dataclasses import dataclass
from enum import Flag, auto
from typing import Iterator, Optional

from flowasm.errors import SymbolError, SourceLocation


GLOBAL_ZONE = 0


class SymbolFlags(Flag):
    """State bits of a symbol."""
    NONE = 0
    EXISTS = auto()     # Entry has been created by a reference or definition
    DEFINED = auto()    # Value is known


@dataclass
class Symbol:
    """
    One symbol table entry.

    Attributes:
        name: Symbol name without the local '.' prefix
        zone: Zone number (GLOBAL_ZONE for global symbols)
        value: Current value (0 while undefined)
        flags: EXISTS / DEFINED
        force_bit: Size postfix given at first use (+1, +2, +3), or 0
        usage: Number of references seen in the first pass
        pass_defined: Pass in which the value was last set
    """
    name: str
    zone: int
    value: int = 0
    flags: SymbolFlags = SymbolFlags.NONE
    force_bit: int = 0
    usage: int = 0
    pass_defined: Optional[int] = None

    @property
    def defined(self) -> bool:
        return SymbolFlags.DEFINED in self.flags

    @property
    def is_local(self) -> bool:
        return self.zone != GLOBAL_ZONE


class SymbolTable:
    """
    Mapping of (zone, name) to Symbol.

    Example:
        >>> table = SymbolTable()
        >>> sym = table.find("count", GLOBAL_ZONE)
        >>> table.set_value(sym, 3)
        >>> table.lookup("count", GLOBAL_ZONE).value
        3
    """

    def __init__(self):
        self._symbols: dict[tuple[int, str], Symbol] = {}
        self.pass_number = 0

    def begin_pass(self, pass_number: int) -> None:
        """Remember the pass number for redefinition checks."""
        self.pass_number = pass_number

    def lookup(self, name: str, zone: int) -> Optional[Symbol]:
        """Return the symbol, or None. Never creates an entry."""
        return self._symbols.get((zone, name))

    def find(
        self,
        name: str,
        zone: int,
        force_bit: int = 0,
        location: Optional[SourceLocation] = None,
    ) -> Symbol:
        """
        Return the symbol, creating an undefined entry if necessary.

        Raises:
            SymbolError: If a force bit is given that differs from the one
                the symbol was created with
        """
        key = (zone, name)
        symbol = self._symbols.get(key)
        if symbol is None:
            symbol = Symbol(name, zone, flags=SymbolFlags.EXISTS, force_bit=force_bit)
            self._symbols[key] = symbol
        elif force_bit and force_bit != symbol.force_bit:
            raise SymbolError("Too late for postfix.", location)
        return symbol

    def set_value(
        self,
        symbol: Symbol,
        value: int,
        defined: bool = True,
        change_allowed: bool = False,
        location: Optional[SourceLocation] = None,
    ) -> None:
        """
        Assign a value to a symbol.

        A defined symbol may only get a different value in the same pass if
        change_allowed is set ("!set", loop counters, macro parameters).
        Values carried over from an earlier pass may always be replaced.

        Raises:
            SymbolError: On an illegal redefinition
        """
        if (
            symbol.defined
            and not change_allowed
            and symbol.pass_defined == self.pass_number
            and symbol.value != value
        ):
            raise SymbolError(
                "Symbol already defined.",
                location,
                hint=f"{symbol.name} = {symbol.value}",
            )

        symbol.flags |= SymbolFlags.EXISTS
        if not defined:
            if not symbol.defined:
                symbol.value = value
            return

        symbol.value = value
        symbol.flags |= SymbolFlags.DEFINED
        symbol.pass_defined = self.pass_number

    def define(self, name: str, value: int) -> Symbol:
        """Define a global symbol from outside the source (e.g. -D)."""
        symbol = self.find(name, GLOBAL_ZONE)
        self.set_value(symbol, value, change_allowed=True)
        return symbol

    def values(self, zone: int = GLOBAL_ZONE) -> dict[str, int]:
        """Return name -> value for every defined symbol in a zone."""
        return {
            symbol.name: symbol.value
            for symbol in self._symbols.values()
            if symbol.zone == zone and symbol.defined
        }

    def unused(self) -> list[Symbol]:
        """Defined symbols that were never referenced in the first pass."""
        return [
            symbol for symbol in self._symbols.values()
            if symbol.defined and symbol.usage == 0
        ]

    def __iter__(self) -> Iterator[Symbol]:
        return iter(self._symbols.values())

    def __len__(self) -> int:
        return len(self._symbols)

    def __contains__(self, key: tuple[int, str]) -> bool:
        return key in self._symbols
