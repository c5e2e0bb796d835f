"""
Pseudo Opcode Table
===================

Statements beginning with '!' are pseudo opcodes. Each keyword maps to a
handler ``handler(ctx) -> Eos``: the handler is called with last_byte on
the character after the keyword and reports how the rest of the statement
is to be treated.

Keywords are matched case-insensitively; the table stores them in lower
case.
"""

from enum import Enum, auto
from typing import TYPE_CHECKING, Callable, Optional

if TYPE_CHECKING:
    from flowasm.assembler.context import AssemblyContext


class Eos(Enum):
    """What the statement parser does after a pseudo opcode handler."""
    SKIP_REMAINDER = auto()     # Discard the rest of the statement
    ENSURE_EOS = auto()         # Rest must be empty, else syntax error
    PARSE_REMAINDER = auto()    # Keep parsing the same statement
    AT_EOS_ANYWAY = auto()      # Handler already consumed the statement


Handler = Callable[["AssemblyContext"], Eos]


class PseudoOpcodeTable:
    """Mapping from pseudo opcode keyword to handler."""

    def __init__(self):
        self._handlers: dict[str, Handler] = {}

    def add(self, keyword: str, handler: Handler) -> None:
        keyword = keyword.lower()
        if keyword in self._handlers:
            raise ValueError(f"pseudo opcode '{keyword}' registered twice")
        self._handlers[keyword] = handler

    def add_table(self, handlers: dict[str, Handler]) -> None:
        for keyword, handler in handlers.items():
            self.add(keyword, handler)

    def lookup(self, keyword: str) -> Optional[Handler]:
        return self._handlers.get(keyword.lower())

    def names(self) -> list[str]:
        return sorted(self._handlers)

    def __contains__(self, keyword: str) -> bool:
        return keyword.lower() in self._handlers

    def __len__(self) -> int:
        return len(self._handlers)
