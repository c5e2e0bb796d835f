"""
Lexer Helpers
=============

Character-level reading primitives shared by the statement parser and the
directive handlers. Unlike a token-stream lexer, these functions work
directly on the active input frame: each one starts at the frame's current
``last_byte`` and leaves ``last_byte`` at the first character it did not
consume.

Keyword Characters
------------------
Keywords (symbol names, macro names, directive names) consist of ASCII
letters, digits, '_' and any character above 127. A keyword may not start
with a digit when it names a symbol, but directive names like "!08" may.
"""

from typing import Optional

from flowasm.assembler.cursor import (
    CHAR_EOF,
    CHAR_EOS,
    QUOTES,
    InputStack,
)
from flowasm.assembler.symbols import GLOBAL_ZONE
from flowasm.errors import AssemblySyntaxError, SourceLocation


LOCAL_PREFIX = "."

_STOP = (CHAR_EOS, CHAR_EOF)


def is_keyword_char(char: str) -> bool:
    """Return True if char may appear in a keyword."""
    return char.isascii() and (char.isalnum() or char == "_") or ord(char) > 127


def is_keyword_start(char: str) -> bool:
    """Return True if char may start a symbol name."""
    return is_keyword_char(char) and not char.isdigit()


class Lexer:
    """
    Reading primitives bound to an input stack.

    All methods operate on whatever frame is active at call time, so the
    same Lexer serves files, loop bodies and macro bodies alike.
    """

    def __init__(self, input_stack: InputStack):
        self._input = input_stack

    # =========================================================================
    # Basic Access
    # =========================================================================

    @property
    def last_byte(self) -> str:
        return self._input.last_byte

    def location(self) -> SourceLocation:
        return self._input.location()

    def get_byte(self) -> str:
        return self._input.get_byte()

    def skip_space(self) -> str:
        """Skip blanks; return the first non-blank character."""
        while self._input.last_byte == " ":
            self._input.get_byte()
        return self._input.last_byte

    def next_and_skip_space(self) -> str:
        """Fetch the next character, then skip blanks."""
        self._input.get_byte()
        return self.skip_space()

    # =========================================================================
    # Keywords
    # =========================================================================

    def read_keyword(self) -> str:
        """
        Read a keyword starting at the current character.

        Returns an empty string if the current character cannot start a
        keyword; callers decide whether that is an error.
        """
        chars = []
        while is_keyword_char(self._input.last_byte):
            chars.append(self._input.last_byte)
            self._input.get_byte()
        return "".join(chars)

    def read_and_lower_keyword(self) -> str:
        return self.read_keyword().lower()

    def read_zone_and_keyword(self, current_zone: int) -> tuple[int, str]:
        """
        Read a possibly local name.

        A leading '.' makes the name local to current_zone; otherwise it is
        global.

        Returns:
            (zone, name) - name is empty if none was found
        """
        self.skip_space()
        if self._input.last_byte == LOCAL_PREFIX:
            self._input.get_byte()
            return current_zone, self.read_keyword()
        return GLOBAL_ZONE, self.read_keyword()

    def get_force_bit(self) -> int:
        """
        Read an optional size postfix (+1, +2, +3) directly after a name.

        Returns:
            The postfix value, or 0 if none was given
        """
        force_bit = 0
        if self._input.last_byte == "+":
            char = self._input.get_byte()
            if char not in ("1", "2", "3"):
                raise AssemblySyntaxError("Illegal postfix.", self.location())
            force_bit = int(char)
            self._input.get_byte()
        self.skip_space()
        return force_bit

    # =========================================================================
    # Statement Structure
    # =========================================================================

    def accept_comma(self) -> bool:
        """Consume a ',' (and following blanks) if present."""
        self.skip_space()
        if self._input.last_byte != ",":
            return False
        self.next_and_skip_space()
        return True

    def ensure_eos(self) -> None:
        """
        Check that the statement ends here.

        Raises:
            AssemblySyntaxError: If anything but blanks remains
        """
        self.skip_space()
        if self._input.last_byte != CHAR_EOS:
            raise AssemblySyntaxError(
                "Garbage data at end of statement.", self.location()
            )

    def skip_remainder(self) -> None:
        """Discard the rest of the statement."""
        while self._input.last_byte not in _STOP:
            self._input.get_byte()

    def until_terminator(self, terminator: str) -> str:
        """
        Collect characters up to the terminator or the end of statement.

        Quoted text is taken over as a whole, so a terminator inside quotes
        does not count. The terminator itself is not consumed.
        """
        chars = []
        while True:
            char = self._input.last_byte
            if char == terminator or char in _STOP:
                return "".join(chars)
            chars.append(char)
            self._input.get_byte()
            if char in QUOTES:
                while self._input.last_byte not in _STOP:
                    inner = self._input.last_byte
                    chars.append(inner)
                    self._input.get_byte()
                    if inner == char:
                        break

    # =========================================================================
    # Strings and Filenames
    # =========================================================================

    def _read_delimited(self, closing: str) -> str:
        # Called with last_byte on the opening delimiter
        chars = []
        self._input.get_byte()
        while self._input.last_byte != closing:
            if self._input.last_byte in _STOP:
                raise AssemblySyntaxError(
                    "Quotes still open at end of line.", self.location()
                )
            chars.append(self._input.last_byte)
            self._input.get_byte()
        self._input.get_byte()
        return "".join(chars)

    def read_string(self) -> str:
        """Read a double-quoted string."""
        self.skip_space()
        if self._input.last_byte != '"':
            raise AssemblySyntaxError("No string given.", self.location())
        return self._read_delimited('"')

    def read_filename(self) -> tuple[str, bool]:
        """
        Read the argument of "!source".

        Accepts "name", <name> (library file, searched in the include
        paths only) or a bare name up to the next blank.

        Returns:
            (filename, is_library)
        """
        self.skip_space()
        char = self._input.last_byte
        is_library = False

        if char == '"':
            name = self._read_delimited('"')
        elif char == "<":
            name = self._read_delimited(">")
            is_library = True
        else:
            chars = []
            while self._input.last_byte not in _STOP and self._input.last_byte != " ":
                chars.append(self._input.last_byte)
                self._input.get_byte()
            name = "".join(chars)

        if not name:
            raise AssemblySyntaxError("No file name given.", self.location())
        return name, is_library
