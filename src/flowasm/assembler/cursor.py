"""
Input Cursor Frames
===================

This module implements "where parsing currently is". Every character the
parser sees is fetched through an InputFrame, and exactly one frame is
active at any time: the top of the InputStack owned by the assembly run.

Frame Origins
-------------
A frame reads from one of two origins:

- **FileOrigin**: an open binary file handle. Raw bytes are converted
  on the fly into the processed character stream described below.
- **MemoryOrigin**: a captured, already-processed buffer (a loop body, a
  loop condition, a macro body). Characters are returned verbatim.

Processed Character Stream
--------------------------
| Source text            | Delivered as              |
|------------------------|---------------------------|
| line break (LF/CR/CRLF)| CHAR_EOS, CHAR_SOL        |
| run of spaces/tabs     | a single ' '              |
| ';' comment            | CHAR_EOS (rest dropped)   |
| '}' outside quotes     | CHAR_EOS, CHAR_EOB        |
| end of file            | CHAR_EOS, then CHAR_EOF   |
| quoted text            | unchanged until the quote |
|                        | closes or the line ends   |

CHAR_SOL is never seen by the parser: fetching it bumps the frame's line
number and fetches again. Block capture keeps the SOL markers in the
captured text, so re-parsing a body from memory reproduces the original
line numbers exactly.

Switching Frames
----------------
Nested constructs push a new frame, parse, and pop it again. Each frame
carries its own ``last_byte``, so popping a frame makes the caller see the
same last-consumed character it had before the switch. The context
managers ``memory_scope`` and ``file_scope`` pair every push with a pop,
on error paths too.

Example
-------
>>> stack = InputStack()
>>> with stack.memory_scope("!byte 1" + CHAR_EOS, line_number=7):
...     stack.get_byte()
'!'
"""

from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass
from typing import BinaryIO, Iterator, Optional, Union

from flowasm.errors import MissingBlockDelimiterError, SourceLocation


# =============================================================================
# Special Characters
# =============================================================================

CHAR_EOS = "\x00"   # End of statement
CHAR_SOL = "\n"     # Start of line (consumed by get_byte)
CHAR_EOF = "\x1a"   # End of file (repeats forever)
CHAR_SOB = "{"      # Start of block
CHAR_EOB = "}"      # End of block

QUOTES = ('"', "'")


# =============================================================================
# Frame Origins
# =============================================================================

class FileOrigin:
    """
    Character source reading from an open binary file handle.

    Bytes are decoded one-to-one (latin-1), so every byte of the source
    file maps to exactly one character.
    """

    CHUNK_SIZE = 4096

    def __init__(self, handle: BinaryIO):
        self.handle = handle
        self._buffer = ""
        self._pos = 0
        self._pending: deque[str] = deque()
        self._quote: Optional[str] = None
        self._drained = False   # raw file exhausted
        self._at_end = False    # final EOS delivered

    def _fill(self) -> bool:
        """Make sure at least one raw character is buffered."""
        if self._pos < len(self._buffer):
            return True
        if self._drained:
            return False
        chunk = self.handle.read(self.CHUNK_SIZE)
        if not chunk:
            self._drained = True
            return False
        self._buffer = chunk.decode("latin-1")
        self._pos = 0
        return True

    def _read_raw(self) -> Optional[str]:
        if not self._fill():
            return None
        char = self._buffer[self._pos]
        self._pos += 1
        return char

    def _peek_raw(self) -> Optional[str]:
        if not self._fill():
            return None
        return self._buffer[self._pos]

    def next_char(self) -> str:
        """Return the next processed character."""
        if self._pending:
            return self._pending.popleft()
        if self._at_end:
            return CHAR_EOF

        char = self._read_raw()
        if char is None:
            self._at_end = True
            self._quote = None
            return CHAR_EOS

        if char in "\r\n":
            if char == "\r" and self._peek_raw() == "\n":
                self._read_raw()
            self._quote = None
            self._pending.append(CHAR_SOL)
            return CHAR_EOS

        if self._quote is not None:
            if char == self._quote:
                self._quote = None
            return char

        if char in " \t":
            while self._peek_raw() in (" ", "\t"):
                self._read_raw()
            return " "

        if char in QUOTES:
            self._quote = char
            return char

        if char == ";":
            # Drop the comment; the line break (or EOF) ends the statement
            while self._peek_raw() not in (None, "\r", "\n"):
                self._read_raw()
            return self.next_char()

        if char == CHAR_EOB:
            self._pending.append(CHAR_EOB)
            return CHAR_EOS

        if char in (CHAR_EOS, CHAR_EOF):
            # Raw control bytes would be mistaken for sentinels
            return " "

        return char


class MemoryOrigin:
    """Character source reading a captured, already-processed buffer."""

    def __init__(self, buffer: str):
        self.buffer = buffer
        self._pos = 0

    def next_char(self) -> str:
        """Return the next character, or CHAR_EOF past the end."""
        if self._pos >= len(self.buffer):
            return CHAR_EOF
        char = self.buffer[self._pos]
        self._pos += 1
        return char


Origin = Union[FileOrigin, MemoryOrigin]


# =============================================================================
# Frames and Captured Blocks
# =============================================================================

@dataclass
class InputFrame:
    """
    One input cursor.

    Attributes:
        filename: File the characters come from (memory frames inherit the
            name of the file their text was captured from)
        origin: Where characters are fetched from
        line_number: Current line (1-indexed)
        last_byte: Last character fetched; fresh frames start at CHAR_EOS
    """
    filename: str
    origin: Origin
    line_number: int = 1
    last_byte: str = CHAR_EOS


@dataclass(frozen=True)
class CapturedBlock:
    """
    Verbatim text of a block, captured for re-parsing.

    The text runs from just after the opening '{' up to and including the
    matching '}', followed by CHAR_EOS and CHAR_EOF sentinels so a re-parse
    can never run past its logical end.

    Attributes:
        text: Processed characters (SOL markers included)
        line_number: Line of the opening '{'
        filename: File the block was captured from
    """
    text: str
    line_number: int
    filename: str


# =============================================================================
# Frame Stack
# =============================================================================

class InputStack:
    """
    Stack of input frames; the top frame is the active one.

    The stack is owned by one assembly run and passed down to every handler
    through the assembly context. It is empty between passes.
    """

    def __init__(self):
        self._frames: list[InputFrame] = []

    # =========================================================================
    # Active Frame
    # =========================================================================

    @property
    def current(self) -> InputFrame:
        """The active frame."""
        if not self._frames:
            raise RuntimeError("no active input frame")
        return self._frames[-1]

    @property
    def depth(self) -> int:
        """Number of frames on the stack."""
        return len(self._frames)

    @property
    def last_byte(self) -> str:
        return self.current.last_byte

    @property
    def line_number(self) -> int:
        return self.current.line_number

    @property
    def filename(self) -> str:
        return self.current.filename

    def location(self) -> SourceLocation:
        """Current position for error reporting."""
        frame = self.current
        return SourceLocation(frame.filename, frame.line_number)

    # =========================================================================
    # Character Fetch
    # =========================================================================

    def _fetch(self, sink: Optional[list[str]] = None) -> str:
        frame = self.current
        while True:
            char = frame.origin.next_char()
            if sink is not None:
                sink.append(char)
            if char != CHAR_SOL:
                break
            frame.line_number += 1
        frame.last_byte = char
        return char

    def get_byte(self) -> str:
        """Fetch the next character from the active frame."""
        return self._fetch()

    # =========================================================================
    # Frame Switching
    # =========================================================================

    def enter_memory_scope(
        self,
        buffer: str,
        line_number: int,
        filename: Optional[str] = None,
    ) -> InputFrame:
        """
        Install a frame reading from a captured buffer.

        Must be paired with leave_scope(); prefer memory_scope().

        Args:
            buffer: Processed, sentinel-terminated text
            line_number: Line number of the buffer's first character
            filename: Reported filename (default: the active frame's)
        """
        if filename is None:
            filename = self.current.filename
        frame = InputFrame(filename, MemoryOrigin(buffer), line_number)
        self._frames.append(frame)
        return frame

    def enter_file_scope(self, handle: BinaryIO, filename: str) -> InputFrame:
        """Install a frame reading from an open binary file handle."""
        frame = InputFrame(filename, FileOrigin(handle))
        self._frames.append(frame)
        return frame

    def leave_scope(self) -> InputFrame:
        """
        Remove the active frame, re-activating the one below it.

        The re-activated frame still holds its own last_byte, so the caller
        continues exactly where it stopped.
        """
        if not self._frames:
            raise RuntimeError("leave_scope() without matching enter")
        return self._frames.pop()

    @contextmanager
    def memory_scope(
        self,
        buffer: str,
        line_number: int,
        filename: Optional[str] = None,
    ) -> Iterator[InputFrame]:
        """Parse from a captured buffer for the duration of the block."""
        frame = self.enter_memory_scope(buffer, line_number, filename)
        try:
            yield frame
        finally:
            self.leave_scope()

    @contextmanager
    def file_scope(self, handle: BinaryIO, filename: str) -> Iterator[InputFrame]:
        """Parse from a file for the duration of the block, then close it."""
        frame = self.enter_file_scope(handle, filename)
        try:
            yield frame
        finally:
            self.leave_scope()
            handle.close()

    # =========================================================================
    # Block Capture
    # =========================================================================

    def skip_or_store_block(self, store: bool) -> Optional[CapturedBlock]:
        """
        Consume a block up to its matching '}'.

        Call with last_byte == '{'. Nested blocks are tracked, and quoted
        text is skipped so that braces inside strings do not count. On
        return, last_byte == '}'.

        Args:
            store: If True, return the consumed text as a CapturedBlock.
                If False, the text is discarded.

        Returns:
            The captured block, or None when store is False

        Raises:
            MissingBlockDelimiterError: If the input ends before the block
                is closed
        """
        frame = self.current
        start_line = frame.line_number
        sink: Optional[list[str]] = [] if store else None
        depth = 1

        while depth:
            char = self._fetch(sink)
            if char == CHAR_EOF:
                raise MissingBlockDelimiterError(
                    CHAR_EOB,
                    self.location(),
                    hint=f"block started at line {start_line}",
                )
            if char in QUOTES:
                while self._fetch(sink) not in (CHAR_EOS, CHAR_EOF, char):
                    pass
            elif char == CHAR_SOB:
                depth += 1
            elif char == CHAR_EOB:
                depth -= 1

        if sink is None:
            return None

        sink.append(CHAR_EOS)
        sink.append(CHAR_EOF)
        return CapturedBlock("".join(sink), start_line, frame.filename)
