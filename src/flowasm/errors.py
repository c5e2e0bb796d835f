"""
flowasm Error Hierarchy
=======================

Every exception raised by flowasm derives from FlowAsmError. Errors found
in source text are AssemblerErrors; their class decides how far they
propagate.

Exception Hierarchy
-------------------
FlowAsmError
└── AssemblerError
    ├── AssemblyError - assembly failed, carries all recorded errors
    ├── AssemblySyntaxError - malformed statement
    ├── ExpressionError - malformed or uncomputable expression
    ├── UndefinedSymbolError - value still undefined in the final pass
    ├── SymbolError - illegal symbol redefinition
    ├── MacroError - bad macro definition or call
    ├── IncludeError - source file cannot be opened
    ├── SeriousError - abandons the current file
    │   ├── MissingBlockDelimiterError - '{' or '}' missing
    │   └── LoopCountError - negative count in old "!for" syntax
    └── FatalError - abandons the whole assembly
        ├── NestingDepthError - too many nested "!source"/macro calls
        └── TooManyErrors - error limit reached

Severity
--------
Plain AssemblerErrors are recorded and parsing resumes at the next
statement. Serious errors travel up to the nearest file boundary, where
they are recorded and the rest of that file is dropped. Fatal errors are
never caught by the parser.

Rendered messages look like:
    main.a:12: error: Syntax error.
    hint: expected "until" or "while"
"""

from dataclasses import dataclass
from typing import Optional


# =============================================================================
# Base Exception Class
# =============================================================================

class FlowAsmError(Exception):
    """
    Root of all flowasm exceptions.

        try:
            assemble_file("table.a")
        except FlowAsmError as e:
            print(e)
    """
    pass


# =============================================================================
# Source Location Tracking
# =============================================================================

@dataclass(frozen=True)
class SourceLocation:
    """
    File and line a diagnostic refers to.

    Loop and macro bodies are re-parsed from memory but keep the filename
    and line numbers of the text they were captured from, so a location
    always points into a real source file.
    """
    filename: str
    line: int

    def __str__(self) -> str:
        return f"{self.filename}:{self.line}"


# =============================================================================
# Assembler Exceptions
# =============================================================================

class AssemblerError(FlowAsmError):
    """
    An error in the source being assembled.

    Attributes:
        message: What went wrong, as a sentence
        location: Where it went wrong, if known
        hint: Extra detail shown on a second line
        severity: Word used when rendering ("error", "serious error", ...)
    """

    severity = "error"

    def __init__(
        self,
        message: str,
        location: Optional[SourceLocation] = None,
        hint: Optional[str] = None,
    ):
        self.message = message
        self.location = location
        self.hint = hint
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        prefix = f"{self.location}: " if self.location else ""
        text = f"{prefix}{self.severity}: {self.message}"
        if self.hint:
            text += f"\nhint: {self.hint}"
        return text


class AssemblyError(AssemblerError):
    """
    Raised by the Assembler when a pass recorded errors.

    Attributes:
        errors: The recorded errors, in the order they were found
    """

    def __init__(self, message: str, errors: list[AssemblerError]):
        self.errors = errors
        super().__init__(message)


class AssemblySyntaxError(AssemblerError):
    """
    Malformed statement.

    Examples:
        - Condition keyword other than "until"/"while"
        - Something other than "else" after a conditional block
        - Garbage after a condition or counter expression
    """
    pass


class ExpressionError(AssemblerError):
    """Malformed expression, or one that cannot be computed."""
    pass


class UndefinedSymbolError(AssemblerError):
    """
    Reference to a symbol that is still undefined in the final pass.

    Earlier passes count such references instead of reporting them.
    """

    def __init__(
        self,
        symbol: str,
        location: Optional[SourceLocation] = None,
        hint: Optional[str] = None,
    ):
        self.symbol = symbol
        super().__init__(f"Symbol not defined ({symbol}).", location, hint)


class SymbolError(AssemblerError):
    """
    Illegal symbol operation, e.g. giving a defined symbol a new value
    without "!set", or changing its force bit after first use.
    """
    pass


class MacroError(AssemblerError):
    """
    Macro defined twice, called before definition, or called with the
    wrong number of arguments.
    """
    pass


class IncludeError(AssemblerError):
    """
    A "!source" file cannot be opened.

    Only the directive is abandoned; the including file goes on.
    """

    def __init__(
        self,
        filename: str,
        reason: str,
        location: Optional[SourceLocation] = None,
        search_paths: Optional[list[str]] = None,
    ):
        self.included_filename = filename
        self.reason = reason
        self.search_paths = list(search_paths or [])
        super().__init__(
            f"Cannot open input file \"{filename}\" ({reason}).",
            location,
            f"searched in: {', '.join(self.search_paths)}" if self.search_paths else None,
        )


class SeriousError(AssemblerError):
    """
    Structural problem that makes the rest of the current file unusable.

    Caught where the current file is parsed: that file is dropped (its
    handle still closed) and the error is recorded.
    """

    severity = "serious error"


class MissingBlockDelimiterError(SeriousError):
    """A block's opening '{' or closing '}' is missing."""

    def __init__(
        self,
        delimiter: str,
        location: Optional[SourceLocation] = None,
        hint: Optional[str] = None,
    ):
        self.delimiter = delimiter
        super().__init__(f"Missing '{delimiter}'.", location, hint)


class LoopCountError(SeriousError):
    """Loop count in old "!for" syntax is negative."""
    pass


class FatalError(AssemblerError):
    """Ends the whole assembly; leaves Assembler.assemble_*() untouched."""

    severity = "fatal error"


class NestingDepthError(FatalError):
    """
    Too many nested "!source" inclusions or macro calls.

    Usually a file that includes itself, or a macro that calls itself,
    directly or indirectly.
    """

    def __init__(
        self,
        kind: str,
        limit: int,
        location: Optional[SourceLocation] = None,
    ):
        self.kind = kind
        self.limit = limit
        super().__init__(
            f"Too deeply nested. Recursive {kind}?",
            location,
            f"nesting limit is {limit}",
        )


class TooManyErrors(FatalError):
    """The error limit was reached."""

    def __init__(self, limit: int):
        self.limit = limit
        super().__init__("Too many errors, giving up.", hint=f"error limit is {limit}")


# =============================================================================
# Error Collection
# =============================================================================

def _count(number: int, word: str) -> str:
    return f"{number} {word}" if number == 1 else f"{number} {word}s"


class ErrorCollector:
    """
    Errors and warnings of one assembly run.

    Recoverable and serious errors are recorded here and parsing carries
    on, so one run reports as many problems as possible. Warnings are
    stored already rendered ("file:line: warning: text").

    Example:
        collector = ErrorCollector(max_errors=10)
        collector.add(AssemblySyntaxError("Syntax error.", location))
        print(collector.report())
    """

    def __init__(self, max_errors: int = 100):
        self.max_errors = max_errors
        self.errors: list[AssemblerError] = []
        self.warnings: list[str] = []

    def add(self, error: AssemblerError) -> None:
        """
        Record an error.

        Raises:
            TooManyErrors: If this error reaches max_errors
        """
        self.errors.append(error)
        if len(self.errors) >= self.max_errors:
            raise TooManyErrors(self.max_errors)

    def add_warning(self, message: str) -> None:
        self.warnings.append(message)

    def has_errors(self) -> bool:
        return bool(self.errors)

    def error_count(self) -> int:
        return len(self.errors)

    def report(self) -> str:
        """
        Render every error, then the warnings, then a summary line such as
        "2 errors, 1 warning".
        """
        blocks = [str(error) for error in self.errors]
        if self.warnings:
            blocks.append("\n".join(self.warnings))
        blocks.append(
            f"{_count(len(self.errors), 'error')}, "
            f"{_count(len(self.warnings), 'warning')}"
        )
        return "\n\n".join(blocks)
