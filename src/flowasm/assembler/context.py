"""
Assembly Context
================

The AssemblyContext bundles everything a directive handler may need:
configuration, the input stack and lexer, the symbol table, macros, the
current zone, the program counter and output buffer, and the error
collector. One context lives for a whole assembly run; begin_pass() resets
the per-pass parts.

Nesting counters (``source_depth_left``, ``macro_depth_left``) start at the
configured limit and are decremented on entry to a nested file or macro
call and restored on exit, whatever way the exit happens.
"""

import logging

from flowasm.assembler.cursor import InputStack
from flowasm.assembler.directives import PseudoOpcodeTable
from flowasm.assembler.expressions import ExpressionEvaluator, find_similar_names
from flowasm.assembler.lexer import Lexer
from flowasm.assembler.macros import MacroRegistry
from flowasm.assembler.symbols import GLOBAL_ZONE, SymbolTable
from flowasm.config import AssemblerConfig
from flowasm.errors import (
    AssemblerError,
    ErrorCollector,
    ExpressionError,
    SourceLocation,
    UndefinedSymbolError,
)

logger = logging.getLogger(__name__)


class AssemblyContext:
    """
    Shared state of one assembly run.

    Attributes:
        config: Assembler configuration
        symbols: Symbol table (persists across passes)
        macros: Macro registry (persists across passes)
        pseudo_opcodes: Keyword -> handler table
        errors: Collected errors and warnings
        input: Input frame stack
        lexer: Reading primitives on the input stack
        evaluator: Expression evaluator
        pass_number: Current pass, 0 for the first
        report_undefined: True in the final pass, where undefined symbols
            become errors
        zone: Current zone for local symbols
        pc: Program counter
        output: Bytes emitted so far in this pass
        undefined_count: Undefined references seen in this pass
    """

    def __init__(
        self,
        config: AssemblerConfig,
        symbols: SymbolTable,
        macros: MacroRegistry,
        pseudo_opcodes: PseudoOpcodeTable,
        errors: ErrorCollector,
    ):
        self.config = config
        self.symbols = symbols
        self.macros = macros
        self.pseudo_opcodes = pseudo_opcodes
        self.errors = errors

        self.input = InputStack()
        self.lexer = Lexer(self.input)
        self.evaluator = ExpressionEvaluator(self)

        self.pass_number = 0
        self.report_undefined = False
        self.zone = GLOBAL_ZONE
        self._zone_max = GLOBAL_ZONE
        self.pc = 0
        self.output = bytearray()
        self.undefined_count = 0
        self.source_depth_left = config.max_nesting_depth
        self.macro_depth_left = config.max_nesting_depth

    # =========================================================================
    # Pass Control
    # =========================================================================

    def begin_pass(self, pass_number: int, report_undefined: bool = False) -> None:
        """Reset per-pass state before parsing the main file again."""
        if self.input.depth:
            raise RuntimeError("input frames left over from previous pass")

        self.pass_number = pass_number
        self.report_undefined = report_undefined
        self.symbols.begin_pass(pass_number)
        self._zone_max = GLOBAL_ZONE
        self.zone = self.new_zone()
        self.pc = 0
        self.output = bytearray()
        self.undefined_count = 0
        self.source_depth_left = self.config.max_nesting_depth
        self.macro_depth_left = self.config.max_nesting_depth

    @property
    def is_first_pass(self) -> bool:
        return self.pass_number == 0

    def new_zone(self) -> int:
        """Allocate the next zone number."""
        self._zone_max += 1
        return self._zone_max

    # =========================================================================
    # Diagnostics
    # =========================================================================

    def location(self) -> SourceLocation:
        return self.input.location()

    def record(self, error: AssemblerError) -> None:
        """
        Record an error and carry on.

        Raises:
            TooManyErrors: If the error limit is reached
        """
        logger.debug(f"Recorded {error.severity}: {error.message}")
        self.errors.add(error)

    def warn(self, message: str) -> None:
        """Record a warning at the current location."""
        text = f"{self.location()}: warning: {message}"
        logger.debug(f"Recorded warning: {message}")
        self.errors.add_warning(text)

    def first_pass_warning(self, message: str) -> None:
        """Warn only once, not again in every pass."""
        if self.is_first_pass:
            self.warn(message)

    def note_undefined(self, name: str) -> None:
        """
        Count a reference to an undefined symbol.

        Raises:
            UndefinedSymbolError: In the final reporting pass
        """
        if self.report_undefined:
            candidates = [symbol.name for symbol in self.symbols if symbol.defined]
            similar = find_similar_names(name, candidates)
            hint = f"did you mean: {', '.join(similar)}?" if similar else None
            raise UndefinedSymbolError(name, self.location(), hint=hint)
        self.undefined_count += 1

    # =========================================================================
    # Output
    # =========================================================================

    def emit_byte(self, value: int) -> None:
        """Append one byte to the output and advance the program counter."""
        if not -128 <= value <= 255:
            raise ExpressionError(
                "Number out of range.", self.location(), hint=f"value is {value}"
            )
        self.output.append(value & 0xFF)
        self.pc += 1
