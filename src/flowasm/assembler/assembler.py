"""
flowasm Assembler - Main Interface
==================================

This module provides the main Assembler class, which runs the multi-pass
driver over a source file or string and collects the emitted bytes, the
symbol table and all diagnostics.

Example Usage
-------------
>>> from flowasm.assembler import Assembler
>>>
>>> asm = Assembler()
>>> asm.assemble_string('''
... !for i, 1, 4 {
...     !byte i * i
... }
... ''')
b'\\x01\\x04\\t\\x10'

Passes
------
Forward references are resolved by running the whole source several
times. Symbols and macros survive from one pass to the next; zones, the
program counter and the output are reset.

1. Pass 0 runs; macros are defined here.
2. While undefined references remain and their number keeps shrinking,
   another pass runs (up to the configured maximum).
3. If undefined references remain after that, one last pass runs in which
   every undefined reference is reported as an error.

A pass that records any error ends assembly with an AssemblerError. Fatal
errors propagate immediately.
"""

import dataclasses
import io
import logging
from pathlib import Path
from typing import BinaryIO, Callable, Optional

from flowasm.assembler import flow, pseudo_opcodes
from flowasm.assembler.context import AssemblyContext
from flowasm.assembler.directives import PseudoOpcodeTable
from flowasm.assembler.macros import MacroRegistry
from flowasm.assembler.parser import parse_and_close_file
from flowasm.assembler.symbols import GLOBAL_ZONE, Symbol, SymbolTable
from flowasm.config import AssemblerConfig
from flowasm.errors import AssemblerError, AssemblyError, ErrorCollector

logger = logging.getLogger(__name__)


def build_pseudo_opcode_table() -> PseudoOpcodeTable:
    """Create the table of all pseudo opcodes."""
    table = PseudoOpcodeTable()
    pseudo_opcodes.register(table)
    flow.register(table)
    return table


class Assembler:
    """
    Multi-pass driver over one main source file.

    Attributes:
        config: Configuration used for the next assembly
        passes: Number of passes the last assembly ran
    """

    def __init__(
        self,
        config: Optional[AssemblerConfig] = None,
        *,
        verbose: bool = False,
        include_paths: list[str | Path] | None = None,
        defines: dict[str, int] | None = None,
        max_nesting_depth: int | None = None,
        warn_on_old_for: bool | None = None,
    ):
        """
        Args:
            config: Base configuration (default: AssemblerConfig()). It is
                copied, so the caller's object is never changed.
            verbose: Log pass summaries
            include_paths: Extra directories searched by "!source"
            defines: Pre-defined global symbols
            max_nesting_depth: Override the nesting limit
            warn_on_old_for: Override which "!for" syntax draws a warning
        """
        base = config if config is not None else AssemblerConfig()
        overrides = {}
        if verbose:
            overrides["verbosity"] = max(base.verbosity, 1)
        if max_nesting_depth is not None:
            overrides["max_nesting_depth"] = max_nesting_depth
        if warn_on_old_for is not None:
            overrides["warn_on_old_for"] = warn_on_old_for
        # replace() runs __post_init__ again, validating the overrides
        self.config = dataclasses.replace(
            base,
            include_paths=list(base.include_paths),
            defines=dict(base.defines),
            **overrides,
        )

        for path in include_paths or []:
            self.add_include_path(path)
        for name, value in (defines or {}).items():
            self.define_symbol(name, value)

        self._pseudo_opcodes = build_pseudo_opcode_table()
        self._symbols = SymbolTable()
        self._macros = MacroRegistry()
        self._errors = ErrorCollector(self.config.max_errors)
        self._output = b""
        self.passes = 0

    # =========================================================================
    # Configuration
    # =========================================================================

    def add_include_path(self, path: str | Path) -> None:
        """Make "!source" also look in the directory *path*."""
        path = Path(path)
        if path.is_dir():
            self.config.include_paths.append(path)
        else:
            logger.warning(f"Include path '{path}' is not a directory")

    def define_symbol(self, name: str, value: int) -> None:
        """Give global symbol *name* a value before pass 0, like -D."""
        self.config.defines[name] = value

    # =========================================================================
    # Assembly
    # =========================================================================

    def assemble_string(self, source: str, filename: str = "<input>") -> bytes:
        """
        Assemble *source*, reporting locations against *filename*.

        Returns the emitted bytes; raises AssemblyError or FatalError on
        failure.
        """
        data = source.encode("latin-1")
        return self._assemble(lambda: io.BytesIO(data), filename)

    def assemble_file(self, filepath: str | Path) -> bytes:
        """
        Assemble the file at *filepath*.

        Raises:
            FileNotFoundError: If filepath is not a file
            AssemblyError: If a pass recorded errors
        """
        filepath = Path(filepath)
        if not filepath.is_file():
            raise FileNotFoundError(f"Source file not found: {filepath}")
        return self._assemble(lambda: open(filepath, "rb"), str(filepath))

    def _assemble(self, opener: Callable[[], BinaryIO], filename: str) -> bytes:
        self._symbols = SymbolTable()
        self._macros = MacroRegistry()
        self._errors = ErrorCollector(self.config.max_errors)
        self._output = b""
        self.passes = 0

        for name, value in self.config.defines.items():
            self._symbols.define(name, value)

        ctx = AssemblyContext(
            self.config,
            self._symbols,
            self._macros,
            self._pseudo_opcodes,
            self._errors,
        )

        undefined = self._run_pass(ctx, opener, filename, 0)
        last_undefined = None
        while undefined and (last_undefined is None or undefined < last_undefined):
            if self.passes >= self.config.max_passes:
                break
            last_undefined = undefined
            undefined = self._run_pass(ctx, opener, filename, self.passes)

        if undefined:
            self._run_pass(ctx, opener, filename, self.passes, report_undefined=True)

        self._output = bytes(ctx.output)
        if self.config.verbosity:
            logger.info(
                f"Assembled {len(self._output)} bytes in {self.passes} "
                f"pass{'es' if self.passes != 1 else ''}"
            )
        return self._output

    def _run_pass(
        self,
        ctx: AssemblyContext,
        opener: Callable[[], BinaryIO],
        filename: str,
        pass_number: int,
        report_undefined: bool = False,
    ) -> int:
        """
        Run one pass over the main file.

        Returns:
            Number of undefined references seen

        Raises:
            AssemblyError: If the pass recorded errors
        """
        ctx.begin_pass(pass_number, report_undefined)
        self.passes += 1

        parse_and_close_file(ctx, opener(), filename)

        logger.debug(
            f"Pass {pass_number}: {ctx.undefined_count} undefined, "
            f"{self._errors.error_count()} errors"
        )
        if self._errors.has_errors():
            count = self._errors.error_count()
            raise AssemblyError(
                f"Assembly failed with {count} error{'s' if count != 1 else ''}:"
                f"\n\n{self._errors.report()}",
                list(self._errors.errors),
            )
        return ctx.undefined_count

    # =========================================================================
    # Results
    # =========================================================================

    def get_output(self) -> bytes:
        """Bytes emitted by the last successful assembly."""
        return self._output

    def get_symbols(self) -> dict[str, int]:
        """Defined global symbols and their values."""
        return self._symbols.values(GLOBAL_ZONE)

    def get_symbol(self, name: str) -> Optional[int]:
        """Value of a global symbol, or None if it has none."""
        symbol = self._symbols.lookup(name, GLOBAL_ZONE)
        if symbol is None or not symbol.defined:
            return None
        return symbol.value

    def unused_symbols(self) -> list[Symbol]:
        """Defined symbols never referenced in the first pass."""
        return self._symbols.unused()

    @property
    def symbols(self) -> SymbolTable:
        return self._symbols

    @property
    def macros(self) -> MacroRegistry:
        return self._macros

    @property
    def errors(self) -> list[AssemblerError]:
        return list(self._errors.errors)

    @property
    def warnings(self) -> list[str]:
        return list(self._errors.warnings)

    def write_binary(self, filepath: str | Path) -> None:
        """Write the emitted bytes to *filepath*."""
        Path(filepath).write_bytes(self._output)
        logger.info(f"Wrote {len(self._output)} bytes to {filepath}")

    def write_symbols(self, filepath: str | Path) -> None:
        """
        Write the global symbols to *filepath*, one "name = $value" per
        line, sorted by name.
        """
        lines = [
            f"{name} = ${value & 0xFFFFFFFF:x}"
            for name, value in sorted(self.get_symbols().items())
        ]
        Path(filepath).write_text("\n".join(lines) + "\n" if lines else "")
        logger.info(f"Wrote {len(lines)} symbols to {filepath}")

    # =========================================================================
    # Diagnostics
    # =========================================================================

    def has_errors(self) -> bool:
        """True if the last assembly recorded errors."""
        return self._errors.has_errors()

    def get_error_report(self) -> str:
        """Errors, warnings and their counts, rendered for display."""
        return self._errors.report()


# =============================================================================
# Convenience Functions
# =============================================================================

def assemble(source: str, filename: str = "<input>", **kwargs) -> bytes:
    """Assemble *source* with a fresh Assembler(**kwargs) and return the bytes."""
    asm = Assembler(**kwargs)
    return asm.assemble_string(source, filename)


def assemble_file(filepath: str | Path, **kwargs) -> bytes:
    """Assemble the file at *filepath* with a fresh Assembler(**kwargs)."""
    asm = Assembler(**kwargs)
    return asm.assemble_file(filepath)
