"""
flowasm - Multi-Pass Text Assembler with Flow Control
=====================================================

flowasm assembles plain text source files into raw bytes. Its focus is
assemble-time flow control: loops, conditional assembly, macros and
nested source inclusion, all resolved over several passes so that symbols
may be used before they are defined.

Main Components
---------------
- **assembler**: Input frames, statement parser, expression evaluator,
  pseudo opcodes and the multi-pass driver
- **cli**: The ``flowasm`` command-line tool

Quick Start
-----------
    >>> from flowasm import Assembler
    >>> asm = Assembler()
    >>> code = asm.assemble_file("table.a")
    >>> asm.write_binary("table.bin")

Or use the command-line tool:
    $ flowasm table.a -o table.bin

Version History
---------------
1.0.0 - Initial release
"""

__version__ = "1.0.0"

# =============================================================================
# Public API Exports
# =============================================================================

from flowasm.assembler import Assembler, assemble, assemble_file
from flowasm.config import AssemblerConfig
from flowasm.errors import (
    FlowAsmError,
    SourceLocation,
    AssemblerError,
    AssemblyError,
    AssemblySyntaxError,
    ExpressionError,
    UndefinedSymbolError,
    SymbolError,
    MacroError,
    IncludeError,
    SeriousError,
    MissingBlockDelimiterError,
    LoopCountError,
    FatalError,
    NestingDepthError,
    TooManyErrors,
)

__all__ = [
    # Version info
    "__version__",
    # Assembler
    "Assembler",
    "AssemblerConfig",
    "assemble",
    "assemble_file",
    # Exception hierarchy
    "FlowAsmError",
    "SourceLocation",
    "AssemblerError",
    "AssemblyError",
    "AssemblySyntaxError",
    "ExpressionError",
    "UndefinedSymbolError",
    "SymbolError",
    "MacroError",
    "IncludeError",
    "SeriousError",
    "MissingBlockDelimiterError",
    "LoopCountError",
    "FatalError",
    "NestingDepthError",
    "TooManyErrors",
]
