"""
flowasm Assembler
=================

Main Components
---------------
- **Assembler**: Multi-pass driver and public interface
- **InputStack**: Input cursor frames (files and captured blocks)
- **Lexer**: Character-level reading primitives
- **ExpressionEvaluator**: Evaluates expressions straight from the input
- **SymbolTable**: Zoned symbols that survive from pass to pass
- **MacroRegistry**: Macro definitions
- **PseudoOpcodeTable**: Keyword -> handler dispatch for "!" statements

Assembly Process
----------------
Source text is never turned into a syntax tree. Each statement is parsed
and acted on immediately; loop and macro bodies are captured as text and
parsed again from memory whenever they run. The whole source is parsed
once per pass until every forward reference is resolved.
"""

from flowasm.assembler.assembler import (
    Assembler,
    assemble,
    assemble_file,
    build_pseudo_opcode_table,
)
from flowasm.assembler.context import AssemblyContext
from flowasm.assembler.cursor import CapturedBlock, InputFrame, InputStack
from flowasm.assembler.directives import Eos, PseudoOpcodeTable
from flowasm.assembler.expressions import ExpressionEvaluator, Result
from flowasm.assembler.lexer import Lexer
from flowasm.assembler.macros import Macro, MacroRegistry
from flowasm.assembler.symbols import GLOBAL_ZONE, Symbol, SymbolTable

__all__ = [
    # Main class and functions
    "Assembler",
    "assemble",
    "assemble_file",
    "build_pseudo_opcode_table",
    "AssemblyContext",
    # Input
    "CapturedBlock",
    "InputFrame",
    "InputStack",
    "Lexer",
    # Dispatch
    "Eos",
    "PseudoOpcodeTable",
    # Expressions
    "ExpressionEvaluator",
    "Result",
    # Symbols and macros
    "GLOBAL_ZONE",
    "Symbol",
    "SymbolTable",
    "Macro",
    "MacroRegistry",
]
