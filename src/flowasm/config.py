"""
flowasm - Assembler Configuration
=================================

Settings that influence how source text is parsed. Configuration can come
from:
- Default values (defined here)
- Keyword arguments / CLI options
- Environment variables (see AssemblerConfig.from_env)
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List
import os


# Default limit for nested "!source" inclusions and macro calls
DEFAULT_NESTING_DEPTH = 64

# Upper bound on passes while forward references are being resolved
DEFAULT_MAX_PASSES = 16


@dataclass
class AssemblerConfig:
    """
    Configuration for one Assembler instance.

    Attributes:
        max_nesting_depth: Maximum number of simultaneously open "!source"
            files, and separately of nested macro calls. Exceeding it is fatal.
        max_passes: Maximum number of passes run to resolve forward references
        warn_on_old_for: If True, the old "!for VAR, END" syntax produces a
            first-pass warning. If False, the new "!for VAR, START, END"
            syntax does instead (for code bases that still rely on the old one).
        include_paths: Directories searched by "!source" after the directory
            of the including file. "<name>" filenames only search these.
        defines: Symbols defined before the first pass (like -D on the CLI)
        verbosity: 0 = quiet, 1 = pass summaries, 2+ = file tracing
        max_errors: Errors collected before assembly gives up
    """

    max_nesting_depth: int = DEFAULT_NESTING_DEPTH
    max_passes: int = DEFAULT_MAX_PASSES
    warn_on_old_for: bool = True
    include_paths: List[Path] = field(default_factory=list)
    defines: Dict[str, int] = field(default_factory=dict)
    verbosity: int = 0
    max_errors: int = 100

    def __post_init__(self) -> None:
        self.include_paths = [Path(p) for p in self.include_paths]
        if self.max_nesting_depth < 0:
            raise ValueError("max_nesting_depth must not be negative")
        if self.max_passes < 1:
            raise ValueError("max_passes must be at least 1")

    # ═══════════════════════════════════════════════════════════════════════════
    # FACTORY METHODS
    # ═══════════════════════════════════════════════════════════════════════════

    @classmethod
    def from_env(cls) -> "AssemblerConfig":
        """
        Create AssemblerConfig from environment variables.

        Environment variables (all optional):
            FLOWASM_MAX_DEPTH: Nesting limit (integer)
            FLOWASM_MAX_PASSES: Pass limit (integer)
            FLOWASM_INCLUDE: Include directories, os.pathsep separated
            FLOWASM_WARN_NEW_FOR: If set to 1/true/yes, warn on new "!for"
                syntax instead of old

        Returns:
            AssemblerConfig with values from environment variables
        """
        config = cls()

        if depth := os.environ.get("FLOWASM_MAX_DEPTH"):
            try:
                config.max_nesting_depth = int(depth)
            except ValueError:
                pass  # Keep default

        if passes := os.environ.get("FLOWASM_MAX_PASSES"):
            try:
                config.max_passes = max(1, int(passes))
            except ValueError:
                pass  # Keep default

        if include := os.environ.get("FLOWASM_INCLUDE"):
            config.include_paths.extend(
                Path(p) for p in include.split(os.pathsep) if p
            )

        if warn_new := os.environ.get("FLOWASM_WARN_NEW_FOR"):
            config.warn_on_old_for = warn_new.lower() not in ("1", "true", "yes")

        return config
