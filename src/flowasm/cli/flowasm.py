"""
flowasm - Assembler Command-Line Interface
==========================================

Typical invocations
-------------------
    $ flowasm table.a                      # writes table.bin
    $ flowasm table.a -o table.bin -s table.sym
    $ flowasm -I ./include -D DEBUG=1 program.a
    $ flowasm -vv program.a               # pass summaries and unused symbols
"""

import logging
import sys
from pathlib import Path
from typing import Optional

import click

from flowasm import __version__
from flowasm.assembler import Assembler
from flowasm.cli.errors import ExitCode, handle_cli_exception
from flowasm.config import AssemblerConfig


def _parse_define(defn: str) -> tuple[str, int]:
    """Split a -D argument into name and value; a bare NAME means 1."""
    name, sep, text = defn.partition("=")
    name = name.strip()
    if not sep:
        return name, 1
    text = text.strip()
    if text[:1] == "$":
        return name, int(text[1:], 16)
    if text[:2].lower() == "0x":
        return name, int(text, 16)
    return name, int(text)


# =============================================================================
# Command
# =============================================================================

@click.command()
@click.argument(
    "input_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.option(
    "-o", "--output",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Binary to write (default: INPUT_FILE with .bin suffix)",
)
@click.option(
    "-s", "--symbols",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Also write the global symbols to this file",
)
@click.option(
    "-I", "--include",
    multiple=True,
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Directory searched by !source (repeatable)",
)
@click.option(
    "-D", "--define",
    multiple=True,
    help="Predefine a global symbol, NAME or NAME=VALUE (repeatable)",
)
@click.option(
    "--max-depth",
    type=click.IntRange(min=0),
    default=None,
    help="Maximum nesting of !source files and macro calls",
)
@click.option(
    "--max-passes",
    type=click.IntRange(min=1),
    default=None,
    help="Maximum number of passes for resolving forward references",
)
@click.option(
    "--warn-new-for",
    is_flag=True,
    help='Warn about the new "!for VAR, START, END" syntax instead of the old one',
)
@click.option(
    "-v", "--verbose",
    count=True,
    help="Report progress; -vv adds pass details",
)
@click.version_option(version=__version__, prog_name="flowasm")
def main(
    input_file: Path,
    output: Optional[Path],
    symbols: Optional[Path],
    include: tuple[Path, ...],
    define: tuple[str, ...],
    max_depth: Optional[int],
    max_passes: Optional[int],
    warn_new_for: bool,
    verbose: int,
) -> None:
    """
    Assemble INPUT_FILE to a raw binary.

    Warnings go to stderr. Exit status is 1 when the source has errors
    and 2 for unusable arguments.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose > 1 else logging.INFO if verbose else logging.WARNING,
        format="%(levelname)s: %(message)s",
    )

    config = AssemblerConfig.from_env()
    config.verbosity = verbose
    if max_depth is not None:
        config.max_nesting_depth = max_depth
    if max_passes is not None:
        config.max_passes = max_passes
    if warn_new_for:
        config.warn_on_old_for = False

    asm = Assembler(config)

    for directory in include:
        asm.add_include_path(directory)

    for item in define:
        try:
            name, value = _parse_define(item)
        except ValueError:
            click.echo(f"Error: invalid value in -D {item}", err=True)
            sys.exit(ExitCode.INVALID_ARGS)
        asm.define_symbol(name, value)

    output_file = output if output is not None else input_file.with_suffix(".bin")

    try:
        if verbose:
            click.echo(f"Assembling {input_file}")

        asm.assemble_file(input_file)

        for warning in asm.warnings:
            click.echo(warning, err=True)

        asm.write_binary(output_file)
        if symbols:
            asm.write_symbols(symbols)

        if verbose:
            click.echo(f"Wrote {len(asm.get_output())} bytes to {output_file}")
            click.echo(
                f"Assembly complete: {asm.passes} passes, "
                f"{len(asm.get_symbols())} symbols"
            )
            unused = asm.unused_symbols()
            if unused and verbose > 1:
                names = ", ".join(sorted(symbol.name for symbol in unused))
                click.echo(f"Unused symbols: {names}")

    except Exception as e:
        handle_cli_exception(e, verbose=bool(verbose), error_type="Assembly")


if __name__ == "__main__":
    main()
