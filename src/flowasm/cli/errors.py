"""
CLI Error Handling
==================

Maps exceptions escaping the assembler to a message on stderr and a
process exit code.
"""

import sys
import traceback
from enum import IntEnum
from typing import NoReturn

import click

from flowasm.errors import AssemblyError, FatalError, FlowAsmError


class ExitCode(IntEnum):
    """Process exit codes of flowasm."""
    SUCCESS = 0
    BUILD_ERROR = 1      # source errors
    INVALID_ARGS = 2     # bad options, unreadable input
    INTERNAL_ERROR = 3   # bug


def handle_cli_exception(
    error: Exception,
    verbose: bool = False,
    error_type: str | None = None
) -> NoReturn:
    """
    Report an exception and exit.

    Errors that already carry their own location and severity are echoed
    as they are; other flowasm errors get an "<error_type> error: " prefix.
    Anything unexpected counts as an internal error, with a traceback when
    verbose.
    """
    if isinstance(error, (AssemblyError, FatalError)):
        message, code = str(error), ExitCode.BUILD_ERROR
    elif isinstance(error, FlowAsmError):
        label = f"{error_type} error" if error_type else "Error"
        message, code = f"{label}: {error}", ExitCode.BUILD_ERROR
    elif isinstance(error, (click.BadParameter, FileNotFoundError, PermissionError)):
        message, code = f"Error: {error}", ExitCode.INVALID_ARGS
    else:
        message, code = f"Internal error: {error}", ExitCode.INTERNAL_ERROR
        if verbose:
            traceback.print_exc()

    click.echo(message, err=True)
    sys.exit(code)
