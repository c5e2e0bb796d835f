"""
flowasm Command-Line Interface
==============================

- **flowasm**: Assemble a source file to a raw binary

Implemented as a Click-based CLI application.
"""

__all__ = ["flowasm"]
