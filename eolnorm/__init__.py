"""
eolnorm - A cross-platform Python utility for normalizing line endings.

This package provides functionality to:
- Convert line endings to LF (Unix), CRLF (Windows) or CR (classic Mac)
- Normalize mixed line endings within a single file or stdin stream
- Select files with include/exclude glob patterns (exclusions win)
- Write converted files in place or mirrored below an output directory
- Preview the selection with a dry run
"""

__version__ = "1.0.0"
__author__ = "tboy1337"
