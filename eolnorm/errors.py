"""
Exceptions raised by eolnorm.

Pattern and selection errors abort a run before any file is touched;
read/write errors are reported per file and the batch carries on.
"""

from typing import List, Optional


class EolNormError(Exception):
    """Base exception for all eolnorm errors."""

    def __init__(self, message: str, path: Optional[str] = None) -> None:
        self.message = message
        self.path = path
        super().__init__(message)


class InvalidPattern(EolNormError):
    """Malformed glob syntax."""

    def __init__(self, pattern: str, reason: str) -> None:
        self.pattern = pattern
        self.reason = reason
        super().__init__(f"Invalid pattern '{pattern}': {reason}")


class NoMatchingFiles(EolNormError):
    """No file survived include/exclude resolution."""

    def __init__(self, patterns: List[str]) -> None:
        self.patterns = list(patterns)
        super().__init__(
            "No matching files for pattern(s): " + " ".join(self.patterns)
        )


class FileReadError(EolNormError):
    def __init__(self, path: str, cause: Exception) -> None:
        self.cause = cause
        super().__init__(f"Cannot read {path}: {cause}", path)


class FileWriteError(EolNormError):
    def __init__(self, path: str, cause: Exception) -> None:
        self.cause = cause
        super().__init__(f"Cannot write {path}: {cause}", path)


class OutputDirectoryCreateError(EolNormError):
    def __init__(self, path: str, cause: Exception) -> None:
        self.cause = cause
        super().__init__(f"Cannot create output directory {path}: {cause}", path)
