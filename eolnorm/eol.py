"""
End-of-line detection and rewriting.

Works on raw bytes: only ASCII CR (0x0D) and LF (0x0A) are considered, so
the content is never decoded.
"""

import enum
import re
from dataclasses import dataclass
from typing import Dict, Iterator, Optional, Tuple

CR = b"\r"
LF = b"\n"
CRLF = b"\r\n"

# CRLF must be tried before the lone CR alternative.
_BOUNDARY_RE = re.compile(rb"\r\n|\r|\n")


class EolKind(enum.Enum):
    """End-of-line sequence."""

    LF = LF
    CRLF = CRLF
    CR = CR

    @property
    def sequence(self) -> bytes:
        return self.value

    @classmethod
    def parse(cls, text: str) -> "EolKind":
        """Parse 'lf', 'CRLF', 'Cr', ... into an EolKind."""
        try:
            return cls[text.strip().upper()]
        except KeyError:
            raise ValueError(f"Unknown end-of-line sequence: {text!r}") from None

    @classmethod
    def from_sequence(cls, sequence: bytes) -> "EolKind":
        return cls(sequence)

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class ConversionResult:
    """Converted bytes and the number of line boundaries found."""

    output: bytes
    boundaries: int
    changed: bool


def rewrite(data: bytes, target: EolKind) -> ConversionResult:
    """
    Replace every line boundary in data with the target sequence.

    CR LF counts as a single boundary; lone CR and lone LF count as one
    each. Everything else is copied verbatim. Never fails, whatever the
    input bytes are.
    """
    output, boundaries = _BOUNDARY_RE.subn(target.sequence, data)
    return ConversionResult(output, boundaries, output != data)


def iter_segments(data: bytes) -> Iterator[Tuple[bytes, Optional[EolKind]]]:
    """
    Yield (line bytes, terminating EolKind) pairs in input order.

    The final segment (possibly empty) has no terminator and is always
    yielded, so joining segments with their terminators gives back data.
    """
    start = 0
    for match in _BOUNDARY_RE.finditer(data):
        yield data[start : match.start()], EolKind.from_sequence(match.group())
        start = match.end()
    yield data[start:], None


def count_eols(data: bytes) -> Dict[EolKind, int]:
    """Count the line boundaries of each kind present in data."""
    counts: Dict[EolKind, int] = {kind: 0 for kind in EolKind}
    for match in _BOUNDARY_RE.finditer(data):
        counts[EolKind.from_sequence(match.group())] += 1
    return counts


def describe_eols(counts: Dict[EolKind, int]) -> str:
    """Human readable summary such as 'LF=3 CRLF=1 CR=0 (mixed)'."""
    text = " ".join(f"{kind}={counts[kind]}" for kind in EolKind)
    used = sum(1 for count in counts.values() if count)
    if used > 1:
        text += " (mixed)"
    elif used == 0:
        text += " (none)"
    return text


def escape_bytes(data: bytes) -> str:
    """Render bytes with CR, LF, tabs and non-ASCII bytes escaped."""
    return data.decode("latin-1").encode("unicode_escape").decode("ascii")
