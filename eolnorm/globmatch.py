"""
Glob pattern compilation.

Supported syntax:
- ``*`` any run of characters inside one path component
- ``**`` as a whole component: zero or more components
- ``?`` exactly one character (never a separator)
- ``[abc]``, ``[a-z]``, ``[!abc]`` / ``[^abc]`` character classes
- ``\\`` escapes the next character (POSIX only; on Windows ``\\`` is a
  path separator)
"""

import os
import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

from eolnorm.errors import InvalidPattern

GLOB_CHARS = frozenset("*?[")
SEP = "/"


def _uses_backslash_escapes() -> bool:
    return os.sep != "\\"


def to_posix(path: str) -> str:
    """Use forward slashes as the only separator."""
    if os.sep == "\\" or os.altsep:
        return path.replace("\\", SEP)
    return path


def is_literal(component: str) -> bool:
    if _uses_backslash_escapes() and "\\" in component:
        return False
    return not any(ch in GLOB_CHARS for ch in component)


def _translate_class(pattern: str, component: str, start: int) -> Tuple[str, int]:
    """Translate the class opening at component[start]; return (regex, next index)."""
    i = start + 1
    negate = False
    if i < len(component) and component[i] in "!^":
        negate = True
        i += 1

    members: List[str] = []
    first = True
    while True:
        if i >= len(component):
            raise InvalidPattern(pattern, "unclosed character class")
        ch = component[i]
        if ch == "]" and not first:
            i += 1
            break
        first = False
        if ch == "\\" and _uses_backslash_escapes():
            i += 1
            if i >= len(component):
                raise InvalidPattern(pattern, "trailing escape")
            ch = component[i]
        # Range a-b, unless '-' is the last member before ']'
        if (
            i + 2 < len(component)
            and component[i + 1] == "-"
            and component[i + 2] != "]"
        ):
            low, high = ch, component[i + 2]
            if low > high:
                raise InvalidPattern(
                    pattern, f"invalid character range '{low}-{high}'"
                )
            members.append(f"{re.escape(low)}-{re.escape(high)}")
            i += 3
        else:
            members.append(re.escape(ch))
            i += 1

    body = "".join(members)
    if negate:
        # A negated class still never matches a separator.
        return f"[^/{body}]", i
    # A range such as [.-0] spans the separator, which never matches.
    return f"(?!/)[{body}]", i


def _translate_component(pattern: str, component: str) -> str:
    if "**" in component:
        raise InvalidPattern(
            pattern, "recursive wildcards must form a single path component"
        )

    parts: List[str] = []
    i = 0
    while i < len(component):
        ch = component[i]
        if ch == "*":
            parts.append("[^/]*")
            i += 1
        elif ch == "?":
            parts.append("[^/]")
            i += 1
        elif ch == "[":
            regex, i = _translate_class(pattern, component, i)
            parts.append(regex)
        elif ch == "\\" and _uses_backslash_escapes():
            if i + 1 >= len(component):
                raise InvalidPattern(pattern, "trailing escape")
            parts.append(re.escape(component[i + 1]))
            i += 2
        else:
            parts.append(re.escape(ch))
            i += 1
    return "".join(parts)


def translate(pattern: str) -> str:
    """Translate a glob pattern into an (unanchored) regular expression."""
    if not pattern:
        raise InvalidPattern(pattern, "empty pattern")

    components = to_posix(pattern).split(SEP)
    # './x' and 'x' name the same paths; candidates are matched normalized.
    while len(components) > 1 and components[0] == ".":
        components.pop(0)
    last = len(components) - 1
    regex: List[str] = []
    for index, component in enumerate(components):
        if component == "**":
            regex.append(".*" if index == last else "(?:.+/)?")
            continue
        regex.append(_translate_component(pattern, component))
        if index != last:
            regex.append(SEP)
    return "".join(regex)


def split_base(pattern: str) -> Tuple[Optional[str], List[str]]:
    """
    Split a pattern into its literal leading directory and glob components.

    Returns (None, components) when the pattern has no literal prefix,
    e.g. ``*.txt`` or ``**/x``; the base of ``/abs/dir/*.txt`` is
    ``/abs/dir``. A pattern without any glob character yields
    (whole pattern, []).
    """
    components = to_posix(pattern).split(SEP)
    literal: List[str] = []
    for component in components:
        if not is_literal(component):
            break
        literal.append(component)
    rest = components[len(literal) :]

    if not literal:
        return None, rest
    if literal == [""]:
        # Pattern rooted at the filesystem root, e.g. '/*.txt'
        return SEP, rest
    return SEP.join(literal), rest


@dataclass(frozen=True)
class Matcher:
    """A compiled, immutable glob pattern."""

    pattern: str
    case_sensitive: bool
    regex: re.Pattern
    base: Optional[str]
    components: Tuple[str, ...]

    @property
    def recursive(self) -> bool:
        return "**" in self.components

    @property
    def max_depth(self) -> Optional[int]:
        """Number of directory levels below base a match can sit at, None if unbounded."""
        if self.recursive:
            return None
        return len(self.components)

    @property
    def has_separator(self) -> bool:
        return SEP in to_posix(self.pattern)

    @property
    def absolute(self) -> bool:
        return os.path.isabs(self.pattern) or to_posix(self.pattern).startswith(SEP)

    def matches(self, path: str) -> bool:
        return self.regex.fullmatch(to_posix(path)) is not None


def compile_pattern(pattern: str, case_sensitive: bool = False) -> Matcher:
    """Compile a glob pattern, raising InvalidPattern on malformed syntax."""
    regex = translate(pattern)
    flags = 0 if case_sensitive else re.IGNORECASE
    try:
        compiled = re.compile(regex, flags)
    except re.error as e:
        raise InvalidPattern(pattern, str(e)) from e
    base, components = split_base(pattern)
    return Matcher(pattern, case_sensitive, compiled, base, tuple(components))
