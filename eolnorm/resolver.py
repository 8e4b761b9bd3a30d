"""
Resolve include/exclude glob patterns into an ordered list of files.

Exclusions take precedence over inclusions.
"""

import logging
import os
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from eolnorm.errors import NoMatchingFiles
from eolnorm.globmatch import SEP, Matcher, compile_pattern, to_posix

logger = logging.getLogger("eolnorm")

# (name, is_dir, is_file)
Entry = Tuple[str, bool, bool]


class DirectoryCache:
    """Memoised, sorted directory listings for one resolve run."""

    def __init__(self) -> None:
        self._listings: Dict[str, List[Entry]] = {}

    def entries(self, directory: str) -> List[Entry]:
        key = os.path.normpath(directory)
        if key not in self._listings:
            self._listings[key] = self._scan(directory)
        return self._listings[key]

    @staticmethod
    def _scan(directory: str) -> List[Entry]:
        entries: List[Entry] = []
        try:
            with os.scandir(directory) as it:
                for entry in it:
                    try:
                        is_dir = entry.is_dir(follow_symlinks=False)
                        is_file = entry.is_file()
                    except OSError:
                        continue
                    entries.append((entry.name, is_dir, is_file))
        except OSError as e:
            logger.warning("Cannot list directory %s: %s", directory, e)
        entries.sort()
        return entries

    def __len__(self) -> int:
        return len(self._listings)


def _walk(
    cache: DirectoryCache, directory: str, prefix: str, depth: Optional[int]
) -> Iterator[str]:
    """
    Yield file paths (spelled prefix + relative path) below directory.

    With a depth, only files exactly that many levels down are yielded and
    deeper directories are never listed.
    """
    for name, is_dir, is_file in cache.entries(directory):
        candidate = prefix + name
        if is_file and (depth is None or depth == 1):
            yield candidate
        if is_dir and (depth is None or depth > 1):
            yield from _walk(
                cache,
                os.path.join(directory, name),
                candidate + SEP,
                None if depth is None else depth - 1,
            )


def on_disk(candidate: str, root: Optional[str]) -> str:
    """Filesystem path of a candidate spelled relative to root."""
    if root is None or os.path.isabs(candidate):
        return candidate
    return os.path.join(root, candidate)


def expand(
    matcher: Matcher,
    cache: Optional[DirectoryCache] = None,
    root: Optional[str] = None,
) -> List[str]:
    """
    Return the regular files matched by a single include pattern.

    Relative patterns are expanded below root (the working directory when
    None) and the results are spelled relative to it.
    """
    if cache is None:
        cache = DirectoryCache()

    if matcher.base is not None and not matcher.components:
        # No glob characters at all: a plain file path.
        if os.path.isfile(on_disk(matcher.pattern, root)):
            return [matcher.pattern]
        return []

    if matcher.base is None:
        relative_dir, prefix = ".", ""
    else:
        relative_dir = matcher.base
        prefix = matcher.base if matcher.base.endswith(SEP) else matcher.base + SEP
    directory = on_disk(relative_dir, root)
    if not os.path.isdir(directory):
        return []

    return [
        candidate
        for candidate in _walk(cache, directory, prefix, matcher.max_depth)
        if matcher.matches(os.path.normpath(candidate))
    ]


def is_excluded(
    path: str, excludes: Sequence[Matcher], root: Optional[str] = None
) -> Optional[Matcher]:
    """
    Return the first exclude pattern matching path, if any.

    Absolute exclude patterns are matched against the absolute path,
    relative ones against the path relative to root (or the working
    directory); patterns without a separator also match the file name.
    """
    absolute = to_posix(os.path.abspath(on_disk(path, root)))
    relative: Optional[str] = None
    if not os.path.isabs(path):
        relative = to_posix(os.path.normpath(path))
    else:
        try:
            relative = to_posix(os.path.relpath(absolute, root or os.getcwd()))
        except ValueError:  # different drive on Windows
            relative = None
        if relative is not None and (relative == ".." or relative.startswith("../")):
            relative = None
    name = absolute.rsplit(SEP, 1)[-1]

    for matcher in excludes:
        if matcher.absolute:
            if matcher.matches(absolute):
                return matcher
        elif relative is not None and matcher.matches(relative):
            return matcher
        if not matcher.has_separator and matcher.matches(name):
            return matcher
    return None


def resolve(
    includes: Sequence[Matcher],
    excludes: Sequence[Matcher],
    root: Optional[str] = None,
) -> List[str]:
    """
    Expand include patterns, drop excluded paths and deduplicate.

    Relative patterns are resolved against root, the working directory when
    None; returned paths are then joined onto root. Order is the first-seen
    order across include patterns, each pattern yielding paths in sorted
    order. Raises NoMatchingFiles when nothing is left.
    """
    cache = DirectoryCache()
    # normalized path -> path as first spelled by a pattern
    seen: Dict[str, str] = {}
    for matcher in includes:
        found = expand(matcher, cache, root)
        logger.debug("Pattern '%s' matched %d file(s)", matcher.pattern, len(found))
        for candidate in found:
            seen.setdefault(os.path.normpath(candidate), candidate)

    files: List[str] = []
    for path, candidate in seen.items():
        excluded_by = is_excluded(candidate, excludes, root)
        if excluded_by is not None:
            logger.debug("Excluded %s (pattern '%s')", path, excluded_by.pattern)
            continue
        files.append(os.path.normpath(on_disk(path, root)))

    logger.debug("Scanned %d directories", len(cache))
    if not files:
        raise NoMatchingFiles([m.pattern for m in includes])
    return files


def compile_patterns(patterns: Sequence[str], case_sensitive: bool) -> List[Matcher]:
    """Compile every pattern up front so syntax errors abort before any I/O."""
    matchers: List[Matcher] = []
    for pattern in patterns:
        matcher = compile_pattern(pattern, case_sensitive)
        logger.debug("Compiled pattern '%s' -> %s", pattern, matcher.regex.pattern)
        matchers.append(matcher)
    return matchers


def resolve_patterns(
    includes: Sequence[str],
    excludes: Sequence[str],
    case_sensitive: bool = False,
    root: Optional[str] = None,
) -> List[str]:
    """Compile include/exclude pattern strings and resolve them."""
    include_matchers = compile_patterns(includes, case_sensitive)
    exclude_matchers = compile_patterns(excludes, case_sensitive)
    return resolve(include_matchers, exclude_matchers, root)
