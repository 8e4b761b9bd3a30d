#!/usr/bin/env python3
"""
Tests for include/exclude path resolution.
"""

import logging
import os
import shutil
import sys
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

# Add parent directory to path to import the eolnorm package
sys.path.insert(0, str(Path(__file__).parent.parent))
from eolnorm import resolver  # pylint: disable=wrong-import-position
from eolnorm.errors import (  # pylint: disable=wrong-import-position
    InvalidPattern,
    NoMatchingFiles,
)
from eolnorm.globmatch import compile_pattern  # pylint: disable=wrong-import-position

# Disable logging for tests
resolver.logger.setLevel(logging.CRITICAL)


def touch(path: str, content: bytes = b"x\n") -> None:
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    with open(path, "wb") as f:
        f.write(content)


class TestResolver(unittest.TestCase):
    def setUp(self) -> None:
        # Create a temporary directory and work from inside it
        self.test_dir = tempfile.mkdtemp()
        self.old_cwd = os.getcwd()
        os.chdir(self.test_dir)

        for name in (
            "a.txt",
            "b.txt",
            "c.md",
            "src/main.py",
            "src/util.txt",
            "src/deep/nested.txt",
            ".git/config.txt",
        ):
            touch(name)
        os.makedirs("dir.txt")

    def tearDown(self) -> None:
        os.chdir(self.old_cwd)
        shutil.rmtree(self.test_dir)

    def test_exclusion_precedence(self) -> None:
        """A path matched by both an include and an exclude is dropped."""
        files = resolver.resolve_patterns(["*.txt"], ["b.*"])
        self.assertEqual(files, ["a.txt"])

    def test_star_is_not_recursive(self) -> None:
        self.assertEqual(resolver.resolve_patterns(["*.txt"], []), ["a.txt", "b.txt"])

    def test_directories_are_never_included(self) -> None:
        files = resolver.resolve_patterns(["*"], [])
        self.assertNotIn("dir.txt", files)
        self.assertEqual(files, ["a.txt", "b.txt", "c.md"])

    def test_recursive_pattern(self) -> None:
        files = resolver.resolve_patterns(["**/*.txt"], [])
        self.assertEqual(
            [Path(f).as_posix() for f in files],
            [".git/config.txt", "a.txt", "b.txt", "src/deep/nested.txt", "src/util.txt"],
        )

    def test_exclude_directory_tree(self) -> None:
        files = resolver.resolve_patterns(["**/*.txt"], ["**/.git/**", "src/deep/**"])
        self.assertEqual(
            [Path(f).as_posix() for f in files], ["a.txt", "b.txt", "src/util.txt"]
        )

    def test_exclude_without_separator_matches_file_name(self) -> None:
        files = resolver.resolve_patterns(["src/**/*"], ["*.py"])
        self.assertEqual(
            [Path(f).as_posix() for f in files], ["src/deep/nested.txt", "src/util.txt"]
        )

    def test_literal_prefix(self) -> None:
        files = resolver.resolve_patterns(["src/*.py"], [])
        self.assertEqual([Path(f).as_posix() for f in files], ["src/main.py"])

    def test_literal_file_path(self) -> None:
        self.assertEqual(resolver.resolve_patterns(["c.md"], []), ["c.md"])

    def test_dot_prefix_is_normalized(self) -> None:
        files = resolver.resolve_patterns(["./*.md"], ["./nothing"])
        self.assertEqual(files, ["c.md"])

    def test_absolute_pattern(self) -> None:
        pattern = os.path.join(self.test_dir, "*.md")
        files = resolver.resolve_patterns([pattern], [])
        self.assertEqual(files, [os.path.join(self.test_dir, "c.md")])

    def test_overlapping_includes_deduplicate(self) -> None:
        files = resolver.resolve_patterns(["b.txt", "*.txt", "./a.txt", "*.md"], [])
        self.assertEqual(files, ["b.txt", "a.txt", "c.md"])

    def test_include_matching_nothing_is_not_an_error(self) -> None:
        files = resolver.resolve_patterns(["*.nonexistent", "*.md"], [])
        self.assertEqual(files, ["c.md"])

    def test_no_matching_files(self) -> None:
        with self.assertRaises(NoMatchingFiles):
            resolver.resolve_patterns(["*.nonexistent"], [])

    def test_everything_excluded(self) -> None:
        with self.assertRaises(NoMatchingFiles):
            resolver.resolve_patterns(["*.txt"], ["*"])

    def test_missing_base_directory(self) -> None:
        with self.assertRaises(NoMatchingFiles):
            resolver.resolve_patterns(["missing/*.txt"], [])

    def test_case_sensitivity(self) -> None:
        self.assertEqual(
            resolver.resolve_patterns(["*.TXT"], [], case_sensitive=False),
            ["a.txt", "b.txt"],
        )
        with self.assertRaises(NoMatchingFiles):
            resolver.resolve_patterns(["*.TXT"], [], case_sensitive=True)

    def test_invalid_exclude_aborts_before_scanning(self) -> None:
        with patch("os.scandir") as scandir:
            with self.assertRaises(InvalidPattern):
                resolver.resolve_patterns(["*.txt"], ["[oops"])
            scandir.assert_not_called()

    def test_depth_limited_walk(self) -> None:
        """Non-recursive patterns never list directories deeper than needed."""
        cache = resolver.DirectoryCache()
        found = resolver.expand(compile_pattern("*/*.txt"), cache)
        self.assertEqual(
            [Path(f).as_posix() for f in found], [".git/config.txt", "src/util.txt"]
        )
        listed = {Path(p).as_posix() for p in cache._listings}  # pylint: disable=protected-access
        self.assertNotIn("src/deep", listed)

    def test_directories_listed_once(self) -> None:
        with patch.object(
            resolver.DirectoryCache, "_scan", wraps=resolver.DirectoryCache._scan
        ) as scan:  # pylint: disable=protected-access
            resolver.resolve_patterns(["*.txt", "*.md", "**/*.py"], [])
        scanned = [os.path.normpath(call.args[0]) for call in scan.call_args_list]
        self.assertEqual(len(scanned), len(set(scanned)))

    def test_is_excluded(self) -> None:
        excludes = [compile_pattern("*.log"), compile_pattern("build/**")]
        self.assertIsNotNone(resolver.is_excluded("logs/app.log", excludes))
        self.assertIsNotNone(resolver.is_excluded("build/out/x.c", excludes))
        self.assertIsNone(resolver.is_excluded("src/x.c", excludes))

    def test_exclude_spelled_with_dot_prefix(self) -> None:
        self.assertEqual(resolver.resolve_patterns(["*.txt"], ["./b.txt"]), ["a.txt"])

    def test_exclude_dot_prefixed_tree(self) -> None:
        files = resolver.resolve_patterns(["**/*.txt"], ["./src/**"])
        self.assertEqual(
            [Path(f).as_posix() for f in files], [".git/config.txt", "a.txt", "b.txt"]
        )

    def test_absolute_exclude_against_relative_include(self) -> None:
        files = resolver.resolve_patterns(
            ["*.txt"], [os.path.join(self.test_dir, "b.txt")], root=self.test_dir
        )
        self.assertEqual(files, [os.path.join(self.test_dir, "a.txt")])

    def test_relative_exclude_against_absolute_include(self) -> None:
        files = resolver.resolve_patterns(
            [os.path.join(self.test_dir, "src", "*.*")],
            ["src/main.py"],
            root=self.test_dir,
        )
        self.assertEqual(files, [os.path.join(self.test_dir, "src", "util.txt")])

    @unittest.skipIf(sys.platform == "win32", "symlinks need privileges on Windows")
    def test_symlinked_directory_is_not_descended(self) -> None:
        os.symlink("src", "linkdir")
        files = [Path(f).as_posix() for f in resolver.resolve_patterns(["**/*.txt"], [])]
        self.assertIn("src/util.txt", files)
        self.assertFalse(any(f.startswith("linkdir/") for f in files))
        self.assertNotIn("linkdir", files)

    @unittest.skipIf(sys.platform == "win32", "symlinks need privileges on Windows")
    def test_symlink_to_file_counts_as_file(self) -> None:
        os.symlink("a.txt", "alias.txt")
        os.symlink("missing.txt", "dangling.txt")
        files = resolver.resolve_patterns(["*.txt"], [])
        self.assertEqual(files, ["a.txt", "alias.txt", "b.txt"])


class TestResolverRoot(unittest.TestCase):
    """Resolution below an explicit root, without changing directory."""

    def setUp(self) -> None:
        self.test_dir = tempfile.mkdtemp()
        for name in ("a.txt", "b.txt", "c.md", "sub/c.txt"):
            touch(os.path.join(self.test_dir, name))

    def tearDown(self) -> None:
        shutil.rmtree(self.test_dir)

    def path(self, *parts: str) -> str:
        return os.path.join(self.test_dir, *parts)

    def test_exclusion_precedence(self) -> None:
        files = resolver.resolve_patterns(["*.txt"], ["b.*"], root=self.test_dir)
        self.assertEqual(files, [self.path("a.txt")])

    def test_recursive_with_dot_prefixed_exclude(self) -> None:
        files = resolver.resolve_patterns(["**/*.txt"], ["./sub/**"], root=self.test_dir)
        self.assertEqual(files, [self.path("a.txt"), self.path("b.txt")])

    def test_literal_prefix_and_file(self) -> None:
        self.assertEqual(
            resolver.resolve_patterns(["sub/*.txt", "c.md"], [], root=self.test_dir),
            [self.path("sub", "c.txt"), self.path("c.md")],
        )

    def test_does_not_use_working_directory(self) -> None:
        other = tempfile.mkdtemp()
        old_cwd = os.getcwd()
        os.chdir(other)
        try:
            files = resolver.resolve_patterns(["*.md"], [], root=self.test_dir)
        finally:
            os.chdir(old_cwd)
            shutil.rmtree(other)
        self.assertEqual(files, [self.path("c.md")])

    def test_no_matching_files(self) -> None:
        with self.assertRaises(NoMatchingFiles):
            resolver.resolve_patterns(["*.nonexistent"], [], root=self.test_dir)


if __name__ == "__main__":
    unittest.main()
