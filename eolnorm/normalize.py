#!/usr/bin/env python3
"""
eolnorm

A cross-platform Python script to normalize line endings of files selected
by glob patterns, or of a stream read from stdin.
"""

import argparse
import concurrent.futures
import logging
import os
import shutil
import sys
import tempfile
import threading
import time
from dataclasses import dataclass
from typing import BinaryIO, Dict, List, Optional, Sequence

from tqdm import tqdm

from eolnorm import __version__
from eolnorm.eol import (
    ConversionResult,
    EolKind,
    count_eols,
    describe_eols,
    escape_bytes,
    rewrite,
)
from eolnorm.errors import (
    EolNormError,
    FileReadError,
    FileWriteError,
    InvalidPattern,
    NoMatchingFiles,
    OutputDirectoryCreateError,
)
from eolnorm.resolver import compile_patterns, resolve

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Set up logging with thread-safe handler
logging.basicConfig(
    level=logging.INFO,
    format=LOG_FORMAT,
    handlers=[logging.StreamHandler()],
)
logger = logging.getLogger("eolnorm")
# Add a thread lock for logging
log_lock = threading.Lock()


@dataclass(frozen=True)
class ConversionConfig:
    """Invocation-wide settings threaded through resolution and conversion."""

    eol: EolKind = EolKind.LF
    output_dir: Optional[str] = None
    dry_run: bool = False
    debug: bool = False
    case_sensitive: bool = False
    workers: Optional[int] = None

    @property
    def writes(self) -> bool:
        return not (self.dry_run or self.debug)


@dataclass
class ProcessedFileReport:
    """Outcome of converting one file."""

    path: str
    destination: str
    boundaries: int = 0
    changed: bool = False
    written: bool = False
    error: Optional[str] = None
    debug_output: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def read_file(path: str) -> bytes:
    try:
        with open(path, "rb") as f:
            return f.read()
    except OSError as e:
        raise FileReadError(path, e) from e


def ensure_parent_dir(path: str) -> None:
    parent = os.path.dirname(path)
    if not parent:
        return
    try:
        os.makedirs(parent, exist_ok=True)
    except OSError as e:
        raise OutputDirectoryCreateError(parent, e) from e


def write_file(path: str, data: bytes) -> None:
    """
    Atomically replace path with data.

    The bytes go to a temporary file next to path which is then renamed over
    it, so path is either fully written or left untouched. An existing
    file's mode bits are carried over.
    """
    directory = os.path.dirname(path) or "."
    tmp_name = None
    try:
        fd, tmp_name = tempfile.mkstemp(dir=directory, prefix=".eolnorm-")
        with os.fdopen(fd, "wb") as tmp:
            tmp.write(data)
        if os.path.exists(path):
            shutil.copymode(path, tmp_name)
        os.replace(tmp_name, path)
    except OSError as e:
        if tmp_name is not None and os.path.exists(tmp_name):
            try:
                os.remove(tmp_name)
            except OSError as cleanup_err:
                with log_lock:
                    logger.warning(
                        "Could not remove temporary file %s: %s",
                        tmp_name,
                        cleanup_err,
                    )
        raise FileWriteError(path, e) from e


def destination_for(path: str, output_dir: Optional[str]) -> str:
    """
    Where the converted bytes of path go.

    Without an output directory this is path itself. Otherwise path is
    mirrored below output_dir: relative to the working directory when it
    lies inside it, else with its drive/root stripped.
    """
    if output_dir is None:
        return path

    absolute = os.path.abspath(path)
    relative: Optional[str]
    try:
        relative = os.path.relpath(absolute)
    except ValueError:  # different drive on Windows
        relative = None
    if relative is None or relative == os.pardir or relative.startswith(
        os.pardir + os.sep
    ):
        relative = os.path.splitdrive(absolute)[1].lstrip("\\/")
    return os.path.join(output_dir, relative)


def process_file(
    file_path: str, config: ConversionConfig, destination: Optional[str] = None
) -> ProcessedFileReport:
    """Convert a single file according to config and report what happened."""
    if destination is None:
        destination = destination_for(file_path, config.output_dir)
    report = ProcessedFileReport(file_path, destination)

    try:
        data: bytes = read_file(file_path)
    except FileReadError as e:
        with log_lock:
            logger.error("%s", e)
        report.error = str(e)
        return report

    result: ConversionResult = rewrite(data, config.eol)
    report.boundaries = result.boundaries
    report.changed = result.changed
    with log_lock:
        logger.debug(
            "%s: %s -> %s%s",
            file_path,
            describe_eols(count_eols(data)),
            config.eol,
            "" if result.changed else " (unchanged)",
        )

    if config.debug:
        report.debug_output = escape_bytes(result.output)
        return report
    if config.dry_run:
        return report

    # In place, an already normalized file is left alone.
    in_place = destination == file_path
    if in_place and not result.changed:
        return report

    # Write through symlinks so the link stays and its target is converted.
    target = os.path.realpath(destination) if in_place else destination
    try:
        ensure_parent_dir(target)
        write_file(target, result.output)
    except EolNormError as e:
        with log_lock:
            logger.error("%s", e)
        report.error = str(e)
        return report

    report.written = True
    with log_lock:
        logger.debug("Wrote %s", destination)
    return report


def _claim_destinations(
    files: Sequence[str], config: ConversionConfig
) -> List[Optional[ProcessedFileReport]]:
    """
    Pre-fill a report for every file whose destination was already claimed
    by an earlier file, so no two tasks write the same path.

    In place, this only happens when links lead to one file; the later
    path is skipped. Two files mirrored onto one output path is an error.
    """
    claimed: Dict[str, str] = {}
    prefilled: List[Optional[ProcessedFileReport]] = []
    for file_path in files:
        destination = destination_for(file_path, config.output_dir)
        key = os.path.normcase(os.path.realpath(destination))
        if key not in claimed or not config.writes:
            claimed.setdefault(key, file_path)
            prefilled.append(None)
        elif config.output_dir is None:
            with log_lock:
                logger.debug("Skipping %s: same file as %s", file_path, claimed[key])
            prefilled.append(ProcessedFileReport(file_path, destination))
        else:
            error = FileWriteError(
                destination,
                FileExistsError(f"also the destination of {claimed[key]}"),
            )
            with log_lock:
                logger.error("%s", error)
            prefilled.append(
                ProcessedFileReport(file_path, destination, error=str(error))
            )
    return prefilled


def _unhandled_failure(
    file_path: str, config: ConversionConfig, error: Exception
) -> ProcessedFileReport:
    with log_lock:
        logger.error("Unhandled error processing %s: %s", file_path, error)
    return ProcessedFileReport(
        file_path, destination_for(file_path, config.output_dir), error=str(error)
    )


def _worker_count(requested: Optional[int], file_count: int) -> int:
    # Use minimum of (number of CPUs * 2) or 32, but not more than number of files
    if requested is None:
        cpu_count: Optional[int] = os.cpu_count()
        return max(1, min((cpu_count or 2) * 2, 32, file_count))
    return max(1, min(requested, 32, file_count))


def process_files(
    files: Sequence[str], config: ConversionConfig
) -> List[ProcessedFileReport]:
    """
    Convert every file, returning reports in the order of files.

    A failure in one file never stops the others. Raises
    OutputDirectoryCreateError when the output directory itself cannot be
    created, before any file is touched.
    """
    if config.output_dir is not None and config.writes:
        try:
            os.makedirs(config.output_dir, exist_ok=True)
        except OSError as e:
            raise OutputDirectoryCreateError(config.output_dir, e) from e

    reports = _claim_destinations(files, config)
    pending = [index for index, report in enumerate(reports) if report is None]
    if not pending:
        return [report for report in reports if report is not None]

    max_workers = _worker_count(config.workers, len(pending))
    with log_lock:
        logger.debug(
            "Using %d worker threads for processing %d files",
            max_workers,
            len(pending),
        )

    with tqdm(
        total=len(pending),
        desc="Converting",
        unit="file",
        disable=(not config.writes) or None,
    ) as pbar:
        if max_workers == 1:
            for index in pending:
                try:
                    reports[index] = process_file(files[index], config)
                except Exception as e:  # pylint: disable=broad-exception-caught
                    reports[index] = _unhandled_failure(files[index], config, e)
                finally:
                    pbar.update(1)
        else:
            with concurrent.futures.ThreadPoolExecutor(
                max_workers=max_workers
            ) as executor:
                future_to_index = {
                    executor.submit(process_file, files[index], config): index
                    for index in pending
                }
                # Results land in their slot, so completion order does not matter
                for future in concurrent.futures.as_completed(future_to_index):
                    index = future_to_index[future]
                    try:
                        reports[index] = future.result()
                    except Exception as e:  # pylint: disable=broad-exception-caught
                        reports[index] = _unhandled_failure(files[index], config, e)
                    finally:
                        pbar.update(1)

    return [report for report in reports if report is not None]


def read_stdin() -> bytes:
    return sys.stdin.buffer.read()


def process_stream(
    data: bytes,
    eol: EolKind,
    destination: Optional[str] = None,
    debug: bool = False,
    stdout: Optional[BinaryIO] = None,
) -> ConversionResult:
    """
    Convert a whole stdin buffer and write it to destination.

    With no destination the bytes go to stdout. NOTE: the shell or terminal
    might force the native EOL sequence on what is written there.
    """
    result = rewrite(data, eol)
    logger.debug(
        "stdin: %s -> %s (%d boundaries)",
        describe_eols(count_eols(data)),
        eol,
        result.boundaries,
    )
    if debug:
        print(escape_bytes(result.output))
        return result

    if destination is None:
        out = stdout if stdout is not None else sys.stdout.buffer
        out.write(result.output)
        out.flush()
    else:
        ensure_parent_dir(destination)
        write_file(destination, result.output)
    return result


def format_duration(execution_time: float) -> str:
    if execution_time < 60:
        return f"{execution_time:.2f} seconds"
    if execution_time < 3600:
        minutes = int(execution_time // 60)
        seconds = execution_time % 60
        return f"{minutes} minute{'s' if minutes != 1 else ''} {seconds:.2f} seconds"
    hours = int(execution_time // 3600)
    minutes = int((execution_time % 3600) // 60)
    seconds = execution_time % 60
    return (
        f"{hours} hour{'s' if hours != 1 else ''} "
        f"{minutes} minute{'s' if minutes != 1 else ''} "
        f"{seconds:.2f} seconds"
    )


def parse_eol(value: str) -> EolKind:
    try:
        return EolKind.parse(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-l",
        "--eol",
        type=parse_eol,
        default=EolKind.LF,
        metavar="{LF,CRLF,CR}",
        help="Line ending sequence to convert to, case-insensitive (default: LF)",
    )
    parser.add_argument(
        "-d",
        "--debug",
        action="store_true",
        help="Print the converted bytes escaped to stdout instead of writing them",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Print debug information to stderr"
    )
    parser.add_argument(
        "--log-file",
        default=None,
        metavar="PATH",
        help="Also append log messages to this file",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"eolnorm v{__version__}",
        help="Show program version and exit",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="eolnorm",
        description="Normalize line endings of files matching glob patterns. "
        "Run 'eolnorm stdin --help' to convert standard input instead.",
        epilog="Exclusions take precedence over inclusions.",
    )
    parser.add_argument(
        "patterns",
        nargs="+",
        metavar="PATTERN",
        help="Include filepaths matching these glob patterns",
    )
    parser.add_argument(
        "-e",
        "--exclude",
        nargs="+",
        action="extend",
        default=[],
        metavar="PATTERN",
        help="Exclude filepaths matching these glob patterns (appending)",
    )
    parser.add_argument(
        "-o",
        "--output",
        default=None,
        metavar="DIR",
        help="Output directory for converted files, otherwise replace original files",
    )
    parser.add_argument(
        "-c",
        "--case-sensitive",
        action="store_true",
        help="Use case sensitive matching in patterns",
    )
    parser.add_argument(
        "-n",
        "--dry-run",
        action="store_true",
        help="Print filepaths that would be affected, without modifying files",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Number of worker threads for parallel processing "
        "(default: auto-detect based on CPU count)",
    )
    _add_common_arguments(parser)
    return parser


def build_stdin_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="eolnorm stdin",
        description="Read stdin as input, write to the specified file.",
    )
    parser.add_argument("file", nargs="?", default=None, metavar="FILE", help="Output filepath")
    parser.add_argument(
        "-p",
        "--stdout",
        action="store_true",
        help="Output to stdout. NOTE: Shell might force native EOL sequence!",
    )
    _add_common_arguments(parser)
    return parser


def configure_logging(verbose: bool, log_file: Optional[str]) -> Optional[logging.Handler]:
    """Apply --verbose and --log-file; return the file handler to close later."""
    if verbose:
        logger.setLevel(logging.DEBUG)
    if not log_file:
        return None
    handler = logging.FileHandler(log_file, mode="a")
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    return handler


def run_stdin(args: argparse.Namespace) -> int:
    logger.debug("Target sequence: %s", args.eol)
    logger.debug("Output: %s", "stdout" if args.stdout else args.file)
    try:
        process_stream(
            read_stdin(),
            args.eol,
            destination=None if args.stdout else args.file,
            debug=args.debug,
        )
    except EolNormError as e:
        logger.error("%s", e)
        return 1
    return 0


def run_files(args: argparse.Namespace) -> int:  # pylint: disable=too-many-branches
    # Validate workers count
    if args.workers is not None and args.workers <= 0:
        logger.warning(
            "Invalid worker count (%d), using auto-detection instead", args.workers
        )
        args.workers = None

    config = ConversionConfig(
        eol=args.eol,
        output_dir=args.output,
        dry_run=args.dry_run,
        debug=args.debug,
        case_sensitive=args.case_sensitive,
        workers=args.workers,
    )
    logger.debug("Target sequence: %s", config.eol)
    logger.debug("Dry-run: %s", config.dry_run)
    logger.debug("Case-sensitive: %s", config.case_sensitive)
    logger.debug("Output: %s", config.output_dir or "in place")

    # Patterns are checked and the selection resolved before any work.
    try:
        includes = compile_patterns(args.patterns, config.case_sensitive)
        excludes = compile_patterns(args.exclude, config.case_sensitive)
        files: List[str] = resolve(includes, excludes)
    except (InvalidPattern, NoMatchingFiles) as e:
        logger.error("%s", e)
        return 1

    logger.debug("Resolved %d file(s):", len(files))
    for file_path in files:
        logger.debug("  %s", file_path)

    start_time: float = time.time()
    try:
        reports = process_files(files, config)
    except OutputDirectoryCreateError as e:
        logger.error("%s", e)
        return 1

    for report in reports:
        if config.debug and report.debug_output is not None:
            print(f"{report.path}: {report.debug_output}")
        elif config.dry_run and report.ok:
            print(report.path)

    failures = [report for report in reports if not report.ok]
    if config.dry_run:
        logger.info(
            "Dry run: %d of %d files would change.",
            sum(1 for report in reports if report.changed),
            len(reports),
        )
    elif not config.debug:
        logger.info(
            "Done! Converted %d of %d files in %s.",
            sum(1 for report in reports if report.written),
            len(files),
            format_duration(time.time() - start_time),
        )

    if failures:
        logger.warning("Encountered errors while processing %d files", len(failures))
        return 1
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args_list: List[str] = list(sys.argv[1:] if argv is None else argv)
    handler: Optional[logging.Handler] = None
    try:
        if args_list and args_list[0] == "stdin":
            parser = build_stdin_parser()
            args = parser.parse_args(args_list[1:])
            if args.stdout == (args.file is not None):
                parser.error("exactly one of FILE or --stdout is required")
            handler = configure_logging(args.verbose, args.log_file)
            return run_stdin(args)

        args = build_parser().parse_args(args_list)
        handler = configure_logging(args.verbose, args.log_file)
        return run_files(args)
    except KeyboardInterrupt:
        logger.info("Operation cancelled by user.")
        return 130
    except Exception as e:  # pylint: disable=broad-exception-caught
        logger.error("An unexpected error occurred: %s", str(e))
        if logger.getEffectiveLevel() <= logging.DEBUG:
            import traceback  # pylint: disable=import-outside-toplevel

            logger.debug("Traceback: %s", traceback.format_exc())
        return 1
    finally:
        if handler is not None:
            logger.removeHandler(handler)
            handler.close()


if __name__ == "__main__":
    sys.exit(main())
