#!/usr/bin/env python3
"""
fixwhitespace

Normalize whitespace conventions in text files, in place.
"""

import argparse
import codecs
import glob
import logging
import os
import sys
from dataclasses import dataclass
from typing import List, NamedTuple, Optional, Sequence, Tuple

from tqdm import tqdm
from tqdm.contrib.logging import logging_redirect_tqdm

# Define version
__version__ = "1.0.0"
__author__ = "tboy1337"

# Bytes read before deciding whether a full read is worth it
HEADER_SIZE = 4096
# Files larger than this are never read
MAX_FILE_SIZE = 10_000_000
# Version control metadata directories, never descended into
VCS_DIRS = (".git", ".svn")

TEXT_ENCODINGS = ("ascii", "utf-8")

USAGE_DESCRIPTION = """\
Normalize whitespace in text files:
  - convert CRLF and CR line endings to LF
  - remove trailing spaces and tabs from every line
  - add a missing newline at the end of the file
  - collapse multiple newlines at the end of the file
  - warn about a space followed by a tab

Files are edited in place. No backups are made."""


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler()],
)
logger = logging.getLogger("fixwhitespace")


class UsageError(Exception):
    """Raised for a bad command line."""


class ChangeReport(NamedTuple):
    """Per-file counts of what the normalizer changed, in pipeline order."""

    crlf: int = 0
    cr: int = 0
    trailing_whitespace: int = 0
    missing_final_newline: int = 0
    trailing_blank_lines: int = 0
    space_before_tab: bool = False

    @property
    def total(self) -> int:
        return (
            self.crlf
            + self.cr
            + self.trailing_whitespace
            + self.missing_final_newline
            + self.trailing_blank_lines
        )


@dataclass
class RunTotals:
    files_changed: int = 0
    fixes: int = 0
    warnings: int = 0


def is_binary_file(
    file_path: str,
) -> bool:  # pylint: disable=too-many-return-statements
    """
    Check if a file is binary by examining its name and first bytes.
    Unreadable files are reported as binary.
    """
    try:
        # Check file size first - empty files are not binary
        if os.path.getsize(file_path) == 0:
            return False

        # Common binary file extensions
        binary_extensions = {
            ".bin",
            ".exe",
            ".dll",
            ".so",
            ".dylib",
            ".obj",
            ".o",
            ".a",
            ".lib",
            ".png",
            ".jpg",
            ".jpeg",
            ".gif",
            ".bmp",
            ".ico",
            ".tif",
            ".tiff",
            ".zip",
            ".tar",
            ".gz",
            ".bz2",
            ".xz",
            ".7z",
            ".rar",
            ".pdf",
            ".class",
            ".pyc",
            ".pyo",
            ".pyd",
            ".mp3",
            ".mp4",
            ".avi",
            ".mov",
        }

        # Check extension first for common binary formats
        ext: str = os.path.splitext(file_path)[1].lower()
        if ext in binary_extensions:
            return True

        # Read the first chunk of the file
        with open(file_path, "rb") as f:
            chunk: bytes = f.read(8192)

        # Empty files are not binary
        if not chunk:
            return False

        # Check for NULL bytes (common in binary files)
        if b"\x00" in chunk:
            return True

        # Check for common binary file signatures/magic numbers
        if chunk.startswith(
            (b"\x89PNG", b"GIF8", b"\xff\xd8\xff", b"%PDF", b"PK\x03\x04", b"\x7fELF")
        ):
            return True

        # Check the ratio of non-text bytes
        text_characters: bytearray = bytearray(
            {7, 8, 9, 10, 12, 13, 27} | set(range(0x20, 0x100)) - {0x7F}
        )
        non_text: bytes = chunk.translate(None, bytes(text_characters))
        return float(len(non_text)) / len(chunk) > 0.2
    except OSError as e:
        logger.debug("Error checking if file is binary %s: %s", file_path, str(e))
        return True


def detect_text_encoding(buffer: bytes, final: bool = True) -> Optional[str]:
    """
    Return the canonical name of the text encoding of ``buffer``, or None.

    Only ASCII and UTF-8 are recognized. Pass ``final=False`` for a
    truncated sample: a multi-byte sequence cut off by the end of the
    buffer is then accepted.
    """
    if b"\x00" in buffer:
        return None
    if buffer.isascii():
        return "ascii"
    decoder = codecs.getincrementaldecoder("utf-8")(errors="strict")
    try:
        decoder.decode(buffer, final=final)
    except UnicodeDecodeError:
        return None
    return "utf-8"


def is_text(buffer: bytes, final: bool = True) -> bool:
    encoding = detect_text_encoding(buffer, final=final)
    return encoding is not None and encoding.lower() in TEXT_ENCODINGS


def normalize_text(original: str) -> Tuple[str, ChangeReport]:
    """
    Normalize line endings and trailing whitespace of ``original``.

    Returns the normalized text and a report of every category that fired.
    """
    # CRLF first so that the lone CR pass only sees classic Mac endings
    segments: List[str] = original.split("\r\n")
    crlf: int = len(segments) - 1
    text: str = "\n".join(segments)

    segments = text.split("\r")
    cr: int = len(segments) - 1
    text = "\n".join(segments)

    lines: List[str] = text.split("\n")
    trailing: int = 0
    for index, line in enumerate(lines):
        stripped = line.rstrip(" \t")
        if stripped != line:
            lines[index] = stripped
            trailing += 1
    text = "\n".join(lines)

    missing_newline: int = 0
    if not text.endswith("\n"):
        text += "\n"
        missing_newline = 1

    blank_lines: int = 0
    if text.endswith("\n\n"):
        text = text.rstrip("\n") + "\n"
        blank_lines = 1

    report = ChangeReport(
        crlf=crlf,
        cr=cr,
        trailing_whitespace=trailing,
        missing_final_newline=missing_newline,
        trailing_blank_lines=blank_lines,
        space_before_tab=" \t" in original,
    )
    return text, report


def read_file_sample(file_path: str, size: int, limit: int) -> Optional[bytes]:
    """
    Read ``min(limit, size)`` bytes from the start of a file.

    Returns None on a short read or an I/O error.
    """
    wanted: int = min(limit, size)
    try:
        with open(file_path, "rb") as f:
            data: bytes = f.read(wanted)
    except OSError as e:
        logger.debug("Error reading %s: %s", file_path, str(e))
        return None
    if len(data) < wanted:
        logger.debug("Short read on %s: %d of %d bytes", file_path, len(data), wanted)
        return None
    return data


def log_report(report: ChangeReport) -> None:
    if report.crlf:
        logger.info("  Fixed %d CRLF line endings", report.crlf)
    if report.cr:
        logger.info("  Fixed %d CR line endings", report.cr)
    if report.trailing_whitespace:
        logger.info(
            "  Removed trailing whitespace from %d lines", report.trailing_whitespace
        )
    if report.missing_final_newline:
        logger.info("  Added missing newline at end of file")
    if report.trailing_blank_lines:
        logger.info("  Removed multiple newlines at end of file")


def process_file(  # pylint: disable=too-many-return-statements
    file_path: str,
    totals: RunTotals,
    max_size: int = MAX_FILE_SIZE,
    header_size: int = HEADER_SIZE,
) -> int:
    """
    Normalize one file in place and return the number of problems found.

    Binary, oversized and unreadable files are skipped and count as zero.
    ``totals`` is updated with the changed file and any warning.
    """
    if is_binary_file(file_path):
        logger.debug("Skipping binary file: %s", file_path)
        return 0

    try:
        size: int = os.path.getsize(file_path)
    except OSError as e:
        logger.debug("Cannot stat %s: %s", file_path, str(e))
        return 0
    if size == 0:
        logger.debug("Skipping empty file: %s", file_path)
        return 0
    if size > max_size:
        logger.debug("Skipping large file: %s (%d bytes)", file_path, size)
        return 0

    contents = read_file_sample(file_path, size, header_size)
    if contents is None:
        return 0
    if not is_text(contents, final=size <= header_size):
        logger.debug("Skipping non-text file: %s", file_path)
        return 0

    if size > header_size:
        contents = read_file_sample(file_path, size, size)
        if contents is None:
            return 0
        if not is_text(contents):
            logger.debug("Skipping non-text file: %s", file_path)
            return 0

    logger.info("Checking %s", file_path)

    original: str = contents.decode("utf-8")
    normalized, report = normalize_text(original)

    if normalized != original:
        try:
            with open(file_path, "wb") as f:
                f.write(normalized.encode("utf-8"))
        except OSError as e:
            logger.warning("Could not fix %s: %s", file_path, str(e))
        else:
            log_report(report)
            totals.files_changed += 1

    if report.space_before_tab:
        logger.warning("%s: space before tab", file_path)
        totals.warnings += 1

    return report.total


def find_files(
    root_dir: str,
    ignore_dirs: Optional[Sequence[str]] = None,
) -> List[str]:
    """Find all regular files below ``root_dir``, skipping ignored directories."""
    if ignore_dirs is None:
        ignore_dirs = VCS_DIRS

    all_files: List[str] = []
    ignore_dirs_set = set(ignore_dirs)

    # Nothing below a version control directory is ever visited
    if ignore_dirs_set.intersection(os.path.normpath(root_dir).split(os.sep)):
        logger.debug("Skipping ignored directory: %s", root_dir)
        return all_files

    for root, dirs, files in os.walk(root_dir):
        dirs[:] = sorted(d for d in dirs if d not in ignore_dirs_set)

        for filename in sorted(files):
            file_path: str = os.path.join(root, filename)
            if os.path.isfile(file_path):
                all_files.append(file_path)

    return all_files


def expand_paths(
    patterns: Sequence[str],
    ignore_dirs: Optional[Sequence[str]] = None,
) -> List[str]:
    """Expand command line glob patterns into the list of files to process."""
    seen = set()
    all_files: List[str] = []

    for pattern in patterns:
        matches: List[str] = sorted(glob.glob(pattern, recursive=True))
        if not matches:
            if not os.path.exists(pattern):
                logger.warning("No such file or directory: %s", pattern)
                continue
            matches = [pattern]

        for match in matches:
            if os.path.isdir(match):
                candidates = find_files(match, ignore_dirs)
            elif os.path.isfile(match):
                candidates = [match]
            else:
                logger.debug("Skipping non-regular file: %s", match)
                continue

            for file_path in candidates:
                if file_path not in seen:
                    seen.add(file_path)
                    all_files.append(file_path)

    return all_files


def run(
    patterns: Sequence[str],
    max_size: int = MAX_FILE_SIZE,
    header_size: int = HEADER_SIZE,
) -> RunTotals:
    """Process every file named by ``patterns`` and return the run totals."""
    totals = RunTotals()
    files: List[str] = expand_paths(patterns)
    logger.debug("Found %d files to check", len(files))

    with logging_redirect_tqdm():
        for file_path in tqdm(files, desc="Checking files", unit="file", disable=None):
            totals.fixes += process_file(
                file_path, totals, max_size=max_size, header_size=header_size
            )

    return totals


def print_summary(totals: RunTotals) -> None:
    if not totals.files_changed and not totals.warnings:
        logger.info("No problems found.")
        return
    if totals.files_changed:
        logger.info(
            "Fixed %d problem(s) in %d file(s).", totals.fixes, totals.files_changed
        )
    if totals.warnings:
        logger.info("%d warning(s).", totals.warnings)


class _ArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:  # type: ignore[override]
        raise UsageError(message)


def build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog="fixwhitespace",
        description=USAGE_DESCRIPTION,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        add_help=False,
    )
    parser.add_argument(
        "patterns",
        nargs="+",
        metavar="PATTERN",
        help="File or directory glob pattern; directories are searched recursively",
    )
    parser.add_argument(
        "-h",
        "--help",
        action="store_true",
        help="Show this message and exit",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    if argv is None:
        argv = sys.argv[1:]

    # --help has to win over a missing PATTERN
    if "-h" in argv or "--help" in argv:
        parser.print_help(sys.stderr)
        return 2

    try:
        args = parser.parse_args(argv)
    except UsageError as e:
        parser.print_help(sys.stderr)
        print(f"\n{parser.prog}: error: {e}", file=sys.stderr)
        return 2

    try:
        totals = run(args.patterns)
        print_summary(totals)
        return 0
    except KeyboardInterrupt:
        logger.info("Operation cancelled by user.")
        return 130
    except Exception as e:  # pylint: disable=broad-exception-caught
        logger.error("An unexpected error occurred: %s", str(e))
        if logger.isEnabledFor(logging.DEBUG):
            import traceback  # pylint: disable=import-outside-toplevel

            logger.debug("Traceback: %s", traceback.format_exc())
        return 1


if __name__ == "__main__":
    sys.exit(main())
