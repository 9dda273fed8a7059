"""
fixwhitespace - A Python utility for normalizing whitespace in text files.

This module provides functionality to:
- Convert CRLF and CR line endings to LF
- Remove trailing whitespace from lines
- Add a missing final newline
- Collapse multiple trailing newlines
- Warn about a space followed by a tab
- Process files recursively across directories
"""

__version__ = "1.0.0"
__author__ = "tboy1337"
