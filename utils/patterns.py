"""Pre-compiled regex patterns for eCFR Analyzer tools.

All patterns are compiled once at module import so request handlers and the
tree builder never recompile them.

Usage:
    from utils.patterns import PURE_INTEGER, NUMBER_CHUNKS

    if PURE_INTEGER.match(number):
        ...
"""

import re

# FTS5 special characters that need stripping in full-text search queries
FTS5_SPECIAL_CHARS = re.compile(r'[\"()*:^+]')

# Whitespace normalization: multiple spaces/tabs/newlines
WHITESPACE = re.compile(r'\s+')

# Node numbers that are plain integers: "4", "21", "100"
PURE_INTEGER = re.compile(r'^\d+$')

# Digit runs and non-digit runs of a node number: "21.1-3" -> 21 . 1 - 3
NUMBER_CHUNKS = re.compile(r'\d+|\D+')

# One path segment of a regulation link: "title=4", "part=21"
PATH_SEGMENT = re.compile(r'^([a-z]+)=([^/=]+)$')

# ISO calendar date as accepted by the corrections endpoints: 2024-01-31
ISO_DATE = re.compile(r'^\d{4}-\d{2}-\d{2}$')

# A search term must contain at least one word character to be searchable
SEARCHABLE_TERM = re.compile(r'\w')
