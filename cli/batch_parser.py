#!/usr/bin/env python3
"""
Parser for batch mode input: item numbers to enroll in an auction.
Handles several line formats and flags duplicates.
"""
import re
from typing import List, NamedTuple, Optional


class ParsedLine(NamedTuple):
    row: int
    item_id: Optional[int]
    duplicate: bool
    original_line: str


def extract_item_id(text: str) -> Optional[int]:
    """
    Extract an item number from a line.
    Supports:
    - Plain item number ("42")
    - Hash-prefixed item number ("#42")
    - Item number followed by a label ("42, Signed guitar" / "42<TAB>Signed guitar")
    - Labelled item number ("item 42")

    Returns the item number, or None if the line has none.
    """
    # A leading number is the item number; anything after it is a label
    match = re.match(r'\s*(\d+)\b', text)
    if match:
        return int(match.group(1))

    match = re.search(r'(?:#|\bitem\s*#?\s*)(\d+)', text, re.IGNORECASE)
    if match:
        return int(match.group(1))

    return None


def parse_item_ids(lines: List[str]) -> List[ParsedLine]:
    """
    Parse batch input lines.

    Args:
        lines: Input lines (from stdin or a file)

    Returns:
        One ParsedLine per non-blank, non-comment line. Row numbers are 1-indexed.
        item_id is None when the line could not be parsed; repeated item numbers
        are kept but flagged as duplicates (first occurrence wins).
    """
    results = []
    seen = set()

    for line_num, line in enumerate(lines, start=1):
        original_line = line.rstrip("\n")
        line = line.strip()

        if not line or (line.startswith('#') and not line[1:2].isdigit()):
            continue

        item_id = extract_item_id(line)
        if item_id is None or item_id <= 0:
            results.append(ParsedLine(line_num, None, False, original_line))
            continue

        if item_id in seen:
            results.append(ParsedLine(line_num, item_id, True, original_line))
            continue

        seen.add(item_id)
        results.append(ParsedLine(line_num, item_id, False, original_line))

    return results
