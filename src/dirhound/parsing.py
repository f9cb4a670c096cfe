"""
Parsing helpers for command-line and config-file strings.
"""

from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple


def parse_range(value: Optional[str]) -> Optional[Tuple[int, int]]:
    """
    Parse "min-max" or a single number into an inclusive range.

    >>> parse_range("100-500")
    (100, 500)
    >>> parse_range("404")
    (404, 404)
    """
    if value is None or not value.strip():
        return None

    text = value.strip()
    try:
        if "-" in text:
            low, high = text.split("-", 1)
            return int(low), int(high)
        number = int(text)
    except ValueError:
        raise ValueError(f"expected N or MIN-MAX, got {value!r}") from None
    return number, number


def parse_headers(values: Iterable[str]) -> Dict[str, str]:
    """
    Parse "Name: value" strings into a header dictionary.

    Raises:
        ValueError: If an entry has no ':' or an empty name
    """
    headers = {}
    for raw in values:
        name, sep, value = raw.partition(":")
        if not sep or not name.strip():
            raise ValueError(f"header must be in 'Name: value' format, got {raw!r}")
        headers[name.strip()] = value.strip()
    return headers


def parse_codes(values: Iterable[str]) -> List[int]:
    """Parse status codes given as repeated options or comma separated lists"""
    codes = []
    for raw in values:
        for part in str(raw).split(","):
            part = part.strip()
            if not part:
                continue
            try:
                codes.append(int(part))
            except ValueError:
                raise ValueError(f"invalid status code {part!r}") from None
    return codes


def load_lines(path) -> List[str]:
    """Read non-empty, non-comment lines from a small text file (e.g. user agents)"""
    lines = []
    with open(Path(path), "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if line and not line.startswith("#"):
                lines.append(line)
    return lines
