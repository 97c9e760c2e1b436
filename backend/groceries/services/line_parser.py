"""
Splits a free-text grocery line into a quantity and a product term.

Only a leading or a trailing integer is recognised ("2 pommes", "pommes 2").
Numbers in the middle of a line are part of the term.
"""

import re
from dataclasses import dataclass
from typing import List

LEADING_QUANTITY = re.compile(r"^([0-9]+)\s+(.+)$", re.DOTALL)
TRAILING_QUANTITY = re.compile(r"^(.+)\s+([0-9]+)$", re.DOTALL)


@dataclass
class ParsedLine:
    """
    Attributes:
        quantity: Requested quantity (always >= 1)
        term: Product term with the quantity token removed
    """
    quantity: int
    term: str


def parse_line(line: str) -> ParsedLine:
    """
    Extract (quantity, term) from one line of raw text.

    Args:
        line: Non-empty raw line

    Returns:
        ParsedLine; quantity defaults to 1 when no leading/trailing integer exists
    """
    trimmed = line.strip()
    if not trimmed:
        raise ValueError("Cannot parse an empty grocery line")

    for pattern, qty_group, term_group in (
        (LEADING_QUANTITY, 1, 2),
        (TRAILING_QUANTITY, 2, 1),
    ):
        match = pattern.match(trimmed)
        if match:
            term = match.group(term_group).strip()
            if term:
                # "0 pommes" still asks for the product once
                quantity = max(int(match.group(qty_group)), 1)
                return ParsedLine(quantity=quantity, term=term)

    return ParsedLine(quantity=1, term=trimmed)


def split_lines(text: str) -> List[str]:
    """Split a text block into trimmed, non-empty lines."""
    return [line.strip() for line in text.splitlines() if line.strip()]
