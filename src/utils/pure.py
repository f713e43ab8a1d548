from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import List, Literal, Optional

CENT = Decimal("0.01")
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def to_int(val) -> int:
    """Coerce a stored quantity to int; anything malformed becomes 0."""
    try:
        return int(val)
    except (TypeError, ValueError, OverflowError):
        return 0


def to_decimal(val) -> Decimal:
    """Coerce a stored amount to Decimal; anything malformed or non-finite becomes 0."""
    if isinstance(val, Decimal):
        dec = val
    else:
        try:
            dec = Decimal(str(val))
        except (InvalidOperation, TypeError, ValueError):
            return Decimal(0)
    if not dec.is_finite():
        return Decimal(0)
    return dec


def money(val) -> Decimal:
    """Round to cents, half up."""
    return to_decimal(val).quantize(CENT, rounding=ROUND_HALF_UP)


def format_ts(when: datetime) -> str:
    return when.strftime(TIMESTAMP_FORMAT)


def parse_ts(val) -> Optional[datetime]:
    if val is None:
        return None
    if isinstance(val, datetime):
        return val
    try:
        return datetime.fromisoformat(str(val))
    except ValueError:
        return None


def generate_markdown_table(
    headers: Optional[List[str]],
    rows: List[List[str]],
    aligns: Optional[List[Literal["l", "c", "r"]]] = None,
) -> str:
    """
    Generate a Markdown table.

    Args:
        headers: List of column headers, or None to use first row as headers.
        rows: List of rows, each a list of strings.
        aligns: List of alignments ('l', 'c', 'r') for each column.
                Defaults to all center ('c').

    Returns:
        str: Markdown formatted table.
    """
    if not rows:
        return ""

    # If no headers, take the first row as header and remove it from rows
    if not headers:
        headers, rows = rows[0], rows[1:]

    headers = list(map(str, headers))
    rows = [list(map(str, row)) for row in rows]

    num_cols = len(headers)
    if aligns is None:
        aligns = ["c"] * num_cols
    elif len(aligns) != num_cols:
        raise ValueError("Length of aligns must match number of headers.")

    align_map = {
        "l": ":---",
        "c": ":---:",
        "r": "---:",
    }

    header_line = "| " + " | ".join(headers) + " |"
    align_line = "| " + " | ".join(align_map[a] for a in aligns) + " |"
    row_lines = ["| " + " | ".join(map(str, row)) + " |" for row in rows]

    return "\n".join([header_line, align_line, *row_lines])
