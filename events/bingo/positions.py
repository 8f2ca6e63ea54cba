import re
import string
from typing import Tuple

from events.bingo.errors import ValidationError

_POSITION_RE = re.compile(r"^([A-Za-z])(\d+)$")


def column_letter(x: int) -> str:
    """0-based column index to its letter (0 -> A)."""
    return string.ascii_uppercase[x]


def row_label(y: int) -> str:
    """0-based row index to its 1-based label (0 -> "1")."""
    return str(y + 1)


def position_label(x: int, y: int) -> str:
    return f"{column_letter(x)}{row_label(y)}"


def parse_position(position: str) -> Tuple[int, int]:
    """Parse a label such as "B3" into 0-based (x, y)."""
    match = _POSITION_RE.match(position or "")
    if not match:
        raise ValidationError(f"Invalid board position: {position!r}")
    x = string.ascii_uppercase.index(match.group(1).upper())
    y = int(match.group(2)) - 1
    if y < 0:
        raise ValidationError(f"Invalid board position: {position!r}")
    return x, y
