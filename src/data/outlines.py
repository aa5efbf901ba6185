"""
Outline file reading.

Outline files hold one cell per line as comma-separated integer pairs
``x, y, x, y, ...``. Pairs may optionally be wrapped in parentheses, e.g.
``(0,0),(4,0),(4,4),(0,4)``. Any malformed line aborts the whole read.
"""

import logging
from pathlib import Path
from typing import List, Tuple, Union

import numpy as np

logger = logging.getLogger(__name__)


class OutlineParseError(ValueError):
    """Raised when an outline file contains a malformed line."""


def parse_outline_line(line: str, line_number: int = 0) -> np.ndarray:
    """
    Parse one outline line into an (P, 2) array of (x, y) points.

    Args:
        line: Raw text line
        line_number: 1-based line number, used in error messages

    Returns:
        Integer array of shape (P, 2)

    Raises:
        OutlineParseError: If a token is not an integer or the count is odd
    """
    values = []
    for token in line.split(","):
        token = token.strip().strip("()").strip()
        if not token:
            continue
        try:
            values.append(int(token))
        except ValueError as e:
            raise OutlineParseError(
                f"Line {line_number}: malformed integer {token!r}"
            ) from e

    if len(values) % 2 != 0:
        raise OutlineParseError(
            f"Line {line_number}: odd number of coordinates ({len(values)})"
        )

    return np.asarray(values, dtype=np.int64).reshape(-1, 2)


def read_outlines(
    path: Union[str, Path],
    with_line_numbers: bool = False,
) -> Union[List[np.ndarray], Tuple[List[np.ndarray], List[int]]]:
    """
    Read all cell outlines from a text file.

    Args:
        path: Path to the outline file
        with_line_numbers: Also return the 1-based file line of each outline.
            Blank lines are skipped, so these differ from list positions
            whenever the file contains blank lines.

    Returns:
        List of (P, 2) integer arrays, one per non-blank line, in file order;
        with with_line_numbers, a tuple (outlines, line_numbers)
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Outline file not found: {path}")

    outlines = []
    line_numbers = []
    with open(path, "r") as f:
        for line_number, line in enumerate(f, start=1):
            if not line.strip():
                continue
            try:
                outlines.append(parse_outline_line(line, line_number))
                line_numbers.append(line_number)
            except OutlineParseError as e:
                raise OutlineParseError(f"{path}: {e}") from e

    logger.info(f"Read {len(outlines)} outlines from {path}")

    if with_line_numbers:
        return outlines, line_numbers
    return outlines
