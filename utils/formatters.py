"""
Value formatting utilities for the AOI Layer Analyzer reports.

Functions:
    format_number: Format a number with thousands separators
    format_cell_value: Format a heterogeneous property value for a table cell
"""

from typing import Any


def _is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, float) and value != value)  # NaN check


def format_number(value: Any, decimals: int = 0) -> str:
    """
    Format a number with thousands separators.

    Examples:
        >>> format_number(1234567)
        '1,234,567'

        >>> format_number(12.3456, decimals=2)
        '12.35'

        >>> format_number(None)
        'N/A'
    """
    if _is_missing(value):
        return 'N/A'
    try:
        number = float(value)
    except (TypeError, ValueError):
        return str(value)
    return f"{number:,.{decimals}f}"


def format_cell_value(value: Any, max_length: int = 80) -> Any:
    """
    Format a property value for a spreadsheet or PDF cell.

    Numbers, booleans and strings are kept as-is so spreadsheets keep their
    type; None/NaN become an empty string; anything else (lists, dicts) is
    stringified. Long text is truncated to max_length.

    Examples:
        >>> format_cell_value(None)
        ''

        >>> format_cell_value(['a', 'b'])
        "['a', 'b']"
    """
    if _is_missing(value):
        return ''
    if isinstance(value, (bool, int, float)):
        return value

    text = value if isinstance(value, str) else str(value)
    if max_length and len(text) > max_length:
        return f"{text[:max_length - 3]}..."
    return text
