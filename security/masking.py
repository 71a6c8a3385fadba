"""Masking of identity numbers for logs and display."""

from typing import Optional


def mask_identifier(value: Optional[str], visible: int = 4) -> str:
    """
    Mask all but the last few characters of an identifier.

    ABCDE1234F -> XXXXXX234F, 1234 5678 9012 -> XXXXXXXX9012
    """
    if not value:
        return ""
    compact = str(value).replace(" ", "")
    if len(compact) <= visible:
        return "X" * len(compact)
    return "X" * (len(compact) - visible) + compact[-visible:]


def mask_for_log(value: Optional[str], enabled: bool = True) -> str:
    """Mask a value only when sensitive data masking is enabled."""
    if not enabled:
        return value or ""
    return mask_identifier(value)
