"""
Input Validation
================
Symbol normalization shared by the service manager and the model router.
"""

import re
from typing import Iterable, List

from tradedesk_core.exceptions import ValidationError

# 1-10 letters with an optional share-class suffix (BRK.B, RDS-A)
SYMBOL_PATTERN = re.compile(r"^[A-Z]{1,10}([.-][A-Z]{1,2})?$")
MAX_BATCH_SYMBOLS = 100


def validate_symbol(symbol: str) -> str:
    """Upper-case and trim ``symbol``; raise ValidationError if malformed."""
    if not isinstance(symbol, str):
        raise ValidationError(f"Invalid stock symbol: {symbol!r}", field="symbol")

    normalized = symbol.strip().upper()
    if not SYMBOL_PATTERN.match(normalized):
        raise ValidationError(f"Invalid stock symbol: {symbol!r}", field="symbol")
    return normalized


def validate_symbols(symbols: Iterable[str]) -> List[str]:
    """Validate a batch, dropping duplicates while keeping first-seen order."""
    normalized: List[str] = []
    for symbol in symbols:
        value = validate_symbol(symbol)
        if value not in normalized:
            normalized.append(value)

    if not normalized:
        raise ValidationError("At least one symbol is required", field="symbols")
    if len(normalized) > MAX_BATCH_SYMBOLS:
        raise ValidationError(
            f"At most {MAX_BATCH_SYMBOLS} symbols per batch",
            field="symbols",
        )
    return normalized
