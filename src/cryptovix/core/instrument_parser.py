"""
Instrument Identifier Parser

Maps venue option identifiers to canonical (strike, expiry, option type).

Supported shapes (hyphen-delimited):
- Deribit: BTC-29MAR24-70000-C
- Bybit:   BTC-29MAR24-70000-C, BTC-24APR26-48000-C-USDT

Date codes are day + 3-letter month + 2-digit year. Expiry is fixed at
08:00 UTC on that date (venue settlement hour).
"""

import math
import re
from datetime import datetime, timezone
from typing import NamedTuple

from cryptovix.core.models import OptionType


SETTLEMENT_HOUR_UTC = 8

MONTHS = {
    "JAN": 1, "FEB": 2, "MAR": 3, "APR": 4, "MAY": 5, "JUN": 6,
    "JUL": 7, "AUG": 8, "SEP": 9, "OCT": 10, "NOV": 11, "DEC": 12,
}

# Deribit drops the leading zero on single-digit days (BTC-5APR24-...)
_DATE_CODE = re.compile(r"^(\d{1,2})([A-Z]{3})(\d{2})$")


class InstrumentParseError(ValueError):
    """Raised when an instrument identifier cannot be parsed."""


class ParsedInstrument(NamedTuple):
    strike: float
    expiry: datetime
    option_type: OptionType


def parse_date_code(code: str) -> datetime:
    """
    Parse a venue date code (e.g. 29MAR24) to its 08:00 UTC settlement time.

    Raises:
        InstrumentParseError: If the code is malformed or not a real date
    """
    match = _DATE_CODE.match(code.upper())
    if not match:
        raise InstrumentParseError(f"Invalid date code: {code!r}")

    day, month_abbr, year = match.groups()
    month = MONTHS.get(month_abbr)
    if month is None:
        raise InstrumentParseError(f"Unknown month in date code: {code!r}")

    try:
        return datetime(
            2000 + int(year), month, int(day), SETTLEMENT_HOUR_UTC,
            tzinfo=timezone.utc,
        )
    except ValueError as e:
        raise InstrumentParseError(f"Invalid date code {code!r}: {e}") from e


def parse_instrument(identifier: str) -> ParsedInstrument:
    """
    Parse a venue instrument identifier.

    Args:
        identifier: Identifier such as BTC-29MAR24-70000-C

    Returns:
        ParsedInstrument(strike, expiry, option_type)

    Raises:
        InstrumentParseError: If the identifier is malformed
    """
    if not identifier:
        raise InstrumentParseError("Empty instrument identifier")

    parts = identifier.strip().split("-")

    # Optional trailing settlement currency (e.g. -USDT)
    if len(parts) == 5 and parts[-1].isalpha() and parts[-1].upper() not in ("C", "P"):
        parts = parts[:-1]

    if len(parts) != 4:
        raise InstrumentParseError(f"Invalid instrument identifier: {identifier!r}")

    _base, date_code, strike_str, type_letter = parts

    try:
        option_type = OptionType.from_letter(type_letter)
    except ValueError as e:
        raise InstrumentParseError(f"Invalid option type in {identifier!r}") from e

    try:
        strike = float(strike_str)
    except ValueError as e:
        raise InstrumentParseError(f"Invalid strike in {identifier!r}") from e

    if not math.isfinite(strike) or strike <= 0:
        raise InstrumentParseError(f"Non-positive strike in {identifier!r}")

    return ParsedInstrument(
        strike=strike,
        expiry=parse_date_code(date_code),
        option_type=option_type,
    )
