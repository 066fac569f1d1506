from __future__ import annotations

import re

KNOWN_ASSETS: tuple[str, ...] = (
    "XAUUSD", "EURUSD", "USDJPY", "GBPUSD", "AUDUSD", "NZDUSD", "USDCAD", "USDCHF",
    "EURJPY", "GBPJPY", "EURAUD", "EURGBP", "AUDJPY", "CADJPY", "CHFJPY",
    "USOIL", "UKOIL", "XAGUSD", "BTCUSD", "ETHUSD", "XRPUSD", "LTCUSD", "ADAUSD", "SOLUSD", "BNBUSD",
    "US30", "NAS100", "SPX500", "GER30", "UK100", "JP225",
)
UNKNOWN_SYMBOL = "UNKNOWN"

_NON_ALNUM = re.compile(r"[^A-Z0-9]")
# longest first so "NAS100" wins over a shorter code sharing its prefix
_BY_LENGTH = tuple(sorted(KNOWN_ASSETS, key=len, reverse=True))


def _prefix_match(value: str) -> str | None:
    for asset in _BY_LENGTH:
        if value.startswith(asset):
            return asset
    return None


def normalize_symbol(raw: object) -> str:
    """Map a broker instrument string (``EURUSD.a``, ``xauusd-pro``) to its asset code.

    Never fails: an unrecognised symbol comes back cleaned of punctuation.
    """
    if not isinstance(raw, str) or not raw.strip():
        return UNKNOWN_SYMBOL
    text = raw.strip().upper()

    if text in KNOWN_ASSETS:
        return text

    matched = _prefix_match(text)
    if matched:
        return matched

    clean = _NON_ALNUM.sub("", text)
    matched = _prefix_match(clean)
    if matched:
        return matched
    return clean or text
