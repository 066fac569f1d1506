from __future__ import annotations

from pathlib import Path
import sys

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from nrm import KNOWN_ASSETS, normalize_symbol, normalize_tag_label


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("EURUSD", "EURUSD"),
        ("EURUSD.a", "EURUSD"),
        ("eurusd.pro", "EURUSD"),
        ("  XAUUSD  ", "XAUUSD"),
        ("NAS100.cash", "NAS100"),
        ("#US30-m", "US30"),
        ("m.GBPJPY", "MGBPJPY"),
        ("abc/def", "ABCDEF"),
    ],
)
def test_normalize_symbol_maps_broker_suffixes(raw: str, expected: str) -> None:
    assert normalize_symbol(raw) == expected


def test_normalize_symbol_never_fails_on_empty_input() -> None:
    assert normalize_symbol(None) == "UNKNOWN"
    assert normalize_symbol("") == "UNKNOWN"
    assert normalize_symbol("   ") == "UNKNOWN"
    assert normalize_symbol(42) == "UNKNOWN"
    assert normalize_symbol("...") == "..."


def test_known_asset_table_is_stable() -> None:
    assert len(KNOWN_ASSETS) == 31
    assert len(set(KNOWN_ASSETS)) == 31
    assert all(normalize_symbol(asset) == asset for asset in KNOWN_ASSETS)


def test_normalize_tag_label_canonicalizes_setup_labels() -> None:
    assert normalize_tag_label("pdh") == "#PDH"
    assert normalize_tag_label("#asiah") == "#AsiaH"
    assert normalize_tag_label("  IntL ") == "#IntL"
    assert normalize_tag_label("#EQH") == "#EQH"


def test_normalize_tag_label_keeps_unknown_labels_and_drops_empty() -> None:
    assert normalize_tag_label("breakout") == "breakout"
    assert normalize_tag_label(" #news ") == "#news"
    assert normalize_tag_label("") is None
    assert normalize_tag_label("   ") is None
    assert normalize_tag_label(None) is None
