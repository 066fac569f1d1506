from .symbols import KNOWN_ASSETS, normalize_symbol
from .tags import CANONICAL_SETUP_LABELS, TAG_MARKER, normalize_tag_label

__all__ = [
    "CANONICAL_SETUP_LABELS",
    "KNOWN_ASSETS",
    "TAG_MARKER",
    "normalize_symbol",
    "normalize_tag_label",
]
