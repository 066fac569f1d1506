from __future__ import annotations

TAG_MARKER = "#"
CANONICAL_SETUP_LABELS: tuple[str, ...] = ("PDH", "PDL", "EQH", "EQL", "AsiaH", "AsiaL", "IntH", "IntL")

_BY_LOWER = {label.lower(): label for label in CANONICAL_SETUP_LABELS}


def normalize_tag_label(raw: object) -> str | None:
    if not isinstance(raw, str):
        return None
    clean = raw.strip()
    if not clean:
        return None

    bare = clean[1:] if clean.startswith(TAG_MARKER) else clean
    canonical = _BY_LOWER.get(bare.lower())
    if canonical:
        return f"{TAG_MARKER}{canonical}"
    return clean
