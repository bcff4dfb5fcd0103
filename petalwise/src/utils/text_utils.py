"""
Petalwise - Text Utilities
===========================
Helper functions for text cleaning, normalisation, and the
case-insensitive matching used by retrieval and the rule-based
estimator.

These utilities are consumed across the pipeline and should remain
stateless and side-effect-free.
"""

from __future__ import annotations

import re
import unicodedata


# ── Invisible characters ─────────────────────────────────────────────
# C0/C1 controls other than tab and newlines, plus BOM, zero-width
# joiners, bidi marks, word joiner and soft hyphen.
_NON_PRINTABLE_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f\ufeff\u200b\u200c\u200d\u200e\u200f\u00ad\u2060\ufffe]")

# ── Markdown code fence (``` or ```json) ───────────────────────────────
_CODE_FENCE_RE = re.compile(r"```[a-zA-Z0-9_-]*[ \t]*")

_LABEL_SEPARATORS_RE = re.compile(r"[\s_\-]+")


# ── Normalisation and matching ───────────────────────────────────────

def clean_text(text: str) -> str:
    """
    Sanitise free text before embedding or prompting.

    Steps:
        1. Unicode NFC normalisation (canonical composition) so that
           accented variety names (e.g. "Café au Lait") compare equal
           regardless of how they were typed.
        2. Drop invisible characters pasted in from spreadsheets and
           rich-text editors (BOM, soft hyphens, bidi marks).
        3. Collapse every whitespace run (newlines included) into a
           single space.

    Args:
        text: Raw text from a knowledge payload or a query.

    Returns:
        Cleaned single-line text.
    """
    text = unicodedata.normalize("NFC", text)
    text = _NON_PRINTABLE_RE.sub("", text)
    return re.sub(r"\s+", " ", text).strip()


def strip_code_fences(text: str) -> str:
    """Remove markdown code fences (```` ``` ```` / ```` ```json ````) from *text*."""
    return _CODE_FENCE_RE.sub("", text).strip()


def canonical_label(value: str | None) -> str:
    """
    Reduce a categorical label to a comparison key.

    ``"Room Temperature"``, ``"room_temperature"`` and ``"ROOM-TEMPERATURE"``
    all become ``"roomtemperature"``.
    """
    if not value:
        return ""
    return _LABEL_SEPARATORS_RE.sub("", value).casefold()


def contains_ci(haystack: str | None, needle: str | None) -> bool:
    """Case-insensitive substring test; empty operands never match."""
    if not haystack or not needle:
        return False
    return needle.strip().casefold() in haystack.casefold()


def text_relates(candidate: str | None, query: str | None) -> bool:
    """
    Return True if *candidate* and *query* textually relate.

    Either string containing the other (case-insensitively) counts,
    so ``"Rose"`` relates to ``"Roses"`` and to ``"Garden Rose"``.
    """
    return contains_ci(candidate, query) or contains_ci(query, candidate)
