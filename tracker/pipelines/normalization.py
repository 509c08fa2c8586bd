"""Text normalization utilities for model output.

Handles whitespace, unicode composition, blank optionals and markdown
code fences wrapped around JSON payloads.
"""
from __future__ import annotations

import re
import unicodedata

_FENCE_OPEN = re.compile(r'^```[a-zA-Z]*\s*')
_FENCE_CLOSE = re.compile(r'\s*```$')


def normalize_whitespace(text: str) -> str:
    """Normalize whitespace: collapse multiple spaces, remove leading/trailing."""
    text = re.sub(r'\s+', ' ', text)
    return text.strip()


def normalize_unicode(text: str) -> str:
    """Normalize Unicode to composed form."""
    return unicodedata.normalize('NFC', text)


def clean_optional_text(value: object, *, collapse_whitespace: bool = False) -> str | None:
    """Return a trimmed string, or None for missing/blank values.

    Non-string scalars are stringified; the model occasionally returns
    numbers where text is expected.
    """
    if value is None:
        return None
    if isinstance(value, (dict, list)):
        return None
    text = normalize_unicode(str(value)).strip()
    if collapse_whitespace:
        text = normalize_whitespace(text)
    return text or None


def strip_code_fences(raw: str) -> str:
    """Strip markdown fences and leading noise, keeping the JSON object.

    - Removes a leading ``` or ```json fence and the trailing fence.
    - If residual prefix exists before the first '{', slices from there.
    """
    text = (raw or "").strip()
    text = _FENCE_OPEN.sub('', text, count=1)
    text = _FENCE_CLOSE.sub('', text, count=1)

    start = text.find('{')
    if start > 0:
        text = text[start:]
    return text.strip()
