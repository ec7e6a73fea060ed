"""User-visible message catalogue.

Messages live in ``locale/<code>.json`` next to this module.  The catalogue
for the system language is layered over English, so a partial translation
never produces a missing key.
"""
from __future__ import annotations

import json
import locale
from pathlib import Path
from typing import Any

LOCALE_DIR = Path(__file__).parent / 'locale'
FALLBACK_LANG = 'en'


def detect_lang_code(lang: str, locale_dir: Path = LOCALE_DIR) -> str:
    """Detect locale file code from system locale string using convention-based lookup.

    Lookup chain: ``{lang}-{REGION}.json`` → ``{lang}.json`` → ``en.json``.

    Parameters
    ----------
    lang : str
        System locale string, e.g. ``'de_DE'`` or ``'German_Germany'``.
    locale_dir : Path
        Directory holding the catalogue files.

    Returns
    -------
    str
        Locale file code (without ``.json``).
    """
    if not lang:
        return FALLBACK_LANG

    normalized = locale.normalize(lang).split('.')[0]
    parts = normalized.split('_', 1)
    base = parts[0].lower()

    # locale.normalize() doesn't resolve all Windows names (e.g. 'Spanish_Mexico').
    if len(base) > 3:
        base = locale.normalize(parts[0]).split('.')[0].split('_')[0].lower()

    region = parts[1] if len(parts) > 1 and len(base) <= 3 else ''

    if region and (locale_dir / f'{base}-{region}.json').exists():
        return f'{base}-{region}'
    if (locale_dir / f'{base}.json').exists():
        return base

    return FALLBACK_LANG


def load_translations(lang: str | None = None, locale_dir: Path = LOCALE_DIR) -> dict[str, Any]:
    """Load translations for *lang* (default: system language) over the English catalogue."""
    if lang is None:
        lang = locale.getlocale()[0] or ''
    lang_code = detect_lang_code(lang, locale_dir)

    messages = json.loads((locale_dir / f'{FALLBACK_LANG}.json').read_text(encoding='utf-8'))
    if lang_code != FALLBACK_LANG:
        messages.update(json.loads((locale_dir / f'{lang_code}.json').read_text(encoding='utf-8')))

    return messages


T: dict[str, Any] = load_translations()
