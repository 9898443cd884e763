# retail_backend/bilingual.py
"""
Fields such as category names are stored as "English / Sinhala".
The display language travels with each request instead of living in client storage.
"""
from flask import request

from .models import UserPreference

SEPARATOR = ' / '
ENGLISH = 'english'
SINHALA = 'sinhala'
LANGUAGES = (ENGLISH, SINHALA)
LANGUAGE_HEADER = 'X-Display-Language'


def split_bilingual_text(text, language=ENGLISH):
    """
    >>> split_bilingual_text('Tiles / ටයිල්', 'english')
    'Tiles'
    >>> split_bilingual_text('Tiles / ටයිල්', 'sinhala')
    'ටයිල්'
    >>> split_bilingual_text('Tiles', 'sinhala')
    'Tiles'
    """
    if not text:
        return ''
    parts = text.split(SEPARATOR)
    if len(parts) == 1:
        return text.strip()
    if language == ENGLISH:
        return parts[0].strip()
    return (parts[1] or parts[0]).strip()


def get_bilingual_parts(text):
    if not text:
        return {'english': '', 'sinhala': ''}
    parts = text.split(SEPARATOR)
    english = parts[0].strip()
    sinhala = parts[1].strip() if len(parts) > 1 else ''
    return {'english': english, 'sinhala': sinhala or english}


def format_bilingual_list(items, fields, language=ENGLISH):
    """Copy of items (dicts) with each named field reduced to one language."""
    formatted = []
    for item in items:
        row = dict(item)
        for field in fields:
            if row.get(field):
                row[field] = split_bilingual_text(row[field], language)
        formatted.append(row)
    return formatted


def normalize_language(value):
    value = (value or '').strip().lower()
    return value if value in LANGUAGES else None


def resolve_display_language(identity=None, default=None):
    """
    The display language for this request: ?lang=, then the X-Display-Language
    header, then the caller's saved displayLanguage preference.
    Returns default (None) when nothing asks for a language, meaning raw values.
    """
    language = normalize_language(request.args.get('lang')) or normalize_language(request.headers.get(LANGUAGE_HEADER))
    if language:
        return language
    if identity:
        pref = UserPreference.query.filter_by(user_id=str(identity['id'])).first()
        if pref:
            language = normalize_language(pref.load().get('displayLanguage'))
            if language:
                return language
    return default
