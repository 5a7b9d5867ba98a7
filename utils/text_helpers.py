# -*- coding: utf-8 -*-
import re
import unicodedata

URL_PATTERN = re.compile(r'^https?://\S+$', re.IGNORECASE)


def normalize_for_tts(text: str) -> str:
    """Folds styled/fancy unicode to plain characters and drops what TTS can't voice."""
    if not isinstance(text, str):
        return ""
    # NFKC maps mathematical bold/italic/script letters, circled letters, fullwidth forms etc.
    text = unicodedata.normalize('NFKC', text)
    # Strip control and formatting characters (zero-width joiners, bidi marks...)
    text = ''.join(ch for ch in text if unicodedata.category(ch)[0] != 'C' or ch in '\n\t')
    # Custom emoji markup <:name:id> reads badly, keep the name only
    text = re.sub(r'<a?:(\w+):\d+>', r'\1', text)
    return re.sub(r'\s+', ' ', text).strip()


def is_url(text: str) -> bool:
    return bool(URL_PATTERN.match(text.strip())) if text else False


def truncate(text: str, limit: int = 150) -> str:
    return text if len(text) <= limit else text[:limit - 3] + "..."
