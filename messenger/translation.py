"""
Message translation through the Google Translate v2 REST API.

Unsupported languages and API failures fall back to ``"[<Language>]: <text>"``
so the client always has something to show.
"""
import html
import logging
import os
from typing import List

import requests

from .constants import GOOGLE_TRANSLATE_URL, LANGUAGE_CODE_MAP

logger = logging.getLogger("messenger")


def supported_languages() -> List[str]:
    return list(LANGUAGE_CODE_MAP)


def is_language_supported(language: str) -> bool:
    return language in LANGUAGE_CODE_MAP


def fallback(text: str, language: str) -> str:
    return f"[{language}]: {text}"


def translate_text(text: str, target_language: str, source_code: str = "en") -> str:
    if not text or not target_language:
        return text

    target_code = LANGUAGE_CODE_MAP.get(target_language)
    if not target_code:
        return fallback(text, target_language)

    api_key = os.environ.get("GOOGLE_TRANSLATE_API_KEY")
    if not api_key:
        logger.warning("[TRANSLATE] GOOGLE_TRANSLATE_API_KEY not set")
        return fallback(text, target_language)

    try:
        response = requests.post(
            GOOGLE_TRANSLATE_URL,
            params={"key": api_key},
            json={"q": text, "source": source_code, "target": target_code, "format": "text"},
            timeout=10,
        )
        response.raise_for_status()
        translations = response.json()["data"]["translations"]
        return html.unescape(translations[0]["translatedText"])
    except requests.exceptions.RequestException as e:
        logger.warning(f"[TRANSLATE] Request failed: {e}")
    except (KeyError, IndexError, ValueError) as e:
        logger.warning(f"[TRANSLATE] Unexpected response: {e}")
    return fallback(text, target_language)
