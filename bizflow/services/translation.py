from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx

from ..core.config import TranslationSettings
from ..core.logging import get_logger
from ..core.metrics import TRANSLATIONS_TOTAL

logger = get_logger(name=__name__)

LANGUAGE_CODES: dict[str, str] = {
    "hi-IN": "hi",
    "te-IN": "te",
    "ta-IN": "ta",
    "kn-IN": "kn",
    "ml-IN": "ml",
    "mr-IN": "mr",
    "bn-IN": "bn",
    "gu-IN": "gu",
    "en-US": "en",
    "hi": "hi",
    "te": "te",
    "ta": "ta",
    "kn": "kn",
    "ml": "ml",
    "mr": "mr",
    "bn": "bn",
    "gu": "gu",
    "en": "en",
}

LANGUAGE_NAMES: dict[str, str] = {
    "hi": "Hindi",
    "te": "Telugu",
    "ta": "Tamil",
    "kn": "Kannada",
    "ml": "Malayalam",
    "mr": "Marathi",
    "bn": "Bengali",
    "gu": "Gujarati",
    "en": "English",
}


def language_code(locale: str) -> str:
    return LANGUAGE_CODES.get(locale, locale)


def language_name(locale: str | None) -> str:
    """Display name for a locale such as ``te-IN``; unknown locales are returned as given."""
    if not locale:
        return "English"
    return LANGUAGE_NAMES.get(language_code(locale), locale)


def is_english(locale: str | None) -> bool:
    return language_name(locale) == "English"


@dataclass(slots=True)
class TranslationResult:
    original_text: str
    translated_text: str
    target_language: str
    success: bool
    error: str | None = None


class TranslationService:
    """Google Cloud Translation (v2 REST) client."""

    def __init__(
        self,
        settings: TranslationSettings,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings
        self._client = client
        if not settings.api_key:
            logger.warning("translation_api_key_missing")

    def is_available(self) -> bool:
        return bool(self._settings.enabled and self._settings.api_key)

    async def translate(self, text: str, target: str, source: str = "en") -> TranslationResult:
        target_code = language_code(target)
        source_code = language_code(source)
        target_name = language_name(target)

        if target_code == "en" or target_code == source_code:
            return TranslationResult(text, text, target_name, success=True)
        if not self.is_available():
            TRANSLATIONS_TOTAL.labels(outcome="unavailable").inc()
            return TranslationResult(text, text, target_name, success=False, error="Translation API key not configured")

        payload = {"q": text, "source": source_code, "target": target_code, "format": "text"}
        try:
            data = await self._post(payload)
        except httpx.HTTPError as exc:
            logger.warning("translation_failed", target=target_code, error=str(exc))
            TRANSLATIONS_TOTAL.labels(outcome="error").inc()
            return TranslationResult(text, text, target_name, success=False, error=str(exc) or "Translation failed")

        translations = (data.get("data") or {}).get("translations") or []
        translated = translations[0].get("translatedText") if translations else None
        TRANSLATIONS_TOTAL.labels(outcome="success").inc()
        logger.info(
            "translation_complete",
            target=target_code,
            original_length=len(text),
            translated_length=len(translated or text),
        )
        return TranslationResult(text, translated or text, target_name, success=True)

    async def _post(self, payload: dict[str, Any]) -> dict[str, Any]:
        params = {"key": self._settings.api_key}
        if self._client is not None:
            response = await self._client.post(self._settings.endpoint, params=params, json=payload)
        else:
            async with httpx.AsyncClient(timeout=self._settings.timeout_seconds) as client:
                response = await client.post(self._settings.endpoint, params=params, json=payload)
        response.raise_for_status()
        return response.json()
