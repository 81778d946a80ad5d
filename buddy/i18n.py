"""
Static translation lookup and language tables.
"""

from typing import Dict, Optional

DEFAULT_LANGUAGE = "English"
DEFAULT_LOCALE = "en-US"

SUPPORTED_LANGUAGES = (
    "English", "Telugu", "Spanish", "French", "German", "Chinese",
    "Japanese", "Hindi", "Arabic", "Portuguese", "Russian",
)

# BCP 47 tags handed to the speech recognizer
LANGUAGE_LOCALES: Dict[str, str] = {
    "English": "en-US",
    "Telugu": "te-IN",
    "Hindi": "hi-IN",
    "Spanish": "es-ES",
    "French": "fr-FR",
    "German": "de-DE",
    "Chinese": "zh-CN",
    "Japanese": "ja-JP",
    "Arabic": "ar-SA",
    "Portuguese": "pt-PT",
    "Russian": "ru-RU",
}

TRANSLATIONS: Dict[str, Dict[str, str]] = {
    "English": {
        "typeMessage": "Express yourself freely...",
        "chatTitle": "Emotional Support Chat",
        "chatSubtitle": "A safe space for your thoughts",
        "buddyGreeting": "Hello {name}, how can I support you today? I'm here to help with career, wellness, or just to listen.",
    },
    "Telugu": {
        "chatTitle": "మానసిక మద్దతు చాట్",
        "chatSubtitle": "మీ ఆలోచనల కోసం సురక్షితమైన ప్రదేశం",
        "buddyGreeting": "నమస్తే {name}, ఈ రోజు నేను మీకు ఎలా సహాయపడగలను? నేను కెరీర్, ఆరోగ్యం లేదా వినడానికి ఇక్కడ ఉన్నాను.",
    },
}


def translate(lang: Optional[str], key: str, params: Optional[Dict[str, str]] = None) -> str:
    """
    Look up key for lang, falling back to English and then to the key itself.

    Each {param} placeholder is replaced once with its value.
    """
    language = lang if lang in TRANSLATIONS else DEFAULT_LANGUAGE
    text = TRANSLATIONS[language].get(key) or TRANSLATIONS[DEFAULT_LANGUAGE].get(key) or key
    for name, value in (params or {}).items():
        text = text.replace("{" + name + "}", str(value), 1)
    return text


def resolve_locale(language: Optional[str]) -> str:
    """Map a language name to a recognizer locale; unknown names get en-US."""
    return LANGUAGE_LOCALES.get(language or "", DEFAULT_LOCALE)
