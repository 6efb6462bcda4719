"""
Supported analysis languages.
"""

from dataclasses import dataclass

DEFAULT_LANGUAGE = "en"


@dataclass(frozen=True)
class Language:
    code: str
    name: str
    native_name: str
    rtl: bool = False


LANGUAGES: dict[str, Language] = {
    lang.code: lang
    for lang in (
        Language("en", "English", "English"),
        Language("ar", "Arabic", "العربية", rtl=True),
        Language("es", "Spanish", "Español"),
        Language("fr", "French", "Français"),
        Language("de", "German", "Deutsch"),
        Language("pt", "Portuguese", "Português"),
        Language("ja", "Japanese", "日本語"),
        Language("ko", "Korean", "한국어"),
        Language("zh", "Chinese", "中文"),
        Language("it", "Italian", "Italiano"),
        Language("nl", "Dutch", "Nederlands"),
    )
}


def is_valid_language(code: str | None) -> bool:
    return code in LANGUAGES


def get_language(code: str | None) -> Language:
    """Look up a language, falling back to English."""
    return LANGUAGES.get(code or DEFAULT_LANGUAGE, LANGUAGES[DEFAULT_LANGUAGE])


def language_directive(code: str | None) -> str:
    """Instruction appended to analysis prompts for the output language."""
    language = get_language(code)
    if language.code == DEFAULT_LANGUAGE:
        return ""
    directive = (
        f"\n\nWrite ALL human-readable text in your response in {language.name} "
        f"({language.native_name}). Keep JSON keys, enum values, numbers and URLs in English."
    )
    if language.rtl:
        directive += " The text will be displayed right-to-left."
    return directive
