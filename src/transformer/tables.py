"""Code tables for the "table" filter: inline, named and ISO tables."""
import gettext
import logging
import unicodedata
from typing import Any, Dict, Optional

try:
    import pycountry
    HAS_PYCOUNTRY = True
except ImportError:
    HAS_PYCOUNTRY = False

logger = logging.getLogger(__name__)

ISO_639_TABLES = (
    "iso-639-native",
    "iso-639-english",
    "iso-639-english-inverted",
    "iso-639-french",
    "iso-639-french-inverted",
)

ISO_3166_TABLES = (
    "iso-3166-native",
    "iso-3166-english",
    "iso-3166-french",
)

# Locale of the native name of a country, for the main countries.
COUNTRY_LOCALES = {
    "AR": "es", "AT": "de", "BE": "fr", "BG": "bg", "BR": "pt_BR", "CA": "en", "CH": "de",
    "CL": "es", "CN": "zh_CN", "CO": "es", "CZ": "cs", "DE": "de", "DK": "da", "EE": "et",
    "ES": "es", "FI": "fi", "FR": "fr", "GR": "el", "HR": "hr", "HU": "hu", "IE": "ga",
    "IT": "it", "JP": "ja", "KR": "ko", "LT": "lt", "LU": "fr", "LV": "lv", "MX": "es",
    "NL": "nl", "NO": "nb", "PE": "es", "PL": "pl", "PT": "pt", "RO": "ro", "RU": "ru",
    "SE": "sv", "SI": "sl", "SK": "sk", "TR": "tr", "TW": "zh_TW", "UA": "uk",
}


def strip_diacritics(text: str) -> str:
    """Lower-case a string and remove its combining marks."""
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(c for c in decomposed if not unicodedata.combining(c)).casefold()


def lookup_table(
    table: Dict[str, Any],
    value: str,
    by_code: bool = False,
    strict: bool = False,
) -> Optional[str]:
    """
    Look up a value in a code table.

    By default the value is a code and the label is returned. With by_code,
    the value is a label and its code is returned. When not strict, a second
    pass ignores case and diacritics.
    """
    if not table:
        return None

    if by_code:
        for code, label in table.items():
            if str(label) == value:
                return str(code)
    elif value in table:
        return str(table[value])

    if strict:
        return None

    needle = strip_diacritics(value)
    for code, label in table.items():
        candidate = str(label) if by_code else str(code)
        if strip_diacritics(candidate) == needle:
            return str(code) if by_code else str(label)
    return None


def is_iso_table(name: str) -> bool:
    """Check if a table name is one of the built-in ISO tables."""
    return name in ISO_639_TABLES or name in ISO_3166_TABLES


def iso_lookup(name: str, value: str) -> Optional[str]:
    """Get a language or country name from an ISO code, when pycountry is installed."""
    if not HAS_PYCOUNTRY or not value:
        return None

    if name in ISO_639_TABLES:
        try:
            language = pycountry.languages.lookup(value)
        except LookupError:
            return None
        if name == "iso-639-native":
            locale = getattr(language, "alpha_2", None) or language.alpha_3
            return _translate("iso639-3", language.name, locale)
        inverted = name.endswith("-inverted")
        english = getattr(language, "inverted_name", None) if inverted else None
        english = english or language.name
        if "-french" in name:
            return _translate("iso639-3", english, "fr")
        return english

    if name in ISO_3166_TABLES:
        try:
            country = pycountry.countries.lookup(value)
        except LookupError:
            return None
        english = getattr(country, "common_name", None) or country.name
        if name == "iso-3166-french":
            return _translate("iso3166-1", english, "fr")
        if name == "iso-3166-native":
            locale = COUNTRY_LOCALES.get(country.alpha_2)
            return _translate("iso3166-1", english, locale) if locale else english
        return english

    return None


def _translate(domain: str, text: str, language: str) -> str:
    """Translate an ISO name with the catalogs shipped by pycountry."""
    try:
        translation = gettext.translation(domain, pycountry.LOCALES_DIR, languages=[language])
    except OSError:
        logger.debug(f"No {language} catalog for {domain}")
        return text
    return translation.gettext(text)
