import json
import os
from typing import Dict, List, Optional

_DATA_PATH = os.path.join(os.path.dirname(__file__), "..", "data", "countries.json")


def _load_countries() -> Dict[str, dict]:
    with open(_DATA_PATH, encoding="utf-8") as fh:
        raw = json.load(fh)
    return {key.lower(): value for key, value in raw.items()}


COUNTRIES: Dict[str, dict] = _load_countries()

# alias -> canonical key, canonical names included
COUNTRY_LOOKUP: Dict[str, str] = {}
for _key, _info in COUNTRIES.items():
    COUNTRY_LOOKUP[_key] = _key
    for _alias in _info.get("aliases", []):
        COUNTRY_LOOKUP.setdefault(_alias.lower(), _key)

# Longest first so "south korea" is tried before "korea"
_LOOKUP_BY_LENGTH = sorted(COUNTRY_LOOKUP, key=len, reverse=True)


def normalize(text: str) -> str:
    """Lowercase, strip spaces, remove basic punctuation."""
    text = text.strip().lower()
    for ch in [".", ",", "!", "?", ":", ";", "\"", "(", ")", "[", "]"]:
        text = text.replace(ch, "")
    return " ".join(text.split())


def _contains_words(haystack: str, needle: str) -> bool:
    """True if `needle` appears in `haystack` as a run of whole words."""
    hay = haystack.split()
    words = needle.split()
    if not words or len(words) > len(hay):
        return False
    for i in range(len(hay) - len(words) + 1):
        if hay[i:i + len(words)] == words:
            return True
    return False


def normalize_country(country_name: str, partial: bool = True) -> Optional[str]:
    """
    Map a country name or alias to its canonical key.

    Exact alias lookup first. With `partial`, then containment in either
    direction on word boundaries ("South Korea, Republic of" -> "south
    korea"). Stored answers are matched with partial=False: a name missing
    from the table ("saint helena") must not borrow a
    neighbour's key. Returns None when nothing matches.
    """
    if not country_name:
        return None

    lookup_key = normalize(country_name)
    if lookup_key in COUNTRY_LOOKUP:
        return COUNTRY_LOOKUP[lookup_key]
    if not partial:
        return None

    for key in _LOOKUP_BY_LENGTH:
        if _contains_words(lookup_key, key) or _contains_words(key, lookup_key):
            return COUNTRY_LOOKUP[key]

    return None


def country_aliases(country_key: str) -> List[str]:
    info = COUNTRIES.get(country_key)
    if not info:
        return []
    return [country_key] + [a.lower() for a in info.get("aliases", [])]


def country_flag(country_name: str) -> str:
    """Regional-indicator emoji flag for a country name, or "" if unknown."""
    key = normalize_country(country_name or "", partial=False)
    if key is None:
        return ""
    code = COUNTRIES[key].get("code", "")
    if len(code) != 2 or not code.isalpha():
        return ""
    return "".join(chr(0x1F1E6 + ord(c) - ord("A")) for c in code.upper())


def check_country_guess(guess: str, correct_country: str) -> bool:
    """
    Determines correctness:
      - case-insensitive exact match against the stored answer
      - otherwise the guess must be one of the canonical aliases
        of the answer's country
    """
    if not guess or not correct_country:
        return False

    normalized_guess = normalize(guess)
    normalized_correct = normalize(correct_country)

    if normalized_guess == normalized_correct:
        return True

    country_key = normalize_country(normalized_correct, partial=False)
    if country_key is None:
        return False

    return normalized_guess in country_aliases(country_key)
