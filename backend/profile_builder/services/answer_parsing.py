"""Parsing rules for free-text answers.

Each rule turns one user answer into the value its question kind writes:

    split_delimited:          "Python, SQL; none"            -> ["Python", "SQL"]
    parse_skill_rating:       "Docker - Advanced"            -> ("Docker", "Advanced")
    parse_experience_answer:  "Engineer at Acme, 2020 - now" -> experience entry
    parse_education_answer:   "BSc Physics - MIT, 2015-2019" -> education entry

All rules are pure and return None (or an empty list) for answers that are
a negation ("none", "n/a", "-") or contain nothing usable.
"""

import re
from typing import Any, NamedTuple

from pydantic import EmailStr, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

__all__ = [
    "SKILL_LEVELS",
    "SkillRating",
    "humanize_key",
    "is_negation",
    "normalize_level",
    "parse_education_answer",
    "parse_email",
    "parse_experience_answer",
    "parse_skill_rating",
    "split_delimited",
]

# =============================================================================
# Shared vocabulary
# =============================================================================

NEGATION_TOKENS = frozenset(
    {"none", "no", "n/a", "na", "nothing", "nil", "-", "--", "not applicable"}
)
"""Answers meaning "nothing to add"; never written to the document."""

SKILL_LEVELS: tuple[str, ...] = ("Beginner", "Intermediate", "Advanced", "Expert")

_LEVEL_SYNONYMS: dict[str, str] = {
    "beginner": "Beginner",
    "basic": "Beginner",
    "novice": "Beginner",
    "intermediate": "Intermediate",
    "proficient": "Intermediate",
    "competent": "Intermediate",
    "advanced": "Advanced",
    "strong": "Advanced",
    "expert": "Expert",
    "master": "Expert",
}

_PRESENT_WORDS = frozenset({"present", "current", "currently", "now", "today", "ongoing"})

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")
_DELIMITERS = re.compile(r"[,;\n]")

_email_adapter: TypeAdapter[str] = TypeAdapter(EmailStr)


def is_negation(text: str) -> bool:
    """True when the answer means "nothing" ("None.", "n/a", "-")."""
    return text.strip().rstrip(".!").strip().casefold() in NEGATION_TOKENS


def humanize_key(key: str) -> str:
    """Turn a camelCase key into title-cased words.

    Args:
        key: Key such as "projectManagement" or "start_date".

    Returns:
        Display text such as "Project Management" or "Start Date".
    """
    words = _CAMEL_BOUNDARY.sub(" ", key).replace("_", " ").split()
    return " ".join(word[:1].upper() + word[1:] for word in words)


# =============================================================================
# Scalars and lists
# =============================================================================


def parse_email(text: str) -> str:
    """Validate an email answer.

    Args:
        text: Raw answer.

    Returns:
        The normalised address.

    Raises:
        ValueError: If the answer is not a well-formed email address.
    """
    try:
        return _email_adapter.validate_python(text.strip())
    except PydanticValidationError as exc:
        raise ValueError("Please enter a valid email address.") from exc


def split_delimited(text: str) -> list[str]:
    """Split an answer on commas, semicolons and newlines.

    Negation tokens and blanks are dropped; order is preserved and repeated
    items (case-insensitive) are kept once.

    Args:
        text: Raw answer like "Python, SQL, none".

    Returns:
        List of trimmed items, e.g. ["Python", "SQL"].
    """
    items: list[str] = []
    seen: set[str] = set()
    for raw in _DELIMITERS.split(text):
        item = raw.strip()
        if not item or is_negation(item):
            continue
        folded = item.casefold()
        if folded in seen:
            continue
        seen.add(folded)
        items.append(item)
    return items


# =============================================================================
# Skill ratings
# =============================================================================


class SkillRating(NamedTuple):
    name: str
    level: str


def normalize_level(text: str) -> str:
    """Map a proficiency answer onto the canonical level names.

    Unrecognised text is returned trimmed, so a collaborator-supplied option
    such as "2-3 years" is stored as chosen.
    """
    cleaned = text.strip().rstrip(".")
    return _LEVEL_SYNONYMS.get(cleaned.casefold(), cleaned)


_NAME_LEVEL_PATTERN = re.compile(
    r"^(?P<name>.+?)\s*(?:\s[-–]\s|:|,|\()\s*(?P<level>[^()]+?)\)?\s*$"
)


def parse_skill_rating(text: str) -> SkillRating | None:
    """Split an answer naming a skill and a level.

    Accepted shapes: "Docker - Advanced", "Docker: advanced",
    "Docker (Expert)", "Docker, beginner", "Docker advanced", "Docker".

    Args:
        text: Raw answer.

    Returns:
        SkillRating (level may be ""), or None for a negation or blank answer.
    """
    cleaned = text.strip()
    if not cleaned or is_negation(cleaned):
        return None

    match = _NAME_LEVEL_PATTERN.match(cleaned)
    if match:
        return SkillRating(match.group("name").strip(), normalize_level(match.group("level")))

    words = cleaned.split()
    if len(words) > 1 and words[-1].casefold() in _LEVEL_SYNONYMS:
        return SkillRating(" ".join(words[:-1]), normalize_level(words[-1]))

    return SkillRating(cleaned, "")


# =============================================================================
# Composite entries
# =============================================================================

_MONTH = (
    r"(?:jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|june?|july?|aug(?:ust)?"
    r"|sep(?:t(?:ember)?)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?)\.?"
)
_DATE_TOKEN = rf"(?:\b{_MONTH}\s+)?\b(?:19|20)\d{{2}}(?:[-/.](?:0?[1-9]|1[0-2]))?"

_DATE_RANGE_PATTERN = re.compile(
    rf"(?P<start>{_DATE_TOKEN})\s*(?:-|–|—|to|until)\s*"
    rf"(?P<end>present|currently|current|now|today|ongoing|{_DATE_TOKEN})\b",
    re.IGNORECASE,
)
_SINCE_PATTERN = re.compile(rf"\b(?:since|from)\s+(?P<start>{_DATE_TOKEN})", re.IGNORECASE)
_SINGLE_DATE_PATTERN = re.compile(rf"(?P<date>{_DATE_TOKEN})", re.IGNORECASE)

_AT_SEPARATOR = re.compile(r"\s+(?:at|@)\s+|@", re.IGNORECASE)
_FROM_SEPARATOR = re.compile(r"\s+(?:at|from|@)\s+|@", re.IGNORECASE)
_DASH_SEPARATOR = re.compile(r"\s+[-–—|]\s+")
_TRAILING_PUNCTUATION = " ,;-–—|()"


def _normalize_end(text: str) -> str:
    cleaned = text.strip()
    if cleaned.casefold() in _PRESENT_WORDS:
        return "Present"
    return cleaned


def _extract_dates(text: str) -> tuple[str, str, str]:
    """Pull a date range out of text.

    Returns:
        (remaining text, start date, end date).
    """
    match = _DATE_RANGE_PATTERN.search(text)
    if match:
        remaining = text[: match.start()] + text[match.end() :]
        return remaining, match.group("start").strip(), _normalize_end(match.group("end"))

    match = _SINCE_PATTERN.search(text)
    if match:
        remaining = text[: match.start()] + text[match.end() :]
        return remaining, match.group("start").strip(), "Present"

    match = _SINGLE_DATE_PATTERN.search(text)
    if match:
        remaining = text[: match.start()] + text[match.end() :]
        return remaining, "", match.group("date").strip()

    return text, "", ""


def _split_primary(text: str, connector: re.Pattern[str]) -> tuple[str, str]:
    """Split "<primary> <sep> <rest>" on the first connector, dash or comma."""
    for pattern in (connector, _DASH_SEPARATOR):
        parts = pattern.split(text, maxsplit=1)
        if len(parts) == 2:
            return parts[0].strip(_TRAILING_PUNCTUATION), parts[1].strip(_TRAILING_PUNCTUATION)
    if "," in text:
        primary, rest = text.split(",", 1)
        return primary.strip(_TRAILING_PUNCTUATION), rest.strip(_TRAILING_PUNCTUATION)
    return text.strip(_TRAILING_PUNCTUATION), ""


def _split_place(text: str) -> tuple[str, str]:
    """Split "Acme Corp, Berlin" into (organisation, location)."""
    if "," in text:
        organisation, location = text.split(",", 1)
        return organisation.strip(_TRAILING_PUNCTUATION), location.strip(_TRAILING_PUNCTUATION)
    return text.strip(_TRAILING_PUNCTUATION), ""


def _clean(text: str) -> str:
    return re.sub(r"\s{2,}", " ", text).strip(_TRAILING_PUNCTUATION)


def parse_experience_answer(text: str) -> dict[str, Any] | None:
    """Decompose a free-text job description into an experience entry.

    Examples:
        "Software Engineer at Acme, 2020 - Present"
            -> title "Software Engineer", company "Acme",
               startDate "2020", endDate "Present"
        "Data Analyst - Globex, Berlin, Jan 2018 to Mar 2021"
            -> title "Data Analyst", company "Globex", location "Berlin"

    Args:
        text: Raw answer.

    Returns:
        Experience entry dict with every field present, or None for a
        negation or an answer with no title.
    """
    cleaned = text.strip()
    if not cleaned or is_negation(cleaned):
        return None

    remaining, start_date, end_date = _extract_dates(cleaned)
    title, rest = _split_primary(_clean(remaining), _AT_SEPARATOR)
    company, location = _split_place(rest)
    if not title:
        return None

    return {
        "title": title,
        "company": company,
        "location": location,
        "startDate": start_date,
        "endDate": end_date,
        "bullets": [],
    }


def parse_education_answer(text: str) -> dict[str, Any] | None:
    """Decompose a free-text education answer into an education entry.

    Examples:
        "BSc Computer Science - MIT, 2015 - 2019"
        "MBA from INSEAD, Fontainebleau, 2021"

    Args:
        text: Raw answer.

    Returns:
        Education entry dict with every field present, or None for a
        negation or an answer with no degree.
    """
    cleaned = text.strip()
    if not cleaned or is_negation(cleaned):
        return None

    remaining, start_date, end_date = _extract_dates(cleaned)
    degree, rest = _split_primary(_clean(remaining), _FROM_SEPARATOR)
    institution, location = _split_place(rest)
    if not degree:
        return None

    return {
        "degree": degree,
        "institution": institution,
        "location": location,
        "startDate": start_date,
        "endDate": end_date,
        "gpa": "",
    }
