"""LLM input sanitization for prompt injection prevention.

Security: Filters suspicious patterns out of résumé text and user answers
before they are embedded in collaborator prompts.

Unlike free-form marketing copy, résumé content carries names, employers and
places in many scripts, so accented and non-Latin letters are preserved.
Only invisible characters, control characters and role/instruction markers
are removed.
"""

import re
import unicodedata

__all__ = ["sanitize_llm_input"]

# =============================================================================
# Unicode Stripping Patterns
# =============================================================================

# Invisible characters that can split a keyword ("S​YSTEM") past the
# injection filters below.
_ZERO_WIDTH_PATTERN = re.compile(
    "["
    "­"  # Soft hyphen
    "͏"  # Combining grapheme joiner
    "؜"  # Arabic letter mark
    "᠎"  # Mongolian vowel separator
    "​-‏"  # Zero-width space, non-joiner, joiner, LRM, RLM
    "‪-‮"  # BiDi embedding controls
    "⁠-⁤"  # Word joiner, invisible operators
    "⁦-⁩"  # BiDi isolate controls
    "﻿"  # BOM / zero-width no-break space
    "\U000e0001"  # Language tag
    "\U000e0020-\U000e007f"  # Tag characters
    "]"
)

# Control characters to remove (except \t, \n, \r)
_CONTROL_CHAR_PATTERN = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")

_REPLACEMENT_TAG = "[TAG]"
_REPLACEMENT_FILTERED = "[FILTERED]"
_REPLACEMENT_FILTERED_COLON = "[FILTERED]:"

# Each tuple: (pattern, replacement, flags)
_INJECTION_PATTERNS: list[tuple[str, str, int]] = [
    # System prompt override attempts
    (r"^\s*SYSTEM\s*:", _REPLACEMENT_FILTERED_COLON, re.IGNORECASE | re.MULTILINE),
    # Role tag injections (XML-style)
    (r"<\s*/?\s*(?:system|user|assistant)\s*>", _REPLACEMENT_TAG, re.IGNORECASE),
    # Prompt structure tags used by the collaborator prompts
    (r"<\s*/?\s*(?:resume|profile|answers)(?:\s[^>]*)?\s*>", _REPLACEMENT_TAG, re.IGNORECASE),
    (r"<\s*/?\s*[a-z]+(?:_[a-z]+)+(?:\s[^>]*)?\s*>", _REPLACEMENT_TAG, re.IGNORECASE),
    # ChatML-style role injections
    (r"<\|(?:system|user|assistant|im_start|im_end)\|>", _REPLACEMENT_TAG, re.IGNORECASE),
    # Instruction override attempts
    (
        r"ignore\s+(all\s+)?previous\s+instructions?",
        _REPLACEMENT_FILTERED,
        re.IGNORECASE,
    ),
    (r"disregard\s+(all\s+)?(prior|previous)", _REPLACEMENT_FILTERED, re.IGNORECASE),
    (r"forget\s+everything", _REPLACEMENT_FILTERED, re.IGNORECASE),
    (r"new\s+instructions?\s*:", _REPLACEMENT_FILTERED_COLON, re.IGNORECASE),
    (r"\[/?INST\]", _REPLACEMENT_FILTERED, re.IGNORECASE),
    # Chat transcript role markers
    (r"^\s*Human\s*:", _REPLACEMENT_FILTERED_COLON, re.IGNORECASE | re.MULTILINE),
    (r"^\s*Assistant\s*:", _REPLACEMENT_FILTERED_COLON, re.IGNORECASE | re.MULTILINE),
]

_COMPILED_PATTERNS = [
    (re.compile(pattern, flags), replacement)
    for pattern, replacement, flags in _INJECTION_PATTERNS
]


def sanitize_llm_input(text: str) -> str:
    """Sanitize user-provided text before embedding in LLM prompts.

    Security: Filters patterns commonly used in prompt injection attacks.
    This is defense-in-depth, not a guarantee against all injection.

    Args:
        text: Raw user-provided text (résumé text or an answer).

    Returns:
        Sanitized text with injection patterns neutralized. Letters with
        diacritics are kept in NFC form.
    """
    if not text:
        return text

    # NFKC folds fullwidth/styled variants (Ａ → A) before matching
    result = unicodedata.normalize("NFKC", text)
    result = _ZERO_WIDTH_PATTERN.sub("", result)
    result = _CONTROL_CHAR_PATTERN.sub("", result)

    for pattern, replacement in _COMPILED_PATTERNS:
        result = pattern.sub(replacement, result)

    return unicodedata.normalize("NFC", result)
