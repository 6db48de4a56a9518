"""
Label normalization for raw PDF field names and model-suggested labels.

Turns internal names such as ``NAMEOFPURCHASER``, ``buyerEmailAddress`` or
``Line2_Date`` into display labels ("Name of Purchaser", "Buyer Email
Address", "Line 2 Date"). ``normalize`` is pure and idempotent:
normalizing an already-normalized label returns it unchanged.
"""
import re
from typing import Any, List

# Longer patterns first so they win over their prefixes
CONCATENATION_PATTERNS = [
    (re.compile(r'nameofpurchaser', re.IGNORECASE), 'Name of Purchaser'),
    (re.compile(r'telephonenumber', re.IGNORECASE), 'Telephone Number'),
    (re.compile(r'phonenumber', re.IGNORECASE), 'Phone Number'),
    (re.compile(r'emailaddress', re.IGNORECASE), 'Email Address'),
    (re.compile(r'streetaddress', re.IGNORECASE), 'Street Address'),
    (re.compile(r'postalcode', re.IGNORECASE), 'Postal Code'),
    (re.compile(r'zipcode', re.IGNORECASE), 'Zip Code'),
    (re.compile(r"seller'spermit", re.IGNORECASE), "Seller's Permit"),
    (re.compile(r'vendorsname', re.IGNORECASE), "Vendor's Name"),
    (re.compile(r'nameof', re.IGNORECASE), 'Name of'),
    (re.compile(r'dateof', re.IGNORECASE), 'Date of'),
    (re.compile(r'numberof', re.IGNORECASE), 'Number of'),
    (re.compile(r'typeof', re.IGNORECASE), 'Type of'),
]

SMALL_WORDS = {
    'a', 'an', 'and', 'as', 'at', 'but', 'by', 'for', 'from', 'in',
    'into', 'of', 'on', 'or', 'the', 'to', 'with',
}

ACRONYMS = ['ID', 'SSN', 'EIN', 'TIN', 'PIN', 'VA', 'NC', 'CA', 'USA', 'CDTFA', 'HOA']

_ACRONYM_PATTERNS = [(re.compile(rf'\b{a}\b', re.IGNORECASE), a) for a in ACRONYMS]
_CAMEL_BOUNDARY = re.compile(r'([a-z])([A-Z])')
_ACRONYM_BOUNDARY = re.compile(r'([A-Z]{2,})([A-Z][a-z])')
_LETTER_DIGIT = re.compile(r'([a-zA-Z])(\d)')
_DIGIT_LETTER = re.compile(r'(\d)([a-zA-Z])')
_POSSESSIVE = re.compile(r"\b(\w+)'S\b", re.IGNORECASE)
_WHITESPACE = re.compile(r'\s+')


def _is_mostly_caps(text: str) -> bool:
    if len(text) > 1 and text == text.upper():
        return True
    upper = sum(1 for c in text if 'A' <= c <= 'Z')
    return len(text) > 3 and upper / len(text) > 0.7


def _title_word(word: str, index: int) -> str:
    if index > 0 and word.lower() in SMALL_WORDS:
        return word.lower()
    return word[:1].upper() + word[1:].lower()


def normalize(raw: Any) -> Any:
    """
    Normalize a raw field name into a display label.

    Args:
        raw: Raw name. ``None``, empty strings and non-strings are returned unchanged.

    Returns:
        Human readable label
    """
    if not raw or not isinstance(raw, str):
        return raw

    text = raw.strip().replace('_', ' ')
    if _is_mostly_caps(text):
        text = text.lower()

    text = _CAMEL_BOUNDARY.sub(r'\1 \2', text)
    text = _ACRONYM_BOUNDARY.sub(r'\1 \2', text)
    text = _LETTER_DIGIT.sub(r'\1 \2', text)
    text = _DIGIT_LETTER.sub(r'\1 \2', text)

    for pattern, replacement in CONCATENATION_PATTERNS:
        text = pattern.sub(replacement, text)

    text = ' '.join(_title_word(word, i) for i, word in enumerate(text.split()))

    for pattern, acronym in _ACRONYM_PATTERNS:
        text = pattern.sub(acronym, text)

    text = _POSSESSIVE.sub(r"\1's", text)
    return _WHITESPACE.sub(' ', text).strip()


def normalize_many(labels: List[Any]) -> List[Any]:
    return [normalize(label) for label in labels]
