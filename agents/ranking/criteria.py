"""
Grant Criteria Extraction
Best-effort parsing of eligibility thresholds from free-text prompts.
"""
import re
from typing import Optional

from .models import GrantCriteria

# Two-letter tokens that look like state codes but are not
STATE_FALSE_POSITIVES = {"AI", "US"}

US_STATE_CODES = {
    "AL", "AK", "AZ", "AR", "CA", "CO", "CT", "DE", "DC", "FL", "GA", "HI",
    "ID", "IL", "IN", "IA", "KS", "KY", "LA", "ME", "MD", "MA", "MI", "MN",
    "MS", "MO", "MT", "NE", "NV", "NH", "NJ", "NM", "NY", "NC", "ND", "OH",
    "OK", "OR", "PA", "RI", "SC", "SD", "TN", "TX", "UT", "VT", "VA", "WA",
    "WV", "WI", "WY",
}

# Domain phrases recognized as required keywords
DOMAIN_KEYWORDS = [
    "portrait of a graduate",
    "strategic plan",
    "career readiness",
    "college and career",
    "ai literacy",
    "digital literacy",
    "stem",
    "mental health",
    "social emotional learning",
    "chronic absenteeism",
    "english learners",
    "early literacy",
    "teacher retention",
    "capstone",
    "competency-based",
    "community engagement",
]

# A percentage figure, optionally followed by "%" or "percent"
_PERCENT = r"(\d+(?:\.\d+)?)\s*(?:%|percent)?"

FRPL_PATTERN = re.compile(
    r"(?:frpl|free(?:\s*(?:and|/|&|or)\s*|[\s-]+)reduced(?:[\s-]+price)?\s+lunch)"
    r"[^0-9%]{0,24}" + _PERCENT
)
MINORITY_PATTERN = re.compile(r"minority[^0-9%]{0,24}" + _PERCENT)
ENROLLMENT_PATTERNS = [
    re.compile(
        r"(?:enrollment|students)\s*(?:of\s+)?"
        r"(?:over|above|at least|more than|greater than|>=|>)\s*(\d[\d,]*)"
    ),
    re.compile(r"(?:over|above|at least|more than|greater than|>=|>)\s*(\d[\d,]*)\s*students"),
]
STATE_TOKEN_PATTERN = re.compile(r"\b[A-Z]{2}\b")


def _parse_percent(match: Optional[re.Match]) -> Optional[float]:
    if not match:
        return None
    try:
        value = float(match.group(1))
    except ValueError:
        return None
    return min(100.0, max(0.0, value))


def _parse_enrollment(text: str) -> Optional[int]:
    for pattern in ENROLLMENT_PATTERNS:
        match = pattern.search(text)
        if not match:
            continue
        digits = match.group(1).replace(",", "")
        if digits.isdigit():
            return int(digits)
    return None


def extract_states(prompt: str) -> list[str]:
    """
    Extract state codes from uppercase two-letter tokens in the original prompt.

    Order of first appearance is preserved; duplicates are dropped.
    """
    states: list[str] = []
    for token in STATE_TOKEN_PATTERN.findall(prompt or ""):
        if token in STATE_FALSE_POSITIVES or token not in US_STATE_CODES:
            continue
        if token not in states:
            states.append(token)
    return states


def extract_keywords(text: str) -> list[str]:
    """Return the domain keyword phrases present in lower-cased text."""
    return [
        keyword for keyword in DOMAIN_KEYWORDS
        if re.search(r"\b" + re.escape(keyword) + r"\b", text)
    ]


def extract_grant_criteria(prompt: str, attachment_text: Optional[str] = None) -> GrantCriteria:
    """
    Parse grant eligibility thresholds from a prompt and optional attachment.

    Every matcher runs independently. A field with no match stays None;
    nothing here raises on malformed input.

    Args:
        prompt: Free-text user prompt (original case).
        attachment_text: Optional text extracted from an attached document.

    Returns:
        Partial GrantCriteria.
    """
    text = f"{prompt or ''}\n{attachment_text or ''}".lower()

    states = extract_states(prompt)
    keywords = extract_keywords(text)

    return GrantCriteria(
        frpl_min=_parse_percent(FRPL_PATTERN.search(text)),
        minority_min=_parse_percent(MINORITY_PATTERN.search(text)),
        min_enrollment=_parse_enrollment(text),
        states=states or None,
        keywords=keywords or None,
    )
