"""
Intent Classification
Maps a command prompt to one of the fixed command search intents.
"""
from .models import Intent

# Evaluated top to bottom; first rule with a matching keyword wins.
# Insights queries must not be shadowed by a coincidental "grant" mention.
INTENT_RULES: list[tuple[Intent, tuple[str, ...]]] = [
    (Intent.INSIGHTS_BRIEFING, ("trend", "brief", "insight", "state overview")),
    (Intent.GRANT_MATCH, ("grant", "frpl", "minority")),
    (Intent.NEXT_HOTTEST_UNCONTACTED, ("next hottest", "uncontacted", "lead")),
]


def classify_intent(prompt: str) -> Intent:
    """
    Classify a prompt using priority-ordered substring rules.

    Args:
        prompt: Command prompt (any case).

    Returns:
        The first matching intent, or DISTRICT_SEARCH if none match.
    """
    text = (prompt or "").lower()
    for intent, keywords in INTENT_RULES:
        if any(keyword in text for keyword in keywords):
            return intent
    return Intent.DISTRICT_SEARCH
