"""
Turns a contextual metadata profile into system-prompt text.
"""

from datetime import datetime, timezone
from typing import List, Optional

from .schema import ContextualMetadataProfile

BASE_PROMPT = "You are a helpful AI assistant. Provide thoughtful, accurate, and helpful responses."

NEW_CONVERSATION = "This appears to be a new conversation with no previous context."

# Entries shown per field, most important first
DISPLAY_LIMITS = {
    "prominent_topics": 8,
    "key_questions": 5,
    "user_sentiments": 5,
    "emerging_trends": 4,
    "people_mentions": 6,
    "narrative_overviews": 3,
}


def _format_date(timestamp_ms: Optional[int]) -> str:
    if timestamp_ms is None:
        return "unknown date"
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc).strftime("%Y-%m-%d")


def _has_history(profile: Optional[ContextualMetadataProfile]) -> bool:
    return profile is not None and profile.interaction_count > 0


def format_profile_as_context(profile: Optional[ContextualMetadataProfile]) -> str:
    if not _has_history(profile):
        return NEW_CONVERSATION

    parts: List[str] = [
        f"Previous conversations: {profile.interaction_count} interactions, "
        f"last on {_format_date(profile.last_interaction_at)}"
    ]

    if profile.prominent_topics:
        topics = ", ".join(profile.prominent_topics[:DISPLAY_LIMITS["prominent_topics"]])
        parts.append(f"Key topics discussed: {topics}")

    if profile.key_questions:
        questions = "; ".join(profile.key_questions[:DISPLAY_LIMITS["key_questions"]])
        parts.append(f"Important questions raised: {questions}")

    if profile.user_sentiments:
        sentiments = "; ".join(profile.user_sentiments[:DISPLAY_LIMITS["user_sentiments"]])
        parts.append(f"User sentiments: {sentiments}")

    if profile.emerging_trends:
        trends = ", ".join(profile.emerging_trends[:DISPLAY_LIMITS["emerging_trends"]])
        parts.append(f"Recent trends: {trends}")

    if profile.people_mentions:
        people = ", ".join(
            f"{p.name} ({p.context})" for p in profile.people_mentions[:DISPLAY_LIMITS["people_mentions"]]
        )
        parts.append(f"People/entities mentioned: {people}")

    if profile.narrative_overviews:
        narrative = " ".join(profile.narrative_overviews[:DISPLAY_LIMITS["narrative_overviews"]])
        parts.append(f"Conversation patterns: {narrative}")

    return "\n".join(parts)


def create_system_prompt(profile: Optional[ContextualMetadataProfile]) -> str:
    """Base prompt, plus a context block when the owner has history."""
    if not _has_history(profile):
        return BASE_PROMPT

    return (
        f"{BASE_PROMPT}\n\n"
        f"CONVERSATION CONTEXT:\n{format_profile_as_context(profile)}\n\n"
        "Use this context to provide more personalized and relevant responses. Reference previous "
        "topics or patterns when appropriate, but don't be overly specific about past conversations "
        "unless directly asked."
    )


def should_include_detailed_context(profile: Optional[ContextualMetadataProfile]) -> bool:
    if profile is None:
        return False
    return (
        profile.interaction_count >= 3
        or len(profile.prominent_topics) >= 2
        or len(profile.key_questions) >= 1
    )


def summarize_profile(profile: Optional[ContextualMetadataProfile]) -> str:
    """One-line summary for admin listings."""
    if not _has_history(profile):
        return "New user with no conversation history."

    summary = [f"{profile.interaction_count} total interactions"]
    if profile.prominent_topics:
        summary.append(f"mainly discusses: {', '.join(profile.prominent_topics[:3])}")
    if profile.user_sentiments:
        summary.append(f"recent sentiment: {profile.user_sentiments[-1]}")
    return " | ".join(summary)
