"""
Metadata merge engine.

Consolidates an LLM-generated ProfileDelta into an existing profile. Merging is
a pure function of (profile, delta, timestamp): the inputs are not mutated and
the result is bounded per field with recency winning over completeness.
"""

import copy
from typing import Dict, Iterable, List, Optional

from .schema import (
    ContextualMetadataProfile,
    PersonMention,
    ProfileDelta,
    TEXT_FIELDS,
    now_ms,
)

TOPIC_SIMILARITY_THRESHOLD = 0.5

FIELD_LIMITS: Dict[str, int] = {
    "prominent_topics": 15,
    "representative_conversations": 10,
    "narrative_overviews": 8,
    "key_questions": 12,
    "emerging_trends": 10,
    "user_sentiments": 12,
    "people_mentions": 25,
}

EXACT_MATCH_FIELDS = [name for name in TEXT_FIELDS if name != "prominent_topics"]


def tokenize(text: str) -> List[str]:
    """Lower-case whitespace tokenization."""
    if not text:
        return []
    return text.lower().split()


def token_overlap_similar(candidate_tokens: List[str], existing_tokens: List[str],
                          threshold: float = TOPIC_SIMILARITY_THRESHOLD) -> bool:
    """
    Word-overlap similarity between two token lists.

    A candidate token counts as common when it contains, or is contained by,
    any existing token. The pair is similar when the common count divided by
    the shorter list's length exceeds ``threshold``. Empty inputs are never
    similar.
    """
    if not candidate_tokens or not existing_tokens:
        return False

    common = [
        token for token in candidate_tokens
        if any(other in token or token in other for other in existing_tokens)
    ]
    ratio = len(common) / min(len(candidate_tokens), len(existing_tokens))
    return ratio > threshold


def is_topic_similar(topic: str, existing_topics: Iterable[str],
                     threshold: float = TOPIC_SIMILARITY_THRESHOLD) -> bool:
    candidate_tokens = tokenize(topic)
    return any(
        token_overlap_similar(candidate_tokens, tokenize(existing), threshold)
        for existing in existing_topics
    )


def keep_most_recent(items: list, limit: int) -> list:
    """Drop from the front until ``items`` fits within ``limit``."""
    if limit <= 0:
        return []
    if len(items) > limit:
        return items[-limit:]
    return items


class MetadataMergeEngine:
    """Applies per-field dedup rules and caps to profile deltas."""

    def __init__(self, field_limits: Optional[Dict[str, int]] = None,
                 similarity_threshold: float = TOPIC_SIMILARITY_THRESHOLD):
        self.field_limits = dict(FIELD_LIMITS)
        if field_limits:
            self.field_limits.update(field_limits)
        self.similarity_threshold = similarity_threshold

    def merge(self, existing: ContextualMetadataProfile, delta: Optional[ProfileDelta],
              timestamp: int) -> ContextualMetadataProfile:
        """
        Return a new profile with ``delta`` consolidated into ``existing``.

        Args:
            existing: Current profile (an empty profile for a first turn)
            delta: Candidate update; None is treated as an empty delta
            timestamp: Triggering turn timestamp, stored as last_interaction_at

        Returns:
            Merged profile with interaction_count incremented by one
        """
        if delta is None:
            delta = ProfileDelta.empty()

        merged = copy.deepcopy(existing)

        merged.prominent_topics = self._merge_topics(existing.prominent_topics, delta.prominent_topics)

        for name in EXACT_MATCH_FIELDS:
            merged_values = self._merge_exact(getattr(existing, name), getattr(delta, name))
            setattr(merged, name, merged_values)

        merged.people_mentions = self._merge_people(existing.people_mentions, delta.people_mentions)

        for name, limit in self.field_limits.items():
            setattr(merged, name, keep_most_recent(getattr(merged, name), limit))

        current = now_ms()
        merged.interaction_count = existing.interaction_count + 1
        merged.last_interaction_at = timestamp
        merged.updated_at = current
        if merged.created_at is None:
            merged.created_at = current

        return merged

    def _merge_topics(self, existing: List[str], candidates: List[str]) -> List[str]:
        merged = list(existing)
        for topic in candidates or []:
            if not isinstance(topic, str) or not topic.strip():
                continue
            if is_topic_similar(topic, merged, self.similarity_threshold):
                continue
            merged.append(topic)
        return merged

    def _merge_exact(self, existing: List[str], candidates: List[str]) -> List[str]:
        merged = list(existing)
        seen = set(merged)
        for value in candidates or []:
            if not isinstance(value, str) or value in seen:
                continue
            merged.append(value)
            seen.add(value)
        return merged

    def _merge_people(self, existing: List[PersonMention],
                      candidates: List[PersonMention]) -> List[PersonMention]:
        merged = [copy.copy(p) for p in existing]
        names = {p.name.lower() for p in merged}
        for candidate in candidates or []:
            mention = PersonMention.from_value(candidate)
            if mention is None or mention.name.lower() in names:
                continue
            merged.append(mention)
            names.add(mention.name.lower())
        return merged


_default_engine = MetadataMergeEngine()


def merge_profile(existing: ContextualMetadataProfile, delta: Optional[ProfileDelta],
                  timestamp: int) -> ContextualMetadataProfile:
    """Merge with the default field limits."""
    return _default_engine.merge(existing, delta, timestamp)
