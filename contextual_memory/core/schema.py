"""
Profile data model: the persisted contextual metadata profile, the ephemeral
LLM-produced delta and the conversation turn that seeds an enrichment.
"""

import time
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional

# String list fields shared by profiles and deltas, in prompt order
TEXT_FIELDS = [
    "prominent_topics",
    "representative_conversations",
    "narrative_overviews",
    "key_questions",
    "emerging_trends",
    "user_sentiments",
]

LIST_FIELDS = TEXT_FIELDS + ["people_mentions"]

# JSON keys used in LLM prompts/responses and the HTTP surface
CAMEL_CASE = {
    "prominent_topics": "prominentTopics",
    "representative_conversations": "representativeConversations",
    "narrative_overviews": "narrativeOverviews",
    "key_questions": "keyQuestions",
    "emerging_trends": "emergingTrends",
    "user_sentiments": "userSentiments",
    "people_mentions": "peopleMentions",
}


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class PersonMention:
    name: str
    context: str

    @classmethod
    def from_value(cls, value: Any) -> Optional["PersonMention"]:
        """Build from a dict; returns None when name or context is missing."""
        if isinstance(value, PersonMention):
            return value
        if not isinstance(value, dict):
            return None
        name = value.get("name")
        context = value.get("context")
        if not isinstance(name, str) or not name.strip():
            return None
        if not isinstance(context, str) or not context.strip():
            return None
        return cls(name=name, context=context)


def _coerce_strings(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str) and item.strip()]


def _coerce_people(value: Any) -> List[PersonMention]:
    if not isinstance(value, list):
        return []
    people = []
    for item in value:
        mention = PersonMention.from_value(item)
        if mention is not None:
            people.append(mention)
    return people


def _lookup(data: Dict[str, Any], name: str) -> Any:
    if name in data:
        return data[name]
    return data.get(CAMEL_CASE[name])


@dataclass
class ProfileDelta:
    """Candidate profile update. Never persisted on its own."""
    prominent_topics: List[str] = field(default_factory=list)
    representative_conversations: List[str] = field(default_factory=list)
    narrative_overviews: List[str] = field(default_factory=list)
    key_questions: List[str] = field(default_factory=list)
    emerging_trends: List[str] = field(default_factory=list)
    user_sentiments: List[str] = field(default_factory=list)
    people_mentions: List[PersonMention] = field(default_factory=list)

    @classmethod
    def empty(cls) -> "ProfileDelta":
        return cls()

    @classmethod
    def from_dict(cls, data: Any) -> "ProfileDelta":
        """
        Build a delta from loosely-typed generator output.

        Accepts snake_case or camelCase keys. Missing or malformed fields
        become empty lists and non-string entries are dropped; this never
        raises on bad input.
        """
        if not isinstance(data, dict):
            return cls.empty()
        values = {name: _coerce_strings(_lookup(data, name)) for name in TEXT_FIELDS}
        values["people_mentions"] = _coerce_people(_lookup(data, "people_mentions"))
        return cls(**values)

    def is_empty(self) -> bool:
        return not any(getattr(self, name) for name in LIST_FIELDS)


@dataclass
class ContextualMetadataProfile:
    """Bounded, deduplicated behavioural profile for one owner."""
    owner_id: str
    prominent_topics: List[str] = field(default_factory=list)
    representative_conversations: List[str] = field(default_factory=list)
    narrative_overviews: List[str] = field(default_factory=list)
    key_questions: List[str] = field(default_factory=list)
    emerging_trends: List[str] = field(default_factory=list)
    user_sentiments: List[str] = field(default_factory=list)
    people_mentions: List[PersonMention] = field(default_factory=list)
    interaction_count: int = 0
    last_interaction_at: Optional[int] = None
    created_at: Optional[int] = None
    updated_at: Optional[int] = None

    @classmethod
    def empty(cls, owner_id: str) -> "ContextualMetadataProfile":
        return cls(owner_id=owner_id)

    def lists_as_dict(self, camel_case: bool = False) -> Dict[str, Any]:
        """Only the list fields, in the shape shown to the delta generator."""
        result = {}
        for name in LIST_FIELDS:
            key = CAMEL_CASE[name] if camel_case else name
            value = getattr(self, name)
            if name == "people_mentions":
                value = [asdict(p) for p in value]
            result[key] = list(value)
        return result

    def to_dict(self) -> Dict[str, Any]:
        data = self.lists_as_dict()
        data.update({
            "owner_id": self.owner_id,
            "interaction_count": self.interaction_count,
            "last_interaction_at": self.last_interaction_at,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        })
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ContextualMetadataProfile":
        lists = ProfileDelta.from_dict(data)
        return cls(
            owner_id=data["owner_id"],
            interaction_count=int(data.get("interaction_count") or 0),
            last_interaction_at=data.get("last_interaction_at"),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
            **{name: getattr(lists, name) for name in LIST_FIELDS},
        )


@dataclass
class ConversationTurn:
    """One completed user/assistant exchange."""
    user_text: str
    assistant_text: str
    timestamp: int
