"""
Tests for system prompt construction from profiles.
"""

from contextual_memory.core.context_formatter import (
    BASE_PROMPT,
    NEW_CONVERSATION,
    create_system_prompt,
    format_profile_as_context,
    should_include_detailed_context,
    summarize_profile,
)
from contextual_memory.core.schema import ContextualMetadataProfile, PersonMention


def _profile(**kwargs):
    return ContextualMetadataProfile(owner_id="owner1", **kwargs)


def test_new_owner_gets_base_prompt():
    assert create_system_prompt(None) == BASE_PROMPT
    assert create_system_prompt(_profile()) == BASE_PROMPT
    assert format_profile_as_context(None) == NEW_CONVERSATION


def test_context_lists_profile_fields():
    profile = _profile(
        interaction_count=3,
        last_interaction_at=0,
        prominent_topics=["database optimization", "python"],
        key_questions=["How do I tune WAL?"],
        people_mentions=[PersonMention("Alice", "manager")],
    )

    context = format_profile_as_context(profile)

    assert context.splitlines()[0] == "Previous conversations: 3 interactions, last on 1970-01-01"
    assert "Key topics discussed: database optimization, python" in context
    assert "Important questions raised: How do I tune WAL?" in context
    assert "People/entities mentioned: Alice (manager)" in context
    assert "Recent trends" not in context


def test_topics_truncated_for_display():
    profile = _profile(interaction_count=1, prominent_topics=[f"topic {i}" for i in range(12)])

    context = format_profile_as_context(profile)

    assert "topic 7" in context
    assert "topic 8" not in context


def test_system_prompt_wraps_context():
    prompt = create_system_prompt(_profile(interaction_count=1, prominent_topics=["gardening"]))

    assert prompt.startswith(BASE_PROMPT)
    assert "CONVERSATION CONTEXT:" in prompt
    assert "gardening" in prompt


def test_should_include_detailed_context():
    assert not should_include_detailed_context(None)
    assert not should_include_detailed_context(_profile(interaction_count=1))
    assert should_include_detailed_context(_profile(interaction_count=3))
    assert should_include_detailed_context(_profile(key_questions=["why?"]))


def test_summarize_profile():
    assert summarize_profile(None) == "New user with no conversation history."
    summary = summarize_profile(_profile(interaction_count=4, prominent_topics=["a", "b", "c", "d"],
                                         user_sentiments=["curious", "pleased"]))
    assert summary == "4 total interactions | mainly discusses: a, b, c | recent sentiment: pleased"
