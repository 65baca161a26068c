"""
Tests for the metadata merge engine.
"""

import pytest

from contextual_memory.core.merge import (
    FIELD_LIMITS,
    MetadataMergeEngine,
    is_topic_similar,
    keep_most_recent,
    merge_profile,
    token_overlap_similar,
    tokenize,
)
from contextual_memory.core.schema import ContextualMetadataProfile, PersonMention, ProfileDelta


def _profile(**kwargs):
    return ContextualMetadataProfile(owner_id="owner-1", **kwargs)


class TestTopicSimilarity:
    def test_tokenize_lowercases_and_splits(self):
        assert tokenize("Database  Performance Issues") == ["database", "performance", "issues"]
        assert tokenize("") == []

    def test_empty_token_lists_are_never_similar(self):
        assert token_overlap_similar([], ["database"]) is False
        assert token_overlap_similar(["database"], []) is False
        assert token_overlap_similar([], []) is False

    def test_ratio_must_exceed_threshold(self):
        # 1 of 2 tokens in common is exactly 0.5, which is not similar
        assert token_overlap_similar(["red", "car"], ["red", "bike"]) is False
        assert token_overlap_similar(["red", "car"], ["red", "cars"]) is True

    def test_substring_tokens_count_as_common(self):
        assert token_overlap_similar(["database"], ["databases"]) is True

    def test_near_duplicate_topic(self):
        assert is_topic_similar("database issues", ["database performance issues"])

    def test_unrelated_wording_is_not_similar(self):
        # No shared tokens, even though the meaning overlaps
        assert not is_topic_similar("SQL problems", ["database issues"])


class TestTopicMerge:
    def test_distinct_topic_is_appended(self):
        existing = _profile(prominent_topics=["database optimization"])
        delta = ProfileDelta(prominent_topics=["machine learning basics"])

        merged = merge_profile(existing, delta, 1000)

        assert merged.prominent_topics == ["database optimization", "machine learning basics"]

    def test_near_duplicate_topic_is_not_appended(self):
        existing = _profile(prominent_topics=["database performance issues"])
        delta = ProfileDelta(prominent_topics=["database issues"])

        merged = merge_profile(existing, delta, 1000)

        assert merged.prominent_topics == ["database performance issues"]

    def test_no_token_overlap_is_appended(self):
        existing = _profile(prominent_topics=["database issues"])
        delta = ProfileDelta(prominent_topics=["SQL problems"])

        merged = merge_profile(existing, delta, 1000)

        assert merged.prominent_topics == ["database issues", "SQL problems"]

    def test_duplicates_within_one_delta_collapse(self):
        delta = ProfileDelta(prominent_topics=["rust programming", "rust programming language"])

        merged = merge_profile(_profile(), delta, 1000)

        assert merged.prominent_topics == ["rust programming"]

    def test_topics_capped_keeping_most_recent(self):
        subjects = [
            "astronomy", "botany", "chemistry", "dentistry", "economics", "forestry",
            "geology", "history", "immunology", "journalism", "kinetics", "linguistics",
            "mathematics", "neurology", "oceanography",
        ]
        existing = _profile(prominent_topics=subjects)
        delta = ProfileDelta(prominent_topics=["philosophy"])

        merged = merge_profile(existing, delta, 1000)

        assert len(merged.prominent_topics) == FIELD_LIMITS["prominent_topics"]
        assert merged.prominent_topics[0] == "botany"
        assert merged.prominent_topics[-1] == "philosophy"


class TestExactAndPeopleMerge:
    def test_exact_duplicates_are_skipped(self):
        existing = _profile(key_questions=["How do I index?"])
        delta = ProfileDelta(key_questions=["How do I index?", "What is WAL?"])

        merged = merge_profile(existing, delta, 1000)

        assert merged.key_questions == ["How do I index?", "What is WAL?"]

    def test_exact_match_is_case_sensitive(self):
        existing = _profile(user_sentiments=["frustrated"])
        delta = ProfileDelta(user_sentiments=["Frustrated"])

        merged = merge_profile(existing, delta, 1000)

        assert merged.user_sentiments == ["frustrated", "Frustrated"]

    def test_people_dedup_by_name_case_insensitive(self):
        existing = _profile(people_mentions=[PersonMention("Alice", "manager")])
        delta = ProfileDelta(people_mentions=[PersonMention("alice", "friend"), PersonMention("Bob", "coworker")])

        merged = merge_profile(existing, delta, 1000)

        assert [(p.name, p.context) for p in merged.people_mentions] == [
            ("Alice", "manager"),
            ("Bob", "coworker"),
        ]

    def test_people_capped_at_25_keeping_most_recent(self):
        existing = _profile(people_mentions=[PersonMention(f"Existing{i}", "old") for i in range(10)])
        delta = ProfileDelta(people_mentions=[PersonMention(f"New{i}", "new") for i in range(20)])

        merged = merge_profile(existing, delta, 1000)

        names = [p.name for p in merged.people_mentions]
        assert len(names) == 25
        assert names[:5] == [f"Existing{i}" for i in range(5, 10)]
        assert names[-1] == "New19"


class TestMergeBookkeeping:
    def test_counter_and_timestamps(self):
        merged = merge_profile(_profile(), ProfileDelta.empty(), 1234)

        assert merged.interaction_count == 1
        assert merged.last_interaction_at == 1234
        assert merged.created_at is not None
        assert merged.updated_at is not None

    def test_created_at_is_preserved(self):
        existing = _profile(interaction_count=4, created_at=10, updated_at=20)

        merged = merge_profile(existing, None, 5000)

        assert merged.interaction_count == 5
        assert merged.created_at == 10
        assert merged.updated_at >= 20

    def test_inputs_are_not_mutated(self):
        existing = _profile(prominent_topics=["database issues"],
                            people_mentions=[PersonMention("Alice", "manager")])
        delta = ProfileDelta(prominent_topics=["gardening"], people_mentions=[PersonMention("Bob", "x")])

        merge_profile(existing, delta, 1000)

        assert existing.prominent_topics == ["database issues"]
        assert [p.name for p in existing.people_mentions] == ["Alice"]
        assert existing.interaction_count == 0
        assert delta.prominent_topics == ["gardening"]

    def test_custom_field_limits(self):
        engine = MetadataMergeEngine(field_limits={"key_questions": 2})
        delta = ProfileDelta(key_questions=["q1", "q2", "q3"])

        merged = engine.merge(_profile(), delta, 1000)

        assert merged.key_questions == ["q2", "q3"]


class TestProfileDeltaParsing:
    def test_malformed_fields_become_empty(self):
        delta = ProfileDelta.from_dict({
            "prominentTopics": "not a list",
            "keyQuestions": [1, "ok", None, "  "],
            "peopleMentions": [{"name": "Bob"}, {"name": "Ann", "context": "colleague"}, "Carl"],
        })

        assert delta.prominent_topics == []
        assert delta.key_questions == ["ok"]
        assert delta.people_mentions == [PersonMention("Ann", "colleague")]

    def test_snake_case_keys_accepted(self):
        delta = ProfileDelta.from_dict({"emerging_trends": ["remote work"]})
        assert delta.emerging_trends == ["remote work"]

    def test_non_dict_is_empty(self):
        assert ProfileDelta.from_dict(["a"]).is_empty()
        assert ProfileDelta.from_dict(None).is_empty()


@pytest.mark.parametrize("items,limit,expected", [
    ([1, 2, 3], 5, [1, 2, 3]),
    ([1, 2, 3], 2, [2, 3]),
    ([1, 2, 3], 0, []),
])
def test_keep_most_recent(items, limit, expected):
    assert keep_most_recent(items, limit) == expected
