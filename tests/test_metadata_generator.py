"""
Tests for the LLM-backed profile delta generator.
"""

from unittest.mock import AsyncMock

import pytest

from contextual_memory.agents.metadata_generator import (
    OllamaMetadataGenerator,
    build_user_prompt,
    extract_json,
    parse_delta,
)
from contextual_memory.core.errors import GenerationError
from contextual_memory.core.schema import ContextualMetadataProfile, ConversationTurn, PersonMention


@pytest.fixture
def turn():
    return ConversationTurn(user_text="My queries are slow", assistant_text="Try an index", timestamp=0)


@pytest.fixture
def existing():
    return ContextualMetadataProfile(owner_id="owner1", prominent_topics=["database optimization"])


def _client(content=None, error=None):
    client = AsyncMock()
    if error is not None:
        client.chat.side_effect = error
    else:
        client.chat.return_value = {"message": {"role": "assistant", "content": content}}
    return client


class TestParsing:
    def test_extract_fenced_json(self):
        content = 'Sure!\n```json\n{"prominentTopics": ["sql"]}\n```\nDone.'
        assert extract_json(content) == '{"prominentTopics": ["sql"]}'

    def test_extract_embedded_object(self):
        assert extract_json('Here you go: {"a": 1} thanks') == '{"a": 1}'

    def test_parse_delta_camel_case(self):
        delta = parse_delta('{"prominentTopics": ["sql"], "peopleMentions": [{"name": "Ann", "context": "dba"}]}')
        assert delta.prominent_topics == ["sql"]
        assert delta.people_mentions == [PersonMention("Ann", "dba")]

    @pytest.mark.parametrize("content", ["", "   ", "not json at all", "[1, 2, 3]"])
    def test_parse_delta_rejects_unusable_output(self, content):
        with pytest.raises(GenerationError):
            parse_delta(content)

    def test_prompt_includes_existing_metadata_and_turn(self, existing, turn):
        prompt = build_user_prompt(existing, turn)
        assert '"prominentTopics"' in prompt
        assert "database optimization" in prompt
        assert 'User: "My queries are slow"' in prompt
        assert "1970-01-01T00:00:00+00:00" in prompt


class TestOllamaMetadataGenerator:
    @pytest.mark.asyncio
    async def test_returns_parsed_delta(self, existing, turn):
        client = _client('```json\n{"prominentTopics": ["query performance"]}\n```')
        generator = OllamaMetadataGenerator("llama3.1:8b", client=client)

        delta = await generator.generate_profile_delta(existing, turn)

        assert delta.prominent_topics == ["query performance"]
        kwargs = client.chat.await_args.kwargs
        assert kwargs["model"] == "llama3.1:8b"
        assert kwargs["format"] == "json"
        assert kwargs["messages"][0]["role"] == "system"

    @pytest.mark.asyncio
    async def test_garbage_output_gives_empty_delta(self, existing, turn):
        generator = OllamaMetadataGenerator("m", client=_client("I cannot help with that"))

        delta = await generator.generate_profile_delta(existing, turn)

        assert delta.is_empty()

    @pytest.mark.asyncio
    async def test_non_object_gives_empty_delta(self, existing, turn):
        generator = OllamaMetadataGenerator("m", client=_client('["a", "b"]'))
        assert (await generator.generate_profile_delta(existing, turn)).is_empty()

    @pytest.mark.asyncio
    async def test_client_error_gives_empty_delta(self, existing, turn):
        generator = OllamaMetadataGenerator("m", client=_client(error=ConnectionError("refused")))
        assert (await generator.generate_profile_delta(existing, turn)).is_empty()
