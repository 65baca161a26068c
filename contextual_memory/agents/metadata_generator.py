"""
Profile delta generator.

Asks an LLM which profile entries a new conversation turn adds. Output from
the model is untrusted: anything that does not parse into the expected shape
becomes an empty delta rather than an error.
"""

import json
import re
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict

import ollama

from ..core.errors import GenerationError
from ..core.schema import ContextualMetadataProfile, ConversationTurn, ProfileDelta
from ..util.logging import logger

SYSTEM_PROMPT = """You maintain CONCISE, HIGH-VALUE contextual metadata about a user for semantic search and prompt personalization.

Given the existing metadata and one new conversation, propose MINIMAL additions to these categories:

1. prominentTopics: broad themes, 3-5 words each. Prefer consolidating into existing topics.
2. representativeConversations: only conversations worth remembering (at most 1-2).
3. narrativeOverviews: high-level patterns only (at most 1).
4. keyQuestions: only genuinely important or recurring questions.
5. emergingTrends: new directions in the conversation, be selective.
6. userSentiments: major sentiment shifts only.
7. peopleMentions: important people or entities, each as {"name": ..., "context": ...}.

Rules:
- Add at most ONE item per category for this conversation.
- Use broad, searchable wording rather than specific details.
- Skip trivial or one-off mentions.
- If the existing metadata already covers something, return an empty array for that category.

Respond with ONLY a raw JSON object, no markdown fences and no surrounding text. Example:
{
  "prominentTopics": ["database optimization"],
  "representativeConversations": [],
  "narrativeOverviews": [],
  "keyQuestions": [],
  "emergingTrends": [],
  "userSentiments": [],
  "peopleMentions": []
}"""

_FENCED_JSON = re.compile(r"```(?:json)?\s*(\{[\s\S]*?\})\s*```")
_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


def extract_json(content: str) -> str:
    """Pull the JSON object out of a model reply that may be fenced or padded."""
    fenced = _FENCED_JSON.search(content)
    if fenced:
        return fenced.group(1).strip()

    obj = _JSON_OBJECT.search(content)
    if obj:
        return obj.group(0).strip()

    return content.strip()


def parse_delta(content: str) -> ProfileDelta:
    """
    Parse a model reply into a ProfileDelta.

    Raises:
        GenerationError: the reply is empty, not JSON, or not a JSON object
    """
    if not content or not content.strip():
        raise GenerationError("Empty response from delta generator")

    try:
        data = json.loads(extract_json(content))
    except json.JSONDecodeError as e:
        raise GenerationError(f"Delta generator returned invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise GenerationError(f"Delta generator returned {type(data).__name__}, expected object")

    return ProfileDelta.from_dict(data)


def build_user_prompt(existing: ContextualMetadataProfile, turn: ConversationTurn) -> str:
    when = datetime.fromtimestamp(turn.timestamp / 1000, tz=timezone.utc).isoformat()
    existing_json = json.dumps(existing.lists_as_dict(camel_case=True), indent=2)
    return (
        f"EXISTING METADATA:\n{existing_json}\n\n"
        f"NEW CONVERSATION:\n"
        f"User: \"{turn.user_text}\"\n"
        f"Assistant: \"{turn.assistant_text}\"\n"
        f"Timestamp: {when}\n\n"
        "Based on this conversation and the existing metadata, which additions should be made? "
        "Return only new information that adds value for semantic search and user understanding."
    )


class IProfileDeltaGenerator(ABC):
    """Produces a candidate profile update from a conversation turn."""

    @abstractmethod
    async def generate_profile_delta(self, existing: ContextualMetadataProfile,
                                     turn: ConversationTurn) -> ProfileDelta:
        """Never raises; returns an empty delta when nothing usable is produced."""
        pass


class OllamaMetadataGenerator(IProfileDeltaGenerator):
    """Delta generator backed by an Ollama chat model in JSON mode."""

    def __init__(self, model_name: str, host: str = None, client: ollama.AsyncClient = None,
                 options: Dict[str, Any] = None):
        self.model_name = model_name
        self.client = client or ollama.AsyncClient(host=host)
        self.options = options or {'temperature': 0.2}

    async def generate_profile_delta(self, existing: ContextualMetadataProfile,
                                     turn: ConversationTurn) -> ProfileDelta:
        try:
            response = await self.client.chat(
                model=self.model_name,
                messages=[
                    {'role': 'system', 'content': SYSTEM_PROMPT},
                    {'role': 'user', 'content': build_user_prompt(existing, turn)},
                ],
                format='json',
                options=self.options,
            )
            content = response['message']['content']
            return parse_delta(content)

        except GenerationError as e:
            logger.log_profile_operation("generate_delta", existing.owner_id, "degraded",
                                         {"error": str(e)})
            return ProfileDelta.empty()

        except Exception as e:
            # Client or transport failure: same outcome as unusable output
            logger.log_profile_operation("generate_delta", existing.owner_id, "failed",
                                         {"error": str(e), "model": self.model_name})
            return ProfileDelta.empty()
