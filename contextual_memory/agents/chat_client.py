"""
Chat completion client: streams response fragments from an Ollama model.
"""

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, List

import ollama


class IChatClient(ABC):
    """Abstract streaming chat completion."""

    @abstractmethod
    def complete_chat(self, messages: List[Dict[str, str]]) -> AsyncIterator[str]:
        """Yield text fragments of the assistant reply."""
        pass


class OllamaChatClient(IChatClient):
    """Streaming chat against a local or remote Ollama server."""

    def __init__(self, model_name: str, host: str = None, client: ollama.AsyncClient = None,
                 options: Dict[str, Any] = None):
        self.model_name = model_name
        self.client = client or ollama.AsyncClient(host=host)
        self.options = options or {'temperature': 0.7, 'top_p': 0.9}

    async def complete_chat(self, messages: List[Dict[str, str]]) -> AsyncIterator[str]:
        stream = await self.client.chat(
            model=self.model_name,
            messages=messages,
            stream=True,
            options=self.options,
        )
        async for chunk in stream:
            content = chunk['message']['content']
            if content:
                yield content
