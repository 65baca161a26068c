"""
Vector storage data types: stored message records, query matches, and the
index descriptor/handle pair that hides namespace vs dedicated mode.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class IndexMode(str, Enum):
    NAMESPACE = "namespace"
    DEDICATED = "dedicated"


@dataclass(frozen=True)
class VectorRecord:
    """A single embedded chat message. Immutable once written."""

    id: str
    """Unique identifier for the vector record"""

    vector: List[float]
    """Embedding of ``text``"""

    role: str
    """``user`` or ``assistant``"""

    text: str
    """The message content"""

    timestamp: int
    """Epoch milliseconds of the turn"""

    owner_id: str
    """Owner whose memory this message belongs to"""

    def metadata(self) -> Dict[str, Any]:
        """Metadata payload stored next to the vector."""
        return {
            "id": self.id,
            "role": self.role,
            "message": self.text,
            "timestamp": self.timestamp,
            "owner_id": self.owner_id,
        }


@dataclass
class QueryMatch:
    """Represents a search result from a vector index."""

    id: str
    """Identifier for the matching record"""

    score: float
    """Cosine similarity of the match"""

    metadata: Dict[str, Any] = field(default_factory=dict)
    """Metadata stored with the matched record"""


@dataclass(frozen=True)
class IndexDescriptor:
    owner_id: str
    mode: IndexMode
    index_name: str


@dataclass(frozen=True)
class IndexHandle:
    """Where an owner's vectors live. ``namespace`` is set only in namespace mode."""
    descriptor: IndexDescriptor
    namespace: Optional[str] = None

    @property
    def owner_id(self) -> str:
        return self.descriptor.owner_id

    @property
    def index_name(self) -> str:
        return self.descriptor.index_name

    @property
    def is_namespace(self) -> bool:
        return self.descriptor.mode == IndexMode.NAMESPACE


@dataclass
class OrderedMessage:
    """A retrieved past message, positioned chronologically in context."""
    id: str
    role: str
    text: str
    timestamp: int
    score: float = 0.0

    def to_chat_message(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.text}


@dataclass(frozen=True)
class StorageStatus:
    exists: bool
    mode: IndexMode
