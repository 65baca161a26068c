"""
Request and response models for the contextual memory HTTP API.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


def _not_blank(value: str, name: str) -> str:
    if not value.strip():
        raise ValueError(f'{name} cannot be empty')
    return value


class ContextQueryRequest(BaseModel):
    owner_id: str
    text: str
    top_k: int = Field(default=5, ge=1, le=50)

    @field_validator('owner_id')
    @classmethod
    def owner_id_must_not_be_empty(cls, v):
        return _not_blank(v, 'owner_id')


class ContextMessage(BaseModel):
    id: str
    role: str
    text: str
    timestamp: int
    score: float


class ContextQueryResponse(BaseModel):
    messages: List[ContextMessage]


class RecordTurnRequest(BaseModel):
    owner_id: str
    user_text: str
    assistant_text: str
    timestamp: Optional[int] = None
    dedicated: Optional[bool] = None

    @field_validator('owner_id')
    @classmethod
    def owner_id_must_not_be_empty(cls, v):
        return _not_blank(v, 'owner_id')

    @field_validator('user_text')
    @classmethod
    def user_text_must_not_be_empty(cls, v):
        return _not_blank(v, 'user_text')


class RecordTurnResponse(BaseModel):
    success: bool
    enrichment_scheduled: bool


class ChatMessage(BaseModel):
    role: str
    content: str

    @field_validator('role')
    @classmethod
    def role_must_be_valid(cls, v):
        valid_roles = ['user', 'assistant', 'system']
        if v not in valid_roles:
            raise ValueError(f'role must be one of: {valid_roles}')
        return v


class ChatRequest(BaseModel):
    owner_id: str
    message: str
    history: List[ChatMessage] = Field(default_factory=list)
    top_k: Optional[int] = Field(default=None, ge=1, le=50)

    @field_validator('owner_id')
    @classmethod
    def owner_id_must_not_be_empty(cls, v):
        return _not_blank(v, 'owner_id')

    @field_validator('message')
    @classmethod
    def message_must_not_be_empty(cls, v):
        return _not_blank(v, 'message')


class PersonMentionModel(BaseModel):
    name: str
    context: str


class ProfileModel(BaseModel):
    owner_id: str
    prominent_topics: List[str]
    representative_conversations: List[str]
    narrative_overviews: List[str]
    key_questions: List[str]
    emerging_trends: List[str]
    user_sentiments: List[str]
    people_mentions: List[PersonMentionModel]
    interaction_count: int
    last_interaction_at: Optional[int] = None
    created_at: Optional[int] = None
    updated_at: Optional[int] = None


class ProfileResponse(BaseModel):
    message: str
    metadata: Optional[ProfileModel] = None


class ProfileListResponse(BaseModel):
    profiles: List[ProfileModel]


class ProfileStatsResponse(BaseModel):
    total_owners: int
    average_interactions: int
    last_interaction_at: Optional[int] = None
    active_owners_last_week: int


class StorageRequest(BaseModel):
    dedicated: bool = False


class StorageResponse(BaseModel):
    success: bool
    owner_id: str
    mode: str
    message: str


class StorageStatusResponse(BaseModel):
    owner_id: str
    exists: bool
    mode: str


class HealthResponse(BaseModel):
    status: str
    version: str
    db_health: bool
    vector_provider: str
    config_issues: List[str] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    error_type: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)
