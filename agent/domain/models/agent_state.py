from typing import Dict, Any, List, Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from datetime import datetime, timezone
from enum import Enum
import uuid


MEMORY_CAP = 50
PUBLIC_MEMORY_COUNT = 5
PROMPT_MEMORY_COUNT = 3

DEFAULT_DISPLAY_NAME = "Unnamed Avatar"


def generate_id() -> str:
    """Generate an opaque identifier"""
    return uuid.uuid4().hex[:16]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Tone(str, Enum):
    """Avatar response tone"""
    CASUAL = "casual"
    PROFESSIONAL = "professional"
    PLAYFUL = "playful"
    TECHNICAL = "technical"


class MemoryType(str, Enum):
    """Kinds of memory the avatar can store"""
    TASK = "task"
    PREFERENCE = "preference"
    NOTE = "note"


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys on the wire"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AvatarProfile(CamelModel):
    """Persona configuration for a session"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str = Field(description="Generated once, never changes")
    display_name: str = Field(default=DEFAULT_DISPLAY_NAME)
    bio: str = Field(default="")
    tone: Tone = Field(default=Tone.CASUAL)
    expertise_tags: List[str] = Field(default_factory=list)


class AvatarProfileUpdate(CamelModel):
    """Partial avatar profile; omitted fields keep their previous value"""
    display_name: Optional[str] = Field(None, description="Preferred avatar name")
    bio: Optional[str] = Field(None, description="Short description of the avatar")
    tone: Optional[Tone] = Field(None, description="Response tone")
    expertise_tags: Optional[List[str]] = Field(None, description="Areas of expertise")


class MemoryItem(CamelModel):
    """One persisted fact, preference, or task note"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str = Field(default_factory=generate_id)
    created_at: datetime = Field(default_factory=utc_now)
    type: MemoryType
    content: str


class AgentState(CamelModel):
    """Unit of persistence: avatar plus bounded memory log (oldest first)"""
    avatar: Optional[AvatarProfile] = None
    memories: List[MemoryItem] = Field(default_factory=list)

    def recent_memories(self, count: int) -> List[MemoryItem]:
        """Most recent memories, oldest first"""
        if count <= 0:
            return []
        return list(self.memories[-count:])

    def public_view(self) -> "AgentState":
        """Snapshot exposed to outside callers: last five memories only"""
        return AgentState(avatar=self.avatar, memories=self.recent_memories(PUBLIC_MEMORY_COUNT))

    def to_storage(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class DocumentEntry(BaseModel):
    """Static knowledge-base entry"""
    model_config = ConfigDict(frozen=True)

    key: str
    title: str
    content: str
    path: str


class ResearchResult(CamelModel):
    """Result of a documentation search"""
    query: str
    snippet: str
    source_url: str
