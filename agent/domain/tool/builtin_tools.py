from typing import List

from pydantic import Field

from domain.context.document_matcher import DocumentMatcher
from domain.context.state.state_manager import StateStore
from domain.models.agent_state import (
    AgentState, AvatarProfile, AvatarProfileUpdate, CamelModel, MemoryItem, MemoryType, ResearchResult
)
from .tool_registry import NoArgs, ToolDefinition


class SaveMemoryArgs(CamelModel):
    type: MemoryType = Field(description="task, preference or note")
    content: str = Field(min_length=1, description="What to remember")


class ResearchWebArgs(CamelModel):
    query: str = Field(description="What to look up in the Percify documentation")


def build_avatar_tools(state_store: StateStore, matcher: DocumentMatcher) -> List[ToolDefinition]:
    """Tools backed by the session's state store and the documentation matcher"""

    async def save_avatar_profile(args: AvatarProfileUpdate) -> AvatarProfile:
        return await state_store.save_avatar_profile(args)

    async def save_memory(args: SaveMemoryArgs) -> List[MemoryItem]:
        return await state_store.save_memory(args.type, args.content)

    async def research_web(args: ResearchWebArgs) -> ResearchResult:
        return matcher.search(args.query)

    async def get_avatar_state(args: NoArgs) -> AgentState:
        return await state_store.get_state()

    async def reset_avatar(args: NoArgs) -> dict:
        await state_store.reset()
        return {"reset": True, "message": "Avatar profile and memories cleared"}

    return [
        ToolDefinition(
            name="saveAvatarProfile",
            description="Create or update the user's avatar: display name, bio, tone "
                        "(casual/professional/playful/technical) and expertise tags. "
                        "Omitted fields keep their current value.",
            args_model=AvatarProfileUpdate,
            handler=save_avatar_profile,
            category="avatar",
        ),
        ToolDefinition(
            name="saveMemory",
            description="Store a preference, task or note about the user for later turns.",
            args_model=SaveMemoryArgs,
            handler=save_memory,
            category="memory",
        ),
        ToolDefinition(
            name="researchWeb",
            description="Search docs.percify.io for documentation on Percify features.",
            args_model=ResearchWebArgs,
            handler=research_web,
            category="research",
        ),
        ToolDefinition(
            name="getAvatarState",
            description="Read the current avatar profile and the five most recent memories.",
            args_model=NoArgs,
            handler=get_avatar_state,
            category="avatar",
        ),
        ToolDefinition(
            name="resetAvatar",
            description="Clear the avatar profile and all memories. The user must confirm.",
            args_model=NoArgs,
            handler=reset_avatar,
            requires_confirmation=True,
            category="avatar",
        ),
    ]
