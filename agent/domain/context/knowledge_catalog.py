from typing import List

from domain.models.agent_state import DocumentEntry


GETTING_STARTED = DocumentEntry(
    key="getting_started",
    title="Getting Started",
    content=(
        "Welcome to Percify! Start by creating your avatar: tell me your name and preferred tone. "
        "Then save some preferences so I remember your style. Try: '1) Create avatar named Alex with "
        "professional tone, 2) Remember I prefer TypeScript, 3) Research how memory works'. "
        "Your data persists across sessions!"
    ),
    path="/docs/getting-started",
)


# Percify documentation, in search order
PERCIFY_DOCS: List[DocumentEntry] = [
    DocumentEntry(
        key="avatar",
        title="Avatar Setup Guide",
        content=(
            "Percify Avatar Co-Pilot lets you create a personalized AI persona. Your avatar includes: "
            "displayName (your preferred name), bio (a short description), tone "
            "(casual/professional/playful/technical), and expertiseTags (your areas of expertise). "
            "Use the command 'create my avatar as [name]' or 'set my tone to professional' to customize "
            "your experience. Avatars persist across sessions."
        ),
        path="/docs/avatar-guide",
    ),
    DocumentEntry(
        key="memory",
        title="Memory System",
        content=(
            "Percify stores three types of memories: tasks (things to do), preferences (your likes/settings), "
            "and notes (general information). Say 'remember that I prefer dark mode' or 'note: meeting at 3pm'. "
            "Memories are stored persistently and limited to 50 items with automatic cleanup of oldest entries. "
            "Access recent memories anytime - they're included in your avatar context."
        ),
        path="/docs/memory-system",
    ),
    DocumentEntry(
        key="tone",
        title="Tone Customization",
        content=(
            "Choose from 4 tone styles: CASUAL (friendly, relaxed, conversational), PROFESSIONAL (formal, "
            "precise, business-like), PLAYFUL (fun, energetic, humorous), TECHNICAL (detailed, accurate, uses "
            "technical terms). Change anytime with 'set my tone to [style]'. Your tone affects how Percify "
            "responds to all your messages."
        ),
        path="/docs/customization/tone",
    ),
    DocumentEntry(
        key="tools",
        title="Available Tools",
        content=(
            "Percify has 4 core tools: 1) saveAvatarProfile - Create/update your avatar (name, bio, tone, "
            "expertise). 2) saveMemory - Store preferences, tasks, or notes. 3) researchWeb - Look up "
            "information from Percify docs. 4) getAvatarState - View current avatar and recent memories. "
            "Plus scheduling tools for reminders and recurring tasks."
        ),
        path="/docs/tools-reference",
    ),
    DocumentEntry(
        key="schedule",
        title="Scheduling & Reminders",
        content=(
            "Schedule tasks with natural language: 'remind me in 1 hour to check email' or 'schedule a "
            "standup reminder at 9am'. View scheduled tasks with 'show my schedules' and cancel with "
            "'cancel schedule [id]'."
        ),
        path="/docs/scheduling",
    ),
    GETTING_STARTED,
    DocumentEntry(
        key="architecture",
        title="Technical Architecture",
        content=(
            "Percify runs as an async Python service: a language model for inference, a per-session state "
            "store for your avatar and memories, WebSockets for real-time chat, and a step orchestrator that "
            "resolves tool calls before streaming the final reply."
        ),
        path="/docs/architecture",
    ),
    DocumentEntry(
        key="api",
        title="API Reference",
        content=(
            "REST Endpoints: GET /api/avatar-state returns current avatar and last 5 memories. "
            "GET /check-open-ai-key returns provider status. WebSocket connects at /ws/agent for real-time "
            "messaging. All endpoints return JSON. Each session id owns its own avatar and memories."
        ),
        path="/docs/api-reference",
    ),
    DocumentEntry(
        key="expertise",
        title="Expertise Tags",
        content=(
            "Add expertise tags to your avatar to help Percify understand your background. Examples: "
            "'TypeScript', 'React', 'DevOps', 'Machine Learning'. Set with 'my expertise is [tag1], [tag2], "
            "[tag3]'. Tags help contextualize responses and can be used for personalized recommendations."
        ),
        path="/docs/customization/expertise",
    ),
    DocumentEntry(
        key="troubleshooting",
        title="Troubleshooting",
        content=(
            "Common issues: 1) Avatar not saving? Ensure you provide at least a name. 2) Memories full? "
            "Oldest are auto-deleted after 50 items. 3) Slow responses? Check network connection. 4) Wrong "
            "tone? Say 'change tone to [style]'. 5) Reset everything? Say 'reset my avatar' to start fresh."
        ),
        path="/docs/troubleshooting",
    ),
]
