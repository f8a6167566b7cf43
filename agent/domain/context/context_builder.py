from typing import Dict

from domain.models.agent_state import AgentState, MemoryItem, Tone, PROMPT_MEMORY_COUNT


TONE_INSTRUCTIONS: Dict[Tone, str] = {
    Tone.CASUAL: "Be friendly, relaxed, and approachable. Use conversational language.",
    Tone.PROFESSIONAL: "Be formal, precise, and business-like. Maintain a professional demeanor.",
    Tone.PLAYFUL: "Be fun, energetic, and use humor when appropriate. Keep things light.",
    Tone.TECHNICAL: "Be detailed, accurate, and use technical terminology. Focus on precision.",
}

BASE_INSTRUCTIONS = """You are Percify Avatar Co-Pilot, a friendly AI assistant that remembers each user's persona and preferences.

## IMPORTANT: Be Helpful and Conversational
- ALWAYS respond helpfully to ANY message, even simple greetings like "hey" or "hello"
- For greetings, introduce yourself warmly and explain what you can do
- NEVER ask for "more details" unless absolutely necessary - be proactive and helpful
- If unsure what the user wants, offer suggestions instead of asking for clarification

## Your Capabilities
1. **Avatar Setup**: Help users create their AI persona (name, bio, tone, expertise)
2. **Memory**: Remember preferences, tasks, and notes for the user
3. **Research**: Look up information from docs.percify.io (official Percify documentation)
4. **Chat**: Have friendly conversations

## How to Respond
- For "hey", "hello", "hi": Greet warmly and introduce your capabilities
- For "create avatar", "set up avatar", etc.: Use the saveAvatarProfile tool to help them create one
- For "remember X", "note that X": Use the saveMemory tool
- For "research X", "look up X", "what is percify", "how does X work": Use the researchWeb tool
- For questions about Percify features: ALWAYS use researchWeb to fetch from docs.percify.io
- For "reset my avatar": Use the resetAvatar tool; the user has to confirm it

## Tools Available
- saveAvatarProfile: Set name, bio, tone (casual/professional/playful/technical), expertiseTags
- saveMemory: Store preferences, tasks, or notes
- researchWeb: Search docs.percify.io for documentation on Percify features
- getAvatarState: Read the current avatar and recent memories
- resetAvatar: Clear the avatar and all memories (requires user confirmation)"""


def format_memory_date(memory: MemoryItem) -> str:
    created = memory.created_at
    return f"{created.month}/{created.day}/{created.year}"


def build_context_block(state: AgentState) -> str:
    """Render the avatar and its most recent memories"""

    lines = ["## Current Avatar State"]
    avatar = state.avatar
    if avatar:
        lines.append(f"- Name: {avatar.display_name}")
        lines.append(f"- Bio: {avatar.bio or 'Not set'}")
        lines.append(f"- Tone: {avatar.tone.value}")
        expertise = ", ".join(avatar.expertise_tags) if avatar.expertise_tags else "None specified"
        lines.append(f"- Expertise: {expertise}")
    else:
        lines.append("- No avatar profile set yet. The user can create one.")

    lines.append("")
    lines.append("## Recent Memories")
    recent = state.recent_memories(PROMPT_MEMORY_COUNT)
    if recent:
        for memory in recent:
            lines.append(f"- [{memory.type.value}] {memory.content} ({format_memory_date(memory)})")
    else:
        lines.append("- No memories stored yet.")

    return "\n".join(lines) + "\n"


def build_system_prompt(state: AgentState, schedule_context: str = "") -> str:
    """Assemble the system prompt from the latest state; never cached"""

    tone = state.avatar.tone if state.avatar else Tone.CASUAL
    tone_line = f"- Maintain the avatar's tone ({tone.value}): {TONE_INSTRUCTIONS[tone]}"

    sections = [BASE_INSTRUCTIONS, tone_line]
    if schedule_context:
        sections.append(schedule_context)
    sections.append(build_context_block(state))

    return "\n\n".join(sections)
