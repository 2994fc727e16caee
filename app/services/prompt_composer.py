"""
PROMPT COMPOSER MODULE
======================

Builds everything the generation backend needs besides the new message itself:

  build_system_instruction(ruleset, role) - project rules + role directive, as one string.
  build_history(prior_turns, window_size) - the last N turns as {role, text} entries.

Both are pure functions: no I/O, no clock, no randomness. The same inputs always
produce the same output, so callers can cache or retry without re-deriving prompts.

Neither function raises on bad input. Missing ruleset fields are rendered as empty
sections and an unrecognised role gets the generic directive.
"""

from collections.abc import Mapping
from typing import Any, Dict, Iterable, List, Optional, Union

from app.models import AgentRole, ChatTurn, HistoryEntry, ProjectRuleset, Sender
from config import MAX_CHAT_HISTORY_TURNS

DEFAULT_HISTORY_WINDOW = MAX_CHAT_HISTORY_TURNS

# ==============================================================================
# ROLE DIRECTIVES
# ==============================================================================
# Every AgentRole member must have an entry here (tests/test_prompt_composer.py checks it).

ROLE_DIRECTIVES: Dict[AgentRole, str] = {
    AgentRole.PM: (
        "Focus on structuring meeting minutes, estimating schedules, "
        "and capturing the intent behind each request."
    ),
    AgentRole.DEV: (
        "Avoid libraries outside the declared tech stack. "
        "Write production-quality code that actually runs."
    ),
    AgentRole.DESIGNER: (
        "Put UI/UX usability first, and express styling suggestions as "
        "utility classes of the declared UI framework (e.g. Tailwind CSS)."
    ),
}

DEFAULT_DIRECTIVE = "Answer sincerely and diligently."

SECTION_TECH_STACK = "[Tech Stack]"
SECTION_CONVENTION = "[Coding Convention]"
SECTION_TONE = "[Tone & Manner]"
SECTION_CUSTOM = "[Additional Instructions]"
SECTION_ROLE = "[Role Directive]"

RulesetLike = Union[ProjectRuleset, Mapping, None]


# ==============================================================================
# INPUT NORMALISATION
# ==============================================================================

def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _as_stack(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    try:
        items = list(value)
    except TypeError:
        return []
    return [_as_text(item) for item in items if _as_text(item).strip()]


def _ruleset_field(ruleset: RulesetLike, attr: str, wire_key: str) -> Any:
    """Read a field from a ProjectRuleset, a wire-shaped dict, or a snake_case dict."""
    if ruleset is None:
        return None
    if isinstance(ruleset, Mapping):
        if wire_key in ruleset:
            return ruleset[wire_key]
        return ruleset.get(attr)
    return getattr(ruleset, attr, None)


def resolve_role(role: Any) -> Optional[AgentRole]:
    """Map an AgentRole or its string value to the enum; None for anything else."""
    if isinstance(role, AgentRole):
        return role
    try:
        return AgentRole(role)
    except (ValueError, TypeError):
        return None


# ==============================================================================
# SYSTEM INSTRUCTION
# ==============================================================================

def role_directive(role: Any) -> str:
    """Return the directive for a role. Total: unknown roles get DEFAULT_DIRECTIVE."""
    resolved = resolve_role(role)
    if resolved is None:
        return DEFAULT_DIRECTIVE
    return ROLE_DIRECTIVES.get(resolved, DEFAULT_DIRECTIVE)


def build_system_instruction(ruleset: RulesetLike, role: Any) -> str:
    """
    Build the system instruction for one agent turn.

    The tech stack (joined with ", "), convention, tone and custom instructions are
    embedded verbatim, each under its own labelled section, followed by the
    role-specific directive.
    """
    tech_stack = ", ".join(_as_stack(_ruleset_field(ruleset, "tech_stack", "techStack")))
    convention = _as_text(_ruleset_field(ruleset, "convention", "convention"))
    tone = _as_text(_ruleset_field(ruleset, "tone", "tone"))
    custom = _as_text(_ruleset_field(ruleset, "custom_instructions", "customInstructions"))

    resolved = resolve_role(role)
    role_label = resolved.value if resolved else _as_text(role)

    lines = [
        f"You are an AI agent acting in the '{role_label}' role.",
        "Follow the project rules (Ruleset) below strictly when answering.",
        "",
        SECTION_TECH_STACK,
        tech_stack,
        "",
        SECTION_CONVENTION,
        convention,
        "",
        SECTION_TONE,
        tone,
        "",
        SECTION_CUSTOM,
        custom,
        "",
        SECTION_ROLE,
        role_directive(role),
    ]
    return "\n".join(lines)


# ==============================================================================
# HISTORY
# ==============================================================================

def _turn_fields(turn: Union[ChatTurn, Mapping]) -> tuple:
    if isinstance(turn, Mapping):
        return turn.get("sender"), turn.get("text")
    return getattr(turn, "sender", None), getattr(turn, "text", None)


def build_history(
    prior_turns: Iterable[Union[ChatTurn, Mapping]],
    window_size: int = DEFAULT_HISTORY_WINDOW,
) -> List[HistoryEntry]:
    """
    Return the last window_size turns, oldest first, as {role, text} entries.

    User turns map to "user", everything else (agent turns, or "ai" from the web
    client) to "model". Turns beyond the window are dropped, not summarized.
    """
    if window_size is None or window_size <= 0:
        return []
    recent = list(prior_turns)[-window_size:]
    history = []
    for turn in recent:
        sender, text = _turn_fields(turn)
        role = "user" if sender in (Sender.USER, Sender.USER.value) else "model"
        history.append(HistoryEntry(role=role, text=_as_text(text)))
    return history
