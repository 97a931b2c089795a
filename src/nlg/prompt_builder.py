"""Build the single instruction string sent to the backend each turn."""
from __future__ import annotations

from typing import Optional, Sequence

from src.nlg.prompt_templates import (
    CONSEQUENCE_TASK,
    OPENING_TASK,
    RECENT_CONTEXT,
    STYLE_CONTRACT,
)

PROMPT_HISTORY_WINDOW = 2


def build_prompt(
    topic: Optional[str],
    history: Sequence[str],
    action: Optional[str],
    is_first_turn: bool,
) -> str:
    """Return the prompt for one turn.

    *history* holds serialized history entries, oldest first; only the last
    two are embedded, and only on later turns. Pure and total: a missing
    topic still produces a prompt.
    """
    topic = topic or ""
    base = STYLE_CONTRACT.format(topic=topic)

    if is_first_turn:
        return f"{base}\n\n{OPENING_TASK.format(topic=topic)}"

    recent = list(history)[-PROMPT_HISTORY_WINDOW:]
    parts = [base]
    if recent:
        parts.append(RECENT_CONTEXT.format(context="\n\n".join(recent)))
    parts.append(CONSEQUENCE_TASK.format(action=action or ""))
    return "\n\n".join(parts)
