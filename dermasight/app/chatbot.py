"""
DermaBot canned replies. Not a dialogue system: the reply is a pure
function of the condition name and how many questions were asked.
"""

from __future__ import annotations

from typing import Sequence

from dermasight.app.schemas import ChatMessage

GREETING = (
    "Hi! I'm DermaBot 👋 I can explain your results and answer questions "
    "about skin health."
)

_REPLIES = (
    "Based on your diagnosis of {disease}, it's important to follow the "
    "recommendations provided. Would you like more details?",
    "Skin conditions can vary widely. The confidence score indicates how "
    "certain the AI is about this diagnosis.",
    "Remember, this is an AI analysis. Always consult with a dermatologist "
    "for professional medical advice.",
    "I recommend keeping track of any changes and consulting a healthcare "
    "provider if symptoms persist or worsen.",
)


def greeting() -> ChatMessage:
    return ChatMessage(role="bot", message=GREETING)


def bot_reply(disease_name: str, history: Sequence[ChatMessage]) -> ChatMessage:
    asked = sum(1 for m in history if m.role == "user")
    template = _REPLIES[max(asked - 1, 0) % len(_REPLIES)]
    return ChatMessage(role="bot", message=template.format(disease=disease_name))


def send(disease_name: str, history: Sequence[ChatMessage], text: str) -> list[ChatMessage]:
    """Append the user's message and the bot's answer; blank input is ignored."""
    if not text.strip():
        return list(history)
    updated = [*history, ChatMessage(role="user", message=text.strip())]
    return updated + [bot_reply(disease_name, updated)]
