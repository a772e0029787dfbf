"""
HTML Fragments
==============
Markup for the styled result banner and chat bubbles. Text that comes from
the classification service or from the user is escaped before it is put
into markup rendered with ``unsafe_allow_html``.
"""

from __future__ import annotations

import html

from dermasight.app.schemas import AnalysisResult, ChatMessage


def result_banner_html(result: AnalysisResult) -> str:
    css = "result-high" if result.is_high_risk else "result-normal"
    icon = "⚠️" if result.is_high_risk else "✅"
    return (
        f'<div class="result-banner {css}">'
        f'<span class="result-icon">{icon}</span>'
        f'<div><span class="result-label">{html.escape(result.disease_name)}</span><br/>'
        f'<span>{result.confidence}% Confidence</span></div>'
        f'</div>'
    )


def chat_bubble_html(msg: ChatMessage) -> str:
    css = "chat-user" if msg.role == "user" else "chat-bot"
    return f'<div class="{css}"><span class="chat-bubble">{html.escape(msg.message)}</span></div>'
