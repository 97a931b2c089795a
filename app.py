"""AI Adventure Engine – Gradio chat-based text adventure UI.

Layout (gr.Blocks):
  Topic row:   topic box + start button
  Story:       chat transcript + choice Radio + free-text input
  Status row:  mode / advisory line, restart, API key box (shown on request)
"""
from __future__ import annotations

import logging
import os
import sys

import gradio as gr

# Ensure project root is on the path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from config import settings
from src.engine.game_engine import TurnOrchestrator
from src.engine.state import Message, MessageKind, Mode
from src.nlg.response_normalizer import Choice, RecoveryAction

logger = logging.getLogger(__name__)

# ── Global orchestrator (lazy, one per process) ──────────────────────────
_orchestrator: TurnOrchestrator | None = None
_startup_checked = False


def _get_orchestrator() -> TurnOrchestrator:
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = TurnOrchestrator()
    return _orchestrator


# ── Helpers ──────────────────────────────────────────────────────────────

def _message_to_chat(message: Message) -> dict:
    if message.kind is MessageKind.USER:
        return {"role": "user", "content": message.text}
    if message.kind is MessageKind.NARRATOR:
        speaker = "DEMO NARRATOR" if message.from_fallback else "AI NARRATOR"
        return {"role": "assistant", "content": f"**{speaker}:**\n\n{message.text}"}
    if message.kind is MessageKind.ERROR:
        return {"role": "assistant", "content": f"⚠ *{message.text}*"}
    return {"role": "assistant", "content": f"`{message.text}`"}


def _choices_to_labels(choices: list[Choice]) -> list[str]:
    return [f"[{c.id}] {c.text}" for c in choices]


def _label_to_choice(label: str | None, choices: list[Choice]) -> Choice | None:
    if not label:
        return None
    labels = _choices_to_labels(choices)
    if label in labels:
        return choices[labels.index(label)]
    return None


def _status_line(orchestrator: TurnOrchestrator) -> str:
    state = orchestrator.state
    mode = "DEMO" if state.mode is Mode.FALLBACK else "AI"
    line = f"**TOPIC:** {state.topic.upper() or '—'} | **TURNS:** {len(state.history)} | **MODE:** {mode}"
    if state.last_error:
        line += f"\n\n⚠ {state.last_error}"
    return line


def _render():
    orchestrator = _get_orchestrator()
    state = orchestrator.state
    chat = [_message_to_chat(m) for m in state.transcript]
    show_key_box = state.awaiting_credential or state.mode is Mode.FALLBACK
    return (
        chat,
        gr.update(choices=_choices_to_labels(state.choices), value=None, visible=bool(state.choices)),
        _status_line(orchestrator),
        gr.update(visible=show_key_box),
    )


# ── Callbacks ────────────────────────────────────────────────────────────

async def startup_check():
    global _startup_checked
    if not _startup_checked:
        _startup_checked = True
        await _get_orchestrator().run_startup_check()
    return _render()


async def start_game(topic: str):
    orchestrator = _get_orchestrator()
    if topic and topic.strip():
        await orchestrator.start_session(topic)
    return _render()


async def submit_action(user_text: str):
    await _get_orchestrator().submit_action(user_text)
    return _render()


async def choose_option(selected: str | None):
    orchestrator = _get_orchestrator()
    choice = _label_to_choice(selected, orchestrator.state.choices)
    if choice is not None:
        await orchestrator.select_choice(choice)
    return _render()


async def restart_game():
    _get_orchestrator().restart()
    return _render()


async def update_api_key(api_key: str):
    await _get_orchestrator().update_credential(api_key)
    return _render()


async def check_connection():
    await _get_orchestrator().select_choice(
        Choice("0", "Check connection", RecoveryAction.CHECK_CONNECTION)
    )
    return _render()


# ── UI Layout ────────────────────────────────────────────────────────────

def build_ui() -> gr.Blocks:
    with gr.Blocks(
        title="AI Adventure Engine",
        theme=gr.themes.Monochrome(primary_hue="green"),
    ) as demo:
        gr.Markdown("# AI ADVENTURE ENGINE\n*Enter a topic, genre, or setting: \"space exploration\", \"medieval fantasy\", \"cyberpunk detective\"…*")

        with gr.Row():
            topic_box = gr.Textbox(placeholder="Enter your story topic...", label="Topic", scale=4)
            start_btn = gr.Button("► INITIALIZE ADVENTURE", variant="primary", scale=1)

        status_md = gr.Markdown(_status_line(_get_orchestrator()))
        chatbot = gr.Chatbot(label="Story", type="messages", height=480)
        option_radio = gr.Radio(
            choices=[], label="AVAILABLE ACTIONS", interactive=True, visible=False,
        )
        with gr.Row():
            user_input = gr.Textbox(
                placeholder="Type your action or command...",
                label="Your action", scale=4, lines=1,
            )
            send_btn = gr.Button("► EXECUTE", variant="primary", scale=1)

        with gr.Row():
            restart_btn = gr.Button("► RESTART")
            reconnect_btn = gr.Button("Check connection")

        with gr.Row(visible=False) as key_row:
            key_box = gr.Textbox(label="Google AI Studio API Key", type="password", placeholder="AIzaSy...", scale=4)
            key_btn = gr.Button("TEST CONNECTION", scale=1)

        outputs = [chatbot, option_radio, status_md, key_row]

        # ── Wiring ──
        demo.load(fn=startup_check, outputs=outputs)
        start_btn.click(fn=start_game, inputs=[topic_box], outputs=outputs)
        topic_box.submit(fn=start_game, inputs=[topic_box], outputs=outputs)

        send_btn.click(fn=submit_action, inputs=[user_input], outputs=outputs).then(
            fn=lambda: "", outputs=user_input
        )
        user_input.submit(fn=submit_action, inputs=[user_input], outputs=outputs).then(
            fn=lambda: "", outputs=user_input
        )
        option_radio.input(fn=choose_option, inputs=[option_radio], outputs=outputs)

        restart_btn.click(fn=restart_game, outputs=outputs)
        reconnect_btn.click(fn=check_connection, outputs=outputs)
        key_btn.click(fn=update_api_key, inputs=[key_box], outputs=outputs).then(
            fn=lambda: "", outputs=key_box
        )

    return demo


if __name__ == "__main__":
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    demo = build_ui()
    demo.launch(server_name="0.0.0.0", server_port=settings.GRADIO_PORT, share=False)
