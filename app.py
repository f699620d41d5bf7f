"""
AI Life Coach: Gradio UI
========================
Single-file Gradio Blocks application for the chat client.
Replies stream from the relay (backend/main.py) through the ChatController;
conversations live in the local SQLite-backed ConversationStore.
"""

import sys, os, logging
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "backend"))

import gradio as gr
from database import init_db
from services.chat_controller import BUSY_MESSAGE, ChatController
from services.history import ConversationStore, SqlSlot, snippet
from services.stream_consumer import RelayClient
from settings import settings

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def build_controller() -> ChatController:
    init_db()
    store = ConversationStore(SqlSlot(), system_prompt=settings.get_system_prompt()).load()
    client = RelayClient(
        settings.get_relay_url(),
        timeout=settings.get_request_timeout(),
        supports_streaming=settings.get_client_streaming(),
    )
    return ChatController(store, client)


# ---------------------------------------------------------------------------
# Sidebar helpers
# ---------------------------------------------------------------------------
def _conversation_choices(controller: ChatController) -> list[tuple[str, int]]:
    choices = []
    for conv in controller.store.list_conversations():
        label = f"{conv.title}  ·  {snippet(conv)}  ({conv.last_activity.isoformat()})"
        choices.append((label, conv.id))
    return choices


def _sidebar(controller: ChatController):
    choices = _conversation_choices(controller)
    return (
        gr.update(choices=choices, value=controller.store.active_id),
        gr.update(choices=choices, value=[]),
    )


# ---------------------------------------------------------------------------
# Chat turn
# ---------------------------------------------------------------------------
async def stream_turn(controller: ChatController, text: str, chat_history: list):
    """Streams one reply; yields (chat_history, input_value)."""
    if not text or not text.strip():
        yield chat_history, text
        return

    store = controller.store
    if controller.is_sending(store.active_id):
        # Nothing is stored, so keep the draft in the input box
        yield (chat_history or []) + [{"role": "assistant", "content": BUSY_MESSAGE}], text
        return

    shown = controller.transcript() if len(store.active.turns) > 1 else []
    shown.append({"role": "user", "content": text.strip()})
    yield shown, ""

    async for snapshot in controller.on_send(text):
        yield shown + [{"role": "assistant", "content": snapshot}], ""


# ---------------------------------------------------------------------------
# Build Gradio UI
# ---------------------------------------------------------------------------
def create_app(controller: ChatController | None = None):
    controller = controller or build_controller()

    async def chat_handler(text: str, chat_history: list):
        async for update in stream_turn(controller, text, chat_history):
            yield update

    def refresh():
        conv_list, batch_select = _sidebar(controller)
        return controller.transcript(), conv_list, batch_select

    def new_chat():
        controller.on_new_conversation()
        return refresh()

    def select_chat(conv_id):
        if conv_id is not None:
            controller.on_select_conversation(int(conv_id))
        return controller.transcript()

    def delete_chat():
        controller.on_delete_conversation(controller.store.active_id)
        return refresh()

    def batch_delete(conv_ids):
        if not conv_ids:
            gr.Warning("Select the conversations to delete first.")
            return refresh()
        controller.on_delete_conversations(int(i) for i in conv_ids)
        return refresh()

    def rename_chat(title):
        if title and title.strip():
            controller.on_rename_conversation(controller.store.active_id, title)
        conv_list, batch_select = _sidebar(controller)
        return conv_list, batch_select, ""

    def clear_chat():
        controller.on_clear_conversation()
        return refresh()

    with gr.Blocks(title="AI Life Coach", fill_height=True) as app:
        with gr.Row(equal_height=True):
            # ============ SIDEBAR ============
            with gr.Column(scale=1, min_width=280, elem_id="sidebar"):
                gr.Markdown("## 🌱 AI Life Coach")

                new_chat_btn = gr.Button("➕  New conversation", variant="primary", size="lg")

                conv_list = gr.Radio(
                    choices=[],
                    label="Conversations",
                    elem_id="conv-list",
                )

                with gr.Row():
                    delete_btn = gr.Button("🗑️ Delete", size="sm")
                    clear_btn = gr.Button("🧹 Clear", size="sm")

                with gr.Accordion("Rename", open=False):
                    rename_box = gr.Textbox(placeholder="New title…", show_label=False, container=False)
                    rename_btn = gr.Button("Rename", size="sm")

                with gr.Accordion("Batch delete", open=False):
                    batch_select = gr.CheckboxGroup(choices=[], show_label=False)
                    batch_delete_btn = gr.Button("Delete selected", variant="stop", size="sm")

            # ============ MAIN CHAT AREA ============
            with gr.Column(scale=4, min_width=600):
                chatbot = gr.Chatbot(
                    label="AI Life Coach",
                    height="70vh",
                    render_markdown=True,
                    sanitize_html=True,
                )
                msg_input = gr.Textbox(
                    placeholder="Share what's on your mind…",
                    show_label=False,
                    submit_btn=True,
                )

        # ============ EVENT WIRING ============
        sidebar_outputs = [chatbot, conv_list, batch_select]

        msg_input.submit(
            fn=chat_handler,
            inputs=[msg_input, chatbot],
            outputs=[chatbot, msg_input],
        ).then(
            fn=lambda: _sidebar(controller),
            inputs=None,
            outputs=[conv_list, batch_select],
        )

        new_chat_btn.click(fn=new_chat, inputs=None, outputs=sidebar_outputs)
        conv_list.input(fn=select_chat, inputs=conv_list, outputs=chatbot)
        delete_btn.click(fn=delete_chat, inputs=None, outputs=sidebar_outputs)
        clear_btn.click(fn=clear_chat, inputs=None, outputs=sidebar_outputs)
        batch_delete_btn.click(fn=batch_delete, inputs=batch_select, outputs=sidebar_outputs)
        rename_btn.click(fn=rename_chat, inputs=rename_box, outputs=[conv_list, batch_select, rename_box])

        app.load(fn=refresh, inputs=None, outputs=sidebar_outputs)

    return app


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    app = create_app()
    logger.info("AI Life Coach UI talking to relay at %s", settings.get_relay_url())
    app.launch(
        server_name="0.0.0.0",
        server_port=settings.get_ui_port(),
        share=False,
        show_error=True,
    )
