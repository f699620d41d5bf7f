import logging
from typing import AsyncIterator, Dict, Iterable, List, Optional

import httpx

from errors import ChatError, EmptyResponseError
from models.schemas import Conversation
from services.history import ConversationStore, derive_title
from services.stream_consumer import RelayClient

logger = logging.getLogger(__name__)

WELCOME_MESSAGE = (
    "Hello! I'm your AI Life Coach\n\n"
    "Nice to meet you! I can be your partner in growth, helping you work through the problems "
    "in your life and offering advice and support.\n\n"
    "Tell me about your thoughts, worries or goals, and I'll listen carefully and respond helpfully."
)
BUSY_MESSAGE = "⏳ A reply is still being written for this conversation. Please wait for it to finish."


def error_bubble(cause: str) -> str:
    return f"⚠️ Sorry, something went wrong: {cause}. Please try again later."


def describe_failure(error: Exception) -> str:
    if isinstance(error, ChatError):
        return error.message
    if isinstance(error, httpx.ConnectError):
        return "network connection failed, please check that the server is running"
    if isinstance(error, httpx.TimeoutException):
        return "the request timed out"
    if isinstance(error, httpx.HTTPError):
        return str(error) or type(error).__name__
    return "the response could not be read"


class ChatController:
    """
    Command handlers behind the chat UI.

    The controller owns no widgets: ``on_send`` yields the reply text as it grows
    and the UI shell renders each snapshot as Markdown.
    """

    def __init__(self, store: ConversationStore, client: RelayClient):
        self.store = store
        self.client = client
        self._sending = set()

    def on_new_conversation(self) -> Conversation:
        return self.store.create()

    def on_select_conversation(self, conv_id: int) -> Conversation:
        return self.store.select(conv_id)

    def on_delete_conversation(self, conv_id: int):
        self.store.delete(conv_id)

    def on_delete_conversations(self, conv_ids: Iterable[int]):
        self.store.delete_many(conv_ids)

    def on_rename_conversation(self, conv_id: int, title: str) -> Conversation:
        return self.store.rename(conv_id, title)

    def on_clear_conversation(self) -> Conversation:
        return self.store.reset(self.store.active_id)

    def is_sending(self, conv_id: int) -> bool:
        return conv_id in self._sending

    def transcript(self, conv_id: Optional[int] = None) -> List[Dict[str, str]]:
        """Display messages of a conversation; a welcome message if nothing was said yet."""
        conv = self.store.get(self.store.active_id if conv_id is None else conv_id)
        messages = [{"role": t.role, "content": t.content} for t in conv.turns[1:]]
        return messages or [{"role": "assistant", "content": WELCOME_MESSAGE}]

    async def on_send(self, text: str) -> AsyncIterator[str]:
        text = text.strip()
        if not text:
            return

        conv = self.store.active
        if conv.id in self._sending:
            yield BUSY_MESSAGE
            return

        self._sending.add(conv.id)
        try:
            first_user_turn = not any(t.role == "user" for t in conv.turns)
            user_turn = self.store.append_turn(conv.id, "user", text)
            if first_user_turn:
                self.store.rename(conv.id, derive_title(text))

            history = [t.model_dump() for t in conv.turns]
            reply = ""
            try:
                async for delta in self.client.stream_reply(history):
                    reply += delta
                    yield reply
                if not reply.strip():
                    raise EmptyResponseError("the AI returned no valid response content")
            except (ChatError, httpx.HTTPError, ValueError) as e:
                logger.error("Chat request for conversation %s failed: %r", conv.id, e)
                yield error_bubble(describe_failure(e))
                return

            if conv.id not in self.store.conversations:
                logger.warning("Conversation %s was deleted while its reply streamed; reply dropped", conv.id)
                return
            if not conv.turns or conv.turns[-1] is not user_turn:
                logger.warning("Conversation %s was cleared while its reply streamed; reply dropped", conv.id)
                return
            self.store.append_turn(conv.id, "assistant", reply.strip())
        finally:
            self._sending.discard(conv.id)
