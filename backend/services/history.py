import datetime
import json
import logging
import time
from typing import Callable, Dict, Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from database import SessionLocal
from errors import PersistenceError
from models import db_models
from models.schemas import DEFAULT_TITLE, Conversation, Message
from settings import DEFAULT_SYSTEM_PROMPT

logger = logging.getLogger(__name__)

STORE_KEY = "ai_life_coach_chats"
TITLE_LENGTH = 20
SNIPPET_LENGTH = 50


def read_slot(db: Session, key: str) -> Optional[str]:
    row = db.query(db_models.KeyValueDB).filter(db_models.KeyValueDB.key == key).first()
    return row.value if row else None


def write_slot(db: Session, key: str, value: str):
    row = db.query(db_models.KeyValueDB).filter(db_models.KeyValueDB.key == key).first()
    if row:
        row.value = value
    else:
        db.add(db_models.KeyValueDB(key=key, value=value))
    db.commit()


class SqlSlot:
    """The single durable key/value slot the conversation store is written to."""

    def __init__(self, session_factory=SessionLocal, key: str = STORE_KEY):
        self._session_factory = session_factory
        self.key = key

    def read(self) -> Optional[str]:
        try:
            with self._session_factory() as db:
                return read_slot(db, self.key)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not read conversations: {e}") from e

    def write(self, value: str):
        try:
            with self._session_factory() as db:
                write_slot(db, self.key, value)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not save conversations: {e}") from e


def truncate(text: str, limit: int) -> str:
    return text[:limit] + ("..." if len(text) > limit else "")


def derive_title(text: str) -> str:
    """Title of a conversation, taken from its first user turn."""
    return truncate(text, TITLE_LENGTH)


class ConversationStore:
    """
    All conversations of the local chat client plus the active one.

    Every mutation is written through to the slot. Writes are best effort: a
    failed save is logged and the in-memory state is kept as is.
    """

    def __init__(self, slot: SqlSlot, system_prompt: str = DEFAULT_SYSTEM_PROMPT, clock: Callable[[], float] = time.time):
        self._slot = slot
        self._system_prompt = system_prompt
        self._clock = clock
        self.conversations: Dict[int, Conversation] = {}
        self.active_id: Optional[int] = None

    # --- persistence -------------------------------------------------------

    def load(self) -> "ConversationStore":
        try:
            raw = self._slot.read()
        except PersistenceError as e:
            logger.error("Loading conversations failed: %s", e.message)
            raw = None

        conversations = self._parse(raw) if raw else None
        if not conversations:
            self.conversations = {}
            self._add_default()
            self.save()
        else:
            self.conversations = conversations
            # Resume the most recent conversation
            self.active_id = max(conversations)
        return self

    def save(self):
        payload = {str(cid): conv.model_dump(mode="json") for cid, conv in self.conversations.items()}
        try:
            self._slot.write(json.dumps(payload, ensure_ascii=False))
        except PersistenceError as e:
            logger.error("Saving conversations failed: %s", e.message)

    @staticmethod
    def _parse(raw: str) -> Optional[Dict[int, Conversation]]:
        # No schema versioning: anything structurally off is discarded wholesale
        try:
            data = json.loads(raw)
            if not isinstance(data, dict):
                raise ValueError("stored conversations are not a JSON object")
            parsed = {}
            for key, value in data.items():
                conv = Conversation.model_validate(value)
                if int(key) != conv.id:
                    raise ValueError(f"conversation key {key} does not match id {conv.id}")
                parsed[conv.id] = conv
            return parsed
        except ValueError as e:
            logger.warning("Discarding corrupt conversation store: %s", e)
            return None

    # --- lifecycle ---------------------------------------------------------

    def _next_id(self) -> int:
        candidate = int(self._clock() * 1000)
        if self.conversations:
            candidate = max(candidate, max(self.conversations) + 1)
        return candidate

    def _add_default(self) -> Conversation:
        conv = Conversation(
            id=self._next_id(),
            title=DEFAULT_TITLE,
            turns=[Message(role="system", content=self._system_prompt)],
        )
        self.conversations[conv.id] = conv
        self.active_id = conv.id
        return conv

    def create(self) -> Conversation:
        """Starts a fresh conversation (system turn only) and makes it active."""
        conv = self._add_default()
        self.save()
        return conv

    def get(self, conv_id: int) -> Conversation:
        return self.conversations[conv_id]

    @property
    def active(self) -> Conversation:
        return self.conversations[self.active_id]

    def select(self, conv_id: int) -> Conversation:
        conv = self.conversations[conv_id]
        self.active_id = conv_id
        return conv

    def delete(self, conv_id: int):
        self.delete_many([conv_id])

    def delete_many(self, conv_ids: Iterable[int]):
        doomed = set(conv_ids)
        for conv_id in doomed:
            self.conversations.pop(conv_id, None)

        if self.active_id in doomed:
            if self.conversations:
                self.active_id = max(self.conversations)
            else:
                self._add_default()
        self.save()

    def rename(self, conv_id: int, title: str) -> Conversation:
        title = title.strip()
        if not title:
            raise ValueError("title must not be blank")
        conv = self.conversations[conv_id]
        conv.title = title
        self.save()
        return conv

    def reset(self, conv_id: int) -> Conversation:
        """Drops every turn but the system turn and restores the default title."""
        conv = self.conversations[conv_id]
        conv.turns = conv.turns[:1]
        conv.title = DEFAULT_TITLE
        conv.last_activity = datetime.date.today()
        self.save()
        return conv

    def append_turn(self, conv_id: int, role: str, content: str) -> Message:
        if role not in ("user", "assistant"):
            raise ValueError(f"cannot append a {role} turn")
        conv = self.conversations[conv_id]
        turn = Message(role=role, content=content)
        conv.turns.append(turn)
        conv.last_activity = datetime.date.today()
        self.save()
        return turn

    # --- listing -----------------------------------------------------------

    def list_conversations(self) -> List[Conversation]:
        """Newest first."""
        return sorted(self.conversations.values(), key=lambda c: c.id, reverse=True)


def snippet(conv: Conversation) -> str:
    for role in ("user", "assistant"):
        for turn in conv.turns:
            if turn.role == role:
                return truncate(turn.content, SNIPPET_LENGTH)
    return DEFAULT_TITLE
