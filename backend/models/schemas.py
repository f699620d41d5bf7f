import datetime
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import List, Literal

DEFAULT_TITLE = "New conversation"


class Message(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Literal["system", "user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    messages: List[Message] = Field(min_length=1)


class Conversation(BaseModel):
    id: int
    title: str = DEFAULT_TITLE
    turns: List[Message]
    last_activity: datetime.date = Field(default_factory=datetime.date.today)

    @field_validator("turns")
    @classmethod
    def starts_with_system_turn(cls, turns: List[Message]) -> List[Message]:
        if not turns or turns[0].role != "system":
            raise ValueError("a conversation must start with exactly one system turn")
        if any(t.role == "system" for t in turns[1:]):
            raise ValueError("only the first turn may be a system turn")
        return turns
