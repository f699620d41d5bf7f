from sqlalchemy import Column, String, Text, DateTime
import datetime
from database import Base


class KeyValueDB(Base):
    """One durable slot: the client store keeps its whole JSON snapshot in a single row."""
    __tablename__ = "key_value_slots"

    key = Column(String, primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime, default=datetime.datetime.utcnow, onupdate=datetime.datetime.utcnow)
