"""Conversation history: append-only JSONL log of chat messages."""

import json
import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).parent.parent.parent / "data"
CONVERSATION_PATH = DATA_DIR / "conversation" / "messages.jsonl"

WELCOME_MESSAGE = (
    "Hi! I'm your personal training coach.\n\n"
    "I'll help you prepare for your goal. To get started, tell me:\n\n"
    "- What is your goal? (Marathon, half marathon, 10K, trail...)\n"
    "- When is the race?\n"
    "- What is your current level?"
)

ERROR_MESSAGE = "Oops, I had a connection problem. Try again in a few seconds!"

ADJUST_INVITATION = (
    "I'm ready to adapt your plan. What would you like to change? (days, intensity, duration...)"
)


@dataclass
class ConversationMessage:
    content: str
    from_user: bool
    timestamp: datetime = field(default_factory=datetime.now)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def role(self) -> str:
        return "user" if self.from_user else "assistant"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "content": self.content,
            "from_user": self.from_user,
            "timestamp": self.timestamp.isoformat(timespec="seconds"),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ConversationMessage":
        return cls(
            id=data["id"],
            content=data["content"],
            from_user=bool(data["from_user"]),
            timestamp=datetime.fromisoformat(data["timestamp"]),
        )


class ConversationLog:
    """Time-ordered message history persisted one JSON object per line."""

    def __init__(self, path: str | Path | None = None):
        self._path = Path(path) if path else CONVERSATION_PATH
        self._lock = threading.Lock()

    def append(self, message: ConversationMessage) -> ConversationMessage:
        with self._lock:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(self._path, "a") as f:
                f.write(json.dumps(message.to_dict()) + "\n")
        return message

    def add_user_message(self, content: str) -> ConversationMessage:
        return self.append(ConversationMessage(content=content, from_user=True))

    def add_assistant_message(self, content: str) -> ConversationMessage:
        return self.append(ConversationMessage(content=content, from_user=False))

    def messages(self) -> list[ConversationMessage]:
        """All messages, oldest first."""
        if not self._path.exists():
            return []
        result = []
        with self._lock, open(self._path) as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    result.append(ConversationMessage.from_dict(json.loads(line)))
                except (json.JSONDecodeError, KeyError, ValueError):
                    logger.warning("Skipping unreadable conversation line in %s", self._path)
        result.sort(key=lambda m: m.timestamp)
        return result

    def recent(self, n: int) -> list[ConversationMessage]:
        return self.messages()[-n:] if n > 0 else []

    def clear(self) -> None:
        """Bulk reset, only on explicit user request."""
        with self._lock:
            self._path.unlink(missing_ok=True)
