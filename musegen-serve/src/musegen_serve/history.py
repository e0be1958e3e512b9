"""Per-chat history stored as JSON files next to the generated audio.

Layout::

    <data_dir>/chats/<chat_id>/<timestamp_ns>_<id>_<0|1>.json

The trailing digit is 1 for entries written on behalf of the model. File
names sort in write order, so loading a chat is a directory listing.
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from musegen_serve.schemas import AiChatEntry, ChatEntry, UserChatEntry

logger = logging.getLogger(__name__)

CHATS_SUBDIR = "chats"

_entry_adapter: TypeAdapter[ChatEntry] = TypeAdapter(ChatEntry)


def job_key(chat_id: str, job_id: str) -> str:
    """Backend job id for *job_id* within *chat_id*."""
    return f"{chat_id}:{job_id}"


def split_job_key(key: str) -> tuple[str | None, str]:
    """Inverse of :func:`job_key`.

    Returns ``(None, key)`` when *key* is not a pair of UUIDs, so jobs
    submitted without a chat still convert to messages.
    """
    chat_id, sep, job_id = key.partition(":")
    if not sep:
        return None, key
    try:
        return str(uuid.UUID(chat_id)), str(uuid.UUID(job_id))
    except ValueError:
        return None, key


class ChatHistory:
    """Append-only store of user prompts and generation outcomes."""

    def __init__(self, data_dir: str | Path) -> None:
        self.root = Path(data_dir) / CHATS_SUBDIR

    def _chat_dir(self, chat_id: str) -> Path:
        # Only canonical UUIDs become directory names.
        return self.root / str(uuid.UUID(str(chat_id)))

    def save(self, entry: UserChatEntry | AiChatEntry) -> Path:
        chat_dir = self._chat_dir(entry.chat_id)
        chat_dir.mkdir(parents=True, exist_ok=True)
        is_ai = int(entry.type == "ai")
        path = chat_dir / f"{time.time_ns():020d}_{uuid.UUID(entry.id)}_{is_ai}.json"
        path.write_text(entry.model_dump_json(), encoding="utf-8")
        return path

    def load(self, chat_id: str) -> list[UserChatEntry | AiChatEntry]:
        """Entries of *chat_id*, oldest first; empty for an unknown chat."""
        chat_dir = self._chat_dir(chat_id)
        if not chat_dir.is_dir():
            return []

        entries = []
        for path in sorted(chat_dir.glob("*.json")):
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
                entries.append(_entry_adapter.validate_python(data))
            except (OSError, json.JSONDecodeError, ValidationError) as e:
                logger.warning("Skipping unreadable chat entry %s: %s", path, e)
        return entries
