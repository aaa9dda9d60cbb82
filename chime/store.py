"""
Chat and message listings from chat.db.

Rows are turned into Chat/Message entities with timestamps converted,
attributedBody decoded when the text column is empty, and participant
identifiers resolved to names.

Design Decisions:
    1. chat.db is opened per call and closed right after
    2. Everything is read-only except mark_read()
    3. A row that fails conversion is logged and skipped; the rest of the
       listing is still returned
    4. Participants for all chats come from one batched query
"""

import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from chime import queries
from chime.config import Config
from chime.database import ChatDatabase
from chime.decoder import decode_attributed_body
from chime.errors import StoreIOError
from chime.models import Chat, Message
from chime.utils import apple_ns_to_datetime

logger = logging.getLogger(__name__)

GROUP_CHAT_PREFIX = "chat"


def _no_resolution(identifier: str) -> str:
    return ""


def is_group_identifier(chat_identifier: str) -> bool:
    """Group chats carry identifiers like 'chat123456789'."""
    return chat_identifier.startswith(GROUP_CHAT_PREFIX)


def message_text(text: Optional[str], attributed_body: Optional[bytes]) -> str:
    """Prefer the plain text column, falling back to the attributedBody blob."""
    if text:
        return text
    if attributed_body:
        return decode_attributed_body(attributed_body)
    return ""


def _require_str(value: Any, column: str) -> str:
    if not isinstance(value, str):
        raise TypeError(f"{column} is {type(value).__name__}, expected text")
    return value


def _require_int(value: Any, column: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{column} is {type(value).__name__}, expected integer")
    return value


def _blob(value: Any) -> Optional[bytes]:
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    raise TypeError(f"attributedBody is {type(value).__name__}, expected blob")


def chat_from_row(row: Tuple[Any, ...]) -> Chat:
    """
    Build a Chat from a queries.list_chats() row.

    Raises:
        TypeError, ValueError: If a column holds an unexpected value.
    """
    rowid, chat_identifier, display_name, text, attributed_body, date_ns, unread = row

    chat_identifier = _require_str(chat_identifier, "chat_identifier")
    unread_count = _require_int(unread, "unread_count")

    return Chat(
        rowid=_require_int(rowid, "ROWID"),
        chat_identifier=chat_identifier,
        display_name=_require_str(display_name, "display_name"),
        last_message=message_text(_require_str(text, "text"), _blob(attributed_body)),
        last_time=apple_ns_to_datetime(_require_int(date_ns, "date")),
        unread_count=unread_count,
        is_group=is_group_identifier(chat_identifier),
        has_unread=unread_count > 0,
    )


def message_from_row(row: Tuple[Any, ...], chat_id: int) -> Message:
    """
    Build a Message from a queries.list_messages() row.

    The handle is left as the raw sender identifier.

    Raises:
        TypeError, ValueError: If a column holds an unexpected value.
    """
    rowid, guid, text, attributed_body, handle, is_from_me, date_ns, attachment = row

    if attachment is not None:
        attachment = _require_str(attachment, "attachment filename")

    return Message(
        rowid=_require_int(rowid, "ROWID"),
        guid=_require_str(guid, "guid"),
        text=message_text(_require_str(text, "text"), _blob(attributed_body)),
        handle=_require_str(handle, "handle"),
        is_from_me=bool(is_from_me),
        date=apple_ns_to_datetime(date_ns),
        chat_id=chat_id,
        attachment_path=attachment or None,
    )


class MessageStore:
    """Reads chats and messages from chat.db and performs the mark-read update."""

    def __init__(
        self,
        config_or_path: Union[Config, str, Path],
        resolver: Optional[Callable[[str], str]] = None,
    ):
        """
        Args:
            config_or_path: Config (its db_path is used) or a chat.db path.
            resolver: identifier → name callable; "" means unresolved.
        """
        if isinstance(config_or_path, Config):
            if config_or_path.db_path is None:
                raise StoreIOError("Database path not configured")
            self.db_path = config_or_path.db_path
        else:
            self.db_path = Path(config_or_path).expanduser()
        self.resolver = resolver or _no_resolution

    def _resolve(self, identifier: str) -> str:
        return self.resolver(identifier) if identifier else ""

    def open_read_only(self) -> ChatDatabase:
        """
        Open chat.db for reading.

        Raises:
            StoreIOError: If the file is missing, locked or unreadable.
        """
        db = ChatDatabase(self.db_path, read_only=True)
        db.connect()
        return db

    def open_read_write(self) -> ChatDatabase:
        """
        Open chat.db for the mark-read update.

        Raises:
            StoreIOError: If the file cannot be opened for writing.
        """
        db = ChatDatabase(self.db_path, read_only=False)
        db.connect()
        return db

    def fetch_participants(
        self, db: ChatDatabase, chat_ids: Sequence[int]
    ) -> Dict[int, List[str]]:
        """
        Fetch participant handles for many chats in batched queries.

        Returns:
            Mapping of chat ROWID → sorted participant identifiers.
        """
        participants: Dict[int, List[str]] = {}
        for chunk in queries.chunk_ids(list(chat_ids)):
            query, params = queries.chat_participants(chunk)
            for row in db.execute_query(query, params):
                chat_id, handle = row
                if not isinstance(chat_id, int) or not isinstance(handle, str) or not handle:
                    logger.debug(f"Skipping participant row {row!r}")
                    continue
                participants.setdefault(chat_id, []).append(handle)
        return participants

    def _group_display_name(self, participants: List[str]) -> str:
        names = [self._resolve(p) or p for p in participants]
        return ", ".join(names)

    def list_chats(self) -> List[Chat]:
        """
        List all chats, most recently active first.

        Raises:
            StoreIOError: If chat.db cannot be opened or queried.
        """
        with self.open_read_only() as db:
            rows = db.execute_query(queries.list_chats())

            chats: List[Chat] = []
            for row in rows:
                try:
                    chats.append(chat_from_row(row))
                except (TypeError, ValueError) as e:
                    logger.warning(f"Skipping chat row {row[0] if row else '?'}: {e}")

            participants = self.fetch_participants(db, [chat.rowid for chat in chats])

        for chat in chats:
            if chat.is_group:
                chat.participants = participants.get(chat.rowid, [])
                if not chat.display_name and chat.participants:
                    chat.display_name = self._group_display_name(chat.participants)
            else:
                # a direct chat's only participant is the other party
                chat.participants = [chat.chat_identifier]

            if not chat.display_name:
                chat.display_name = self._resolve(chat.chat_identifier) or chat.chat_identifier

        logger.info(f"Listed {len(chats)} chats")
        return chats

    def list_messages(self, chat_id: int) -> List[Message]:
        """
        List the messages of one chat, oldest first.

        Senders other than the user are replaced by their resolved names.

        Raises:
            StoreIOError: If chat.db cannot be opened or queried.
        """
        query, params = queries.list_messages(chat_id)
        with self.open_read_only() as db:
            rows = db.execute_query(query, params)

        messages: List[Message] = []
        for row in rows:
            try:
                message = message_from_row(row, chat_id)
            except (TypeError, ValueError) as e:
                logger.warning(f"Skipping message row {row[0] if row else '?'}: {e}")
                continue

            if not message.is_from_me and message.handle:
                name = self._resolve(message.handle)
                if name:
                    message.handle = name
            messages.append(message)

        logger.debug(f"Listed {len(messages)} messages for chat {chat_id}")
        return messages

    def mark_read(self, chat_id: int) -> int:
        """
        Mark every unread incoming message of a chat as read.

        Returns:
            Number of messages changed; 0 when nothing was unread.

        Raises:
            StoreIOError: If chat.db cannot be opened for writing or the
                update fails.
        """
        query, params = queries.mark_chat_read(chat_id)
        with self.open_read_write() as db:
            changed = db.execute_write(query, params)
        logger.info(f"Marked {changed} messages read in chat {chat_id}")
        return changed
