"""
chime - message-store access and contact resolution for a terminal Messages client.

This package provides functionality to:
- Read chats and messages from macOS chat.db (read-only, plus mark-read)
- Recover message text from attributedBody blobs
- Keep user-defined contacts as YAML records with a cached reverse index
- Resolve phone numbers and emails to names across several sources
"""

__version__ = "0.1.0"

from chime.config import Config, get_config
from chime.directory import ContactCache, ContactDirectory
from chime.errors import ChimeError, NotFoundError, ParseError, StoreIOError, ValidationError
from chime.models import Chat, Contact, Message
from chime.normalizers import normalize_identifier
from chime.resolution import ContactResolver, build_resolver
from chime.store import MessageStore

__all__ = [
    "Config",
    "get_config",
    "ContactCache",
    "ContactDirectory",
    "ChimeError",
    "NotFoundError",
    "ParseError",
    "StoreIOError",
    "ValidationError",
    "Chat",
    "Contact",
    "Message",
    "normalize_identifier",
    "ContactResolver",
    "build_resolver",
    "MessageStore",
]
