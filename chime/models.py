"""
Entities shared across chime.

Contact is persisted (one YAML record per contact). Chat and Message are
transient and rebuilt from chat.db on every query.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterator, List, Mapping, Optional


@dataclass
class Contact:
    """A user-defined contact from the contacts directory."""

    name: str
    phone_numbers: List[str] = field(default_factory=list)
    emails: List[str] = field(default_factory=list)

    def identifiers(self) -> Iterator[str]:
        """Yield phone numbers, then emails."""
        yield from self.phone_numbers
        yield from self.emails

    def to_record(self) -> Dict[str, Any]:
        """
        Build the persisted document for this contact.

        Empty identifier lists are omitted.
        """
        record: Dict[str, Any] = {"name": self.name}
        if self.phone_numbers:
            record["phone_numbers"] = list(self.phone_numbers)
        if self.emails:
            record["emails"] = list(self.emails)
        return record

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Contact":
        """
        Build a contact from a persisted document.

        Raises:
            ValueError: If the document has no usable name or a list field
                is not a list.
        """
        name = record.get("name")
        if not isinstance(name, str) or not name.strip():
            raise ValueError("record has no name")

        phones = record.get("phone_numbers") or []
        emails = record.get("emails") or []
        if not isinstance(phones, list) or not isinstance(emails, list):
            raise ValueError("phone_numbers and emails must be lists")

        return cls(
            name=name,
            phone_numbers=[str(p) for p in phones],
            emails=[str(e) for e in emails],
        )


@dataclass
class Chat:
    """A conversation row from chat.db, enriched with resolved names."""

    rowid: int
    chat_identifier: str
    display_name: str = ""
    last_message: str = ""
    last_time: Optional[datetime] = None
    unread_count: int = 0
    participants: List[str] = field(default_factory=list)
    is_group: bool = False
    has_unread: bool = False


@dataclass
class Message:
    """A single message within a chat."""

    rowid: int
    guid: str
    text: str
    handle: str  # sender identifier, or its resolved name
    is_from_me: bool
    date: Optional[datetime]
    chat_id: int
    attachment_path: Optional[str] = None
