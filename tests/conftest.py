"""
Pytest fixtures for chime tests.

Fixture Categories:
    1. Database fixtures (sample chat.db, sample AddressBook)
    2. Contacts directory fixtures
    3. Helpers (attributedBody blob builder)

Design Notes:
    - Fixtures use tmp_path for isolation between tests
    - Sample chat.db mimics the parts of Apple's schema we read
    - Timestamps are stored in Apple's nanosecond format
"""

import sqlite3
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable

import pytest

from chime.directory import ContactCache, ContactDirectory
from chime.models import Contact

# Apple's epoch: 2001-01-01 00:00:00 UTC
APPLE_EPOCH_OFFSET = 978307200

BASE_TIME = datetime(2024, 1, 15, 10, 0, 0, tzinfo=timezone.utc)


def pytest_configure(config):
    config.addinivalue_line("markers", "property: hypothesis property-based tests")


def _datetime_to_apple_ns(dt: datetime) -> int:
    """Convert datetime to Apple's nanosecond timestamp format."""
    return (int(dt.timestamp()) - APPLE_EPOCH_OFFSET) * 1_000_000_000


def apple_ns_at(minutes: float) -> int:
    """Apple timestamp ``minutes`` after BASE_TIME."""
    return _datetime_to_apple_ns(BASE_TIME + timedelta(minutes=minutes))


def _make_attributed_body(*texts: str) -> bytes:
    """
    Build a minimal typedstream blob holding one NSString per text.

    Mirrors the layout Messages writes: NSString, five header bytes, a length
    (one byte, or 0x81 + little-endian u16) and the UTF-8 payload.
    """
    blob = (
        b"\x04\x0bstreamtyped\x81\xe8\x03\x84\x01@\x84\x84\x84"
        b"\x12NSAttributedString\x00\x84\x84\x08NSObject\x00\x85\x92\x84\x84\x84"
    )
    for text in texts:
        payload = text.encode("utf-8")
        if len(payload) < 0x80:
            length = bytes([len(payload)])
        else:
            length = b"\x81" + len(payload).to_bytes(2, "little")
        blob += b"\x08NSString\x01\x94\x84\x01+" + length + payload + b"\x86\x84\x02iI\x01"
    return blob


@pytest.fixture
def attributed_body() -> Callable[..., bytes]:
    """Return the attributedBody blob builder."""
    return _make_attributed_body


# =============================================================================
# Sample chat.db fixtures
# =============================================================================

CHAT_DB_SCHEMA = """
    CREATE TABLE handle (
        ROWID INTEGER PRIMARY KEY,
        id TEXT NOT NULL,
        service TEXT
    );

    CREATE TABLE chat (
        ROWID INTEGER PRIMARY KEY,
        guid TEXT,
        chat_identifier TEXT,
        display_name TEXT,
        service_name TEXT
    );

    CREATE TABLE message (
        ROWID INTEGER PRIMARY KEY,
        guid TEXT,
        text TEXT,
        attributedBody BLOB,
        handle_id INTEGER,
        is_from_me INTEGER DEFAULT 0,
        is_read INTEGER DEFAULT 0,
        date INTEGER
    );

    CREATE TABLE attachment (
        ROWID INTEGER PRIMARY KEY,
        filename TEXT
    );

    CREATE TABLE chat_message_join (
        chat_id INTEGER,
        message_id INTEGER,
        PRIMARY KEY (chat_id, message_id)
    );

    CREATE TABLE chat_handle_join (
        chat_id INTEGER,
        handle_id INTEGER
    );

    CREATE TABLE message_attachment_join (
        message_id INTEGER,
        attachment_id INTEGER
    );
"""


@pytest.fixture
def sample_chat_db(tmp_path: Path) -> Path:
    """
    Create a chat.db with four chats.

    Chats (most recent first):
        3 "chat222"          group "Book Club", Ana + +15559870000, 1 unread
        2 "chat111"          unnamed group, Ana + bob@example.com, 0 unread
        1 "+15551230000"     direct with Ana, 2 unread, last text only in attributedBody
        4 "bob@example.com"  direct, no messages

    Returns:
        Path to the sample chat.db file.
    """
    db_path = tmp_path / "chat.db"
    conn = sqlite3.connect(str(db_path))

    try:
        conn.executescript(CHAT_DB_SCHEMA)

        handles = [
            (1, "+15551230000", "iMessage"),
            (2, "bob@example.com", "iMessage"),
            (3, "+15559870000", "SMS"),
        ]
        conn.executemany("INSERT INTO handle (ROWID, id, service) VALUES (?, ?, ?)", handles)

        chats = [
            (1, "iMessage;-;+15551230000", "+15551230000", None, "iMessage"),
            (2, "iMessage;+;chat111", "chat111", "", "iMessage"),
            (3, "iMessage;+;chat222", "chat222", "Book Club", "iMessage"),
            (4, "iMessage;-;bob@example.com", "bob@example.com", None, "iMessage"),
        ]
        conn.executemany(
            "INSERT INTO chat (ROWID, guid, chat_identifier, display_name, service_name) "
            "VALUES (?, ?, ?, ?, ?)",
            chats,
        )

        messages = [
            # rowid, guid, text, attributedBody, handle_id, is_from_me, is_read, date
            (1, "msg-1", "Hi Ana", None, 0, 1, 1, apple_ns_at(0)),
            (2, "msg-2", "Hello!", None, 1, 0, 0, apple_ns_at(1)),
            (3, "msg-3", None, _make_attributed_body("Decoded reply"), 1, 0, 0, apple_ns_at(2)),
            (4, "msg-4", "Group hello", None, 2, 0, 1, apple_ns_at(5)),
            (5, "msg-5", "On my way", None, 0, 1, 1, apple_ns_at(6)),
            (6, "msg-6", "Chapter 3?", None, 3, 0, 0, apple_ns_at(10)),
        ]
        conn.executemany(
            "INSERT INTO message "
            "(ROWID, guid, text, attributedBody, handle_id, is_from_me, is_read, date) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            messages,
        )

        conn.executemany(
            "INSERT INTO chat_message_join (chat_id, message_id) VALUES (?, ?)",
            [(1, 1), (1, 2), (1, 3), (2, 4), (2, 5), (3, 6)],
        )
        conn.executemany(
            "INSERT INTO chat_handle_join (chat_id, handle_id) VALUES (?, ?)",
            [(1, 1), (2, 1), (2, 2), (3, 1), (3, 3), (4, 2)],
        )

        conn.execute(
            "INSERT INTO attachment (ROWID, filename) VALUES (1, ?)",
            ("~/Library/Messages/Attachments/ab/photo.jpg",),
        )
        conn.execute("INSERT INTO message_attachment_join (message_id, attachment_id) VALUES (5, 1)")

        conn.commit()

    finally:
        conn.close()

    return db_path


@pytest.fixture
def empty_chat_db(tmp_path: Path) -> Path:
    """
    Create an empty chat.db with schema but no data.

    Returns:
        Path to the empty chat.db file.
    """
    db_path = tmp_path / "empty_chat.db"
    conn = sqlite3.connect(str(db_path))
    try:
        conn.executescript(CHAT_DB_SCHEMA)
        conn.commit()
    finally:
        conn.close()
    return db_path


# =============================================================================
# Contacts directory fixtures
# =============================================================================


@pytest.fixture
def contacts_dir(tmp_path: Path) -> Path:
    """Return a fresh (not yet created) contacts directory."""
    return tmp_path / "contacts"


@pytest.fixture
def directory(contacts_dir: Path) -> ContactDirectory:
    """A contacts directory holding Ana."""
    directory = ContactDirectory(contacts_dir, cache=ContactCache(ttl=30.0))
    directory.save(Contact(name="Ana", phone_numbers=["+15551230000"]))
    return directory


# =============================================================================
# Contacts Database (AddressBook) fixtures
# =============================================================================

ADDRESS_BOOK_SCHEMA = """
    CREATE TABLE ZABCDRECORD (
        Z_PK INTEGER PRIMARY KEY,
        ZFIRSTNAME TEXT,
        ZLASTNAME TEXT,
        ZORGANIZATION TEXT,
        ZNICKNAME TEXT
    );

    CREATE TABLE ZABCDPHONENUMBER (
        Z_PK INTEGER PRIMARY KEY,
        ZOWNER INTEGER,
        ZFULLNUMBER TEXT,
        ZLABEL TEXT
    );

    CREATE TABLE ZABCDEMAILADDRESS (
        Z_PK INTEGER PRIMARY KEY,
        ZOWNER INTEGER,
        ZADDRESS TEXT,
        ZLABEL TEXT
    );
"""


@pytest.fixture
def sample_address_book(tmp_path: Path) -> Path:
    """
    Create a minimal AddressBook database with Core Data schema.

    Returns:
        Path to the sample contacts database.
    """
    db_path = tmp_path / "AddressBook-v22.abcddb"
    conn = sqlite3.connect(str(db_path))

    try:
        conn.executescript(
            ADDRESS_BOOK_SCHEMA
            + """
            CREATE TABLE ZABCDMESSAGINGADDRESS (
                Z_PK INTEGER PRIMARY KEY,
                ZOWNER INTEGER,
                ZADDRESS TEXT
            );
            """
        )

        contacts = [
            (1, "John", "Appleseed", None, None),
            (2, None, None, "Acme Corp", None),
            (3, "Bob", "Builder", None, None),
            (4, None, None, None, "Zed"),
        ]
        conn.executemany(
            "INSERT INTO ZABCDRECORD (Z_PK, ZFIRSTNAME, ZLASTNAME, ZORGANIZATION, ZNICKNAME) "
            "VALUES (?, ?, ?, ?, ?)",
            contacts,
        )

        phones = [
            (1, 1, "+1 (415) 555-1234", "_$!<Mobile>!$_"),
            (2, 2, "(800) 275-2273", "_$!<Main>!$_"),
            (3, 4, "+44 20 7946 0958", "_$!<Mobile>!$_"),
        ]
        conn.executemany(
            "INSERT INTO ZABCDPHONENUMBER (Z_PK, ZOWNER, ZFULLNUMBER, ZLABEL) VALUES (?, ?, ?, ?)",
            phones,
        )

        conn.execute(
            "INSERT INTO ZABCDEMAILADDRESS (Z_PK, ZOWNER, ZADDRESS, ZLABEL) VALUES (1, 1, ?, ?)",
            ("John@Example.com", "_$!<Home>!$_"),
        )
        conn.execute(
            "INSERT INTO ZABCDMESSAGINGADDRESS (Z_PK, ZOWNER, ZADDRESS) VALUES (1, 3, ?)",
            ("bob@example.com",),
        )

        conn.commit()

    finally:
        conn.close()

    return db_path


@pytest.fixture
def address_book_without_messaging(tmp_path: Path) -> Path:
    """AddressBook from an older macOS without ZABCDMESSAGINGADDRESS."""
    db_path = tmp_path / "AddressBook-v21.abcddb"
    conn = sqlite3.connect(str(db_path))
    try:
        conn.executescript(ADDRESS_BOOK_SCHEMA)
        conn.execute("INSERT INTO ZABCDRECORD (Z_PK, ZFIRSTNAME) VALUES (1, 'Carol')")
        conn.execute(
            "INSERT INTO ZABCDEMAILADDRESS (Z_PK, ZOWNER, ZADDRESS) VALUES (1, 1, 'carol@x.org')"
        )
        conn.commit()
    finally:
        conn.close()
    return db_path
