"""
Read-only lookups against the macOS Contacts (AddressBook) database.

The AddressBook is a Core Data store (AddressBook-vXX.abcddb) with Z-prefixed
tables. We only read it, and query defensively: the messaging-address table
is absent on some versions and the whole file may be unreadable without Full
Disk Access. Either way a lookup simply misses.
"""

import logging
import sqlite3
from contextlib import closing
from pathlib import Path
from typing import List, Optional, Tuple, Union

from chime.normalizers import normalize_email, normalize_phone, phones_match_leniently

logger = logging.getLogger(__name__)

_NAME_COLUMNS = """
    COALESCE(r.ZFIRSTNAME, ''),
    COALESCE(r.ZLASTNAME, ''),
    COALESCE(r.ZNICKNAME, ''),
    COALESCE(r.ZORGANIZATION, '')
"""

PHONE_QUERY = f"""
    SELECT p.ZFULLNUMBER, {_NAME_COLUMNS}
    FROM ZABCDPHONENUMBER p
    JOIN ZABCDRECORD r ON p.ZOWNER = r.Z_PK
    WHERE p.ZFULLNUMBER IS NOT NULL
    ORDER BY p.Z_PK;
"""

EMAIL_QUERY = f"""
    SELECT e.ZADDRESS, {_NAME_COLUMNS}
    FROM ZABCDEMAILADDRESS e
    JOIN ZABCDRECORD r ON e.ZOWNER = r.Z_PK
    WHERE e.ZADDRESS IS NOT NULL
    ORDER BY e.Z_PK;
"""

MESSAGING_QUERY = f"""
    SELECT m.ZADDRESS, {_NAME_COLUMNS}
    FROM ZABCDMESSAGINGADDRESS m
    JOIN ZABCDRECORD r ON m.ZOWNER = r.Z_PK
    WHERE m.ZADDRESS IS NOT NULL
    ORDER BY m.Z_PK;
"""


def display_name(first: str, last: str, nickname: str, organization: str) -> str:
    """
    Build the name shown for an AddressBook record.

    First + last name, else nickname, else organization.
    """
    full = " ".join(part for part in (first.strip(), last.strip()) if part)
    return full or nickname.strip() or organization.strip()


class SystemContacts:
    """Identifier → name lookups against one AddressBook database."""

    def __init__(self, path: Optional[Union[str, Path]]):
        """
        Args:
            path: AddressBook-vXX.abcddb path. None disables the lookup.
        """
        self.path = Path(path).expanduser() if path else None

    def _connect(self) -> Optional[sqlite3.Connection]:
        if self.path is None or not self.path.exists():
            return None
        try:
            return sqlite3.connect(f"{self.path.resolve().as_uri()}?mode=ro", uri=True)
        except sqlite3.Error as e:
            logger.debug(f"Cannot open AddressBook {self.path}: {e}")
            return None

    @staticmethod
    def _rows(conn: sqlite3.Connection, query: str) -> List[Tuple[str, str, str, str, str]]:
        try:
            with closing(conn.cursor()) as cursor:
                cursor.execute(query)
                return cursor.fetchall()
        except sqlite3.Error as e:
            logger.debug(f"AddressBook query skipped: {e}")
            return []

    def find_name(self, identifier: str) -> Optional[str]:
        """
        Find the name owning a phone number, email or messaging address.

        Emails match case-insensitively. Phones match when one cleaned number
        contains the other.

        Returns:
            The contact's display name, or None if nothing matched.
        """
        if not identifier or not identifier.strip():
            return None

        conn = self._connect()
        if conn is None:
            return None

        with closing(conn):
            if "@" in identifier:
                target = normalize_email(identifier)
                for query in (EMAIL_QUERY, MESSAGING_QUERY):
                    for address, *name_parts in self._rows(conn, query):
                        if normalize_email(address) == target:
                            name = display_name(*name_parts)
                            if name:
                                return name
                return None

            target = normalize_phone(identifier)
            if not target:
                return None
            for number, *name_parts in self._rows(conn, PHONE_QUERY):
                if phones_match_leniently(normalize_phone(number), target):
                    name = display_name(*name_parts)
                    if name:
                        return name
            for address, *name_parts in self._rows(conn, MESSAGING_QUERY):
                if "@" not in address and phones_match_leniently(
                    normalize_phone(address), target
                ):
                    name = display_name(*name_parts)
                    if name:
                        return name
        return None
