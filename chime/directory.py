"""
Contact directory: user-defined contacts stored as YAML files.

Each contact is one file in the contacts directory (default ~/.chime/contacts),
named after the sanitized contact name with a .yml extension:

    name: Ana
    phone_numbers:
      - "+15551230000"
    emails:
      - ana@example.com

Listing and identifier lookup go through ContactCache, which keeps the last
directory scan (contacts plus a normalized identifier → name index) for a TTL
window. Any number of readers share a fresh snapshot; the first reader to find
it stale takes the exclusive lock and rescans.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple, Union

import yaml

from chime.errors import ErrorCode, NotFoundError, ParseError, StoreIOError, ValidationError
from chime.models import Contact
from chime.normalizers import normalize_email, normalize_identifier

logger = logging.getLogger(__name__)

RECORD_EXTENSION = ".yml"
DEFAULT_CACHE_TTL = 30.0


def sanitize_filename(name: str) -> str:
    """
    Convert a contact name to a safe filename stem.

    Path separators and colons become dashes.

    Examples:
        >>> sanitize_filename(" AC/DC: fans ")
        'AC-DC- fans'
    """
    name = name.strip()
    for ch in ("/", "\\", ":"):
        name = name.replace(ch, "-")
    return name


class ReadWriteLock:
    """
    Readers/writer lock: shared read access, exclusive write access.

    Waiting writers block new readers so a rescan cannot be starved.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    def acquire_read(self) -> None:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1

    def release_read(self) -> None:
        with self._cond:
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self) -> None:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True

    def release_write(self) -> None:
        with self._cond:
            self._writer = False
            self._cond.notify_all()


@dataclass(frozen=True)
class DirectorySnapshot:
    """One directory scan: contacts plus the reverse identifier index."""

    contacts: Tuple[Contact, ...] = ()
    index: Dict[str, str] = field(default_factory=dict)


def build_snapshot(contacts: List[Contact]) -> DirectorySnapshot:
    """Build the normalized identifier → contact name index for a scan."""
    index: Dict[str, str] = {}
    for contact in contacts:
        for phone in contact.phone_numbers:
            key = normalize_identifier(phone)
            if key:
                index[key] = contact.name
        for email in contact.emails:
            key = normalize_email(email)
            if key:
                index[key] = contact.name
    return DirectorySnapshot(contacts=tuple(contacts), index=index)


class ContactCache:
    """
    TTL cache over directory scans.

    Owns its lock and load timestamp. A snapshot is fresh for ``ttl`` seconds
    after it was loaded, until invalidate() is called.
    """

    def __init__(
        self,
        ttl: float = DEFAULT_CACHE_TTL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl = ttl
        self._clock = clock
        self._lock = ReadWriteLock()
        self._snapshot: Optional[DirectorySnapshot] = None
        self._loaded_at: Optional[float] = None
        self.scan_count = 0

    def _is_fresh(self) -> bool:
        if self._snapshot is None or self._loaded_at is None:
            return False
        return self._clock() - self._loaded_at < self.ttl

    def get(self, loader: Callable[[], List[Contact]]) -> DirectorySnapshot:
        """
        Return a fresh snapshot, rescanning with ``loader`` if stale.

        Errors raised by ``loader`` propagate and leave the previous
        snapshot in place.
        """
        self._lock.acquire_read()
        try:
            snapshot = self._snapshot
            if snapshot is not None and self._is_fresh():
                return snapshot
        finally:
            self._lock.release_read()

        self._lock.acquire_write()
        try:
            # another caller may have rescanned while we waited
            snapshot = self._snapshot
            if snapshot is not None and self._is_fresh():
                return snapshot

            snapshot = build_snapshot(loader())
            self._snapshot = snapshot
            self._loaded_at = self._clock()
            self.scan_count += 1
            logger.debug(f"Contacts cache refreshed: {len(snapshot.contacts)} contacts")
            return snapshot
        finally:
            self._lock.release_write()

    def invalidate(self) -> None:
        """Force the next get() to rescan."""
        self._lock.acquire_write()
        try:
            self._loaded_at = None
        finally:
            self._lock.release_write()


def validate_contact(contact: Contact) -> Contact:
    """
    Validate a contact coming from an edit form.

    Blank identifier entries are dropped and the name is trimmed.

    Raises:
        ValidationError: If the name is empty or no identifier remains.
    """
    name = (contact.name or "").strip()
    if not name:
        raise ValidationError("name is required", details={"field": "name"})

    phones = [p.strip() for p in contact.phone_numbers if p and p.strip()]
    emails = [e.strip() for e in contact.emails if e and e.strip()]
    if not phones and not emails:
        raise ValidationError(
            "at least one phone number or email is required",
            details={"field": "phone_numbers"},
        )

    return Contact(name=name, phone_numbers=phones, emails=emails)


class ContactDirectory:
    """
    File-backed repository of user-defined contacts.

    Provides single-record CRUD plus cached listing and reverse lookup.
    """

    def __init__(
        self,
        contacts_dir: Union[str, Path],
        cache: Optional[ContactCache] = None,
    ):
        """
        Args:
            contacts_dir: Directory holding one YAML record per contact.
            cache: Cache to use. A private ContactCache is created if omitted.
        """
        self.contacts_dir = Path(contacts_dir).expanduser()
        self.cache = cache if cache is not None else ContactCache()

    def _record_path(self, name: str) -> Path:
        return self.contacts_dir / (sanitize_filename(name) + RECORD_EXTENSION)

    def _ensure_dir(self) -> None:
        try:
            self.contacts_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreIOError(
                f"failed to create contacts directory: {self.contacts_dir}", cause=e
            ) from e

    def _read_record(self, path: Path) -> Contact:
        """
        Parse one contact record.

        Raises:
            ParseError: If the file is not a valid contact document.
            OSError: If the file cannot be read.
        """
        raw = path.read_bytes()
        try:
            data = yaml.safe_load(raw.decode("utf-8"))
        except (UnicodeDecodeError, yaml.YAMLError) as e:
            raise ParseError(
                f"failed to parse contact file: {path.name}",
                details={"path": str(path)},
                cause=e,
            ) from e

        if not isinstance(data, dict):
            raise ParseError(
                f"contact file is not a mapping: {path.name}",
                details={"path": str(path)},
            )
        try:
            return Contact.from_record(data)
        except ValueError as e:
            raise ParseError(
                f"invalid contact file {path.name}: {e}",
                details={"path": str(path)},
                cause=e,
            ) from e

    def save(self, contact: Contact) -> Path:
        """
        Write a contact record, overwriting any record with the same key.

        Returns:
            Path of the written record.

        Raises:
            ValidationError: If the contact name is empty.
            StoreIOError: If the record cannot be written.
        """
        if not contact.name or not contact.name.strip():
            raise ValidationError("contact name cannot be empty", details={"field": "name"})

        self._ensure_dir()
        path = self._record_path(contact.name)
        data = yaml.safe_dump(
            contact.to_record(),
            default_flow_style=False,
            sort_keys=False,
            allow_unicode=True,
        )
        try:
            path.write_text(data, encoding="utf-8")
        except OSError as e:
            raise StoreIOError(
                f"failed to write contact file: {path}",
                code=ErrorCode.STORE_WRITE_FAILED,
                cause=e,
            ) from e

        self.invalidate_cache()
        logger.debug(f"Saved contact {contact.name!r} to {path}")
        return path

    def load(self, name: str) -> Contact:
        """
        Load one contact by name.

        Raises:
            NotFoundError: If no record exists for the name.
            ParseError: If the record is malformed.
            StoreIOError: If the record exists but cannot be read.
        """
        path = self._record_path(name)
        try:
            return self._read_record(path)
        except FileNotFoundError as e:
            raise NotFoundError(f"contact not found: {name}", details={"name": name}) from e
        except OSError as e:
            raise StoreIOError(f"failed to read contact file: {path}", cause=e) from e

    def delete(self, name: str) -> None:
        """
        Delete one contact record.

        Raises:
            NotFoundError: If no record exists for the name.
            StoreIOError: If the record cannot be removed.
        """
        path = self._record_path(name)
        try:
            path.unlink()
        except FileNotFoundError as e:
            raise NotFoundError(f"contact not found: {name}", details={"name": name}) from e
        except OSError as e:
            raise StoreIOError(f"failed to delete contact: {path}", cause=e) from e

        self.invalidate_cache()
        logger.debug(f"Deleted contact {name!r}")

    def _scan(self) -> List[Contact]:
        """Read every record in the directory, skipping bad ones."""
        self._ensure_dir()
        try:
            paths = sorted(
                p
                for p in self.contacts_dir.iterdir()
                if p.is_file() and p.suffix == RECORD_EXTENSION
            )
        except OSError as e:
            raise StoreIOError(
                f"failed to read contacts directory: {self.contacts_dir}", cause=e
            ) from e

        contacts = []
        for path in paths:
            try:
                contacts.append(self._read_record(path))
            except (ParseError, OSError) as e:
                logger.warning(f"Skipping contact record {path.name}: {e}")
        logger.info(f"Scanned {len(contacts)} contacts from {self.contacts_dir}")
        return contacts

    def list_contacts(self) -> List[Contact]:
        """
        Return all contacts, served from the cache while it is fresh.

        Raises:
            StoreIOError: If the directory itself cannot be read.
        """
        return list(self.cache.get(self._scan).contacts)

    def find_by_identifier(self, identifier: str) -> str:
        """
        Find the contact name owning a phone number or email.

        Returns:
            The contact name, or "" if no contact owns the identifier.
        """
        if not identifier or not identifier.strip():
            return ""
        key = normalize_identifier(identifier.strip())
        if not key:
            return ""
        try:
            snapshot = self.cache.get(self._scan)
        except StoreIOError as e:
            logger.warning(f"Contact lookup unavailable: {e}")
            return ""
        return snapshot.index.get(key, "")

    def invalidate_cache(self) -> None:
        """Force the next list/find call to rescan the directory."""
        self.cache.invalidate()

    def update(self, contact: Contact, original_name: Optional[str] = None) -> Contact:
        """
        Save an edited contact, renaming its record if the name changed.

        Args:
            contact: The edited contact.
            original_name: Name of the record being edited, if any.

        Returns:
            The validated contact as saved.

        Raises:
            ValidationError: If the contact fails validation.
            NotFoundError: If ``original_name`` does not exist.
        """
        cleaned = validate_contact(contact)
        if original_name is not None and original_name != cleaned.name:
            self.delete(original_name)
        self.save(cleaned)
        return cleaned

    def quick_add(self, name: str, identifier: str) -> Contact:
        """
        Create a contact from a single raw identifier seen in a chat.

        The identifier is filed as an email if it contains "@", else as a phone.

        Raises:
            ValidationError: If the name or identifier is empty.
        """
        name = (name or "").strip()
        if not name:
            raise ValidationError("name is required", details={"field": "name"})

        contact = Contact(name=name)
        if "@" in identifier:
            contact.emails = [identifier]
        else:
            contact.phone_numbers = [identifier]
        return self.update(contact)
