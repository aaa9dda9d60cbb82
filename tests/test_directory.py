"""
Tests for the YAML contacts directory and its cache.
"""

import threading
import time
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml

from chime.directory import (
    ContactCache,
    ContactDirectory,
    build_snapshot,
    sanitize_filename,
    validate_contact,
)
from chime.errors import NotFoundError, ParseError, StoreIOError, ValidationError
from chime.models import Contact


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class TestSanitizeFilename:
    def test_plain_name(self):
        assert sanitize_filename("Ana") == "Ana"

    def test_separators_replaced(self):
        assert sanitize_filename("AC/DC\\Fan:Club") == "AC-DC-Fan-Club"

    def test_trims(self):
        assert sanitize_filename("  Ana  ") == "Ana"


class TestSaveLoadDelete:
    """Tests for single-record operations."""

    def test_round_trip(self, contacts_dir: Path):
        directory = ContactDirectory(contacts_dir)
        contact = Contact(
            name="Ana Lima",
            phone_numbers=["+15551230000", "(555) 999-0000"],
            emails=["ana@example.com"],
        )
        directory.save(contact)
        assert directory.load("Ana Lima") == contact

    def test_round_trip_email_only(self, contacts_dir: Path):
        directory = ContactDirectory(contacts_dir)
        contact = Contact(name="Bob", emails=["bob@example.com"])
        directory.save(contact)
        assert directory.load("Bob") == contact

    def test_save_creates_directory(self, contacts_dir: Path):
        assert not contacts_dir.exists()
        ContactDirectory(contacts_dir).save(Contact(name="Ana", phone_numbers=["1"]))
        assert (contacts_dir / "Ana.yml").exists()

    def test_record_format(self, contacts_dir: Path):
        """Empty identifier lists are omitted and phones stay strings."""
        directory = ContactDirectory(contacts_dir)
        path = directory.save(Contact(name="Ana", phone_numbers=["+15551230000"]))

        data = yaml.safe_load(path.read_text(encoding="utf-8"))
        assert data == {"name": "Ana", "phone_numbers": ["+15551230000"]}

    def test_save_uses_sanitized_filename(self, contacts_dir: Path):
        directory = ContactDirectory(contacts_dir)
        path = directory.save(Contact(name="AC/DC: Fans", emails=["a@b.c"]))
        assert path.name == "AC-DC- Fans.yml"
        assert directory.load("AC/DC: Fans").name == "AC/DC: Fans"

    def test_save_overwrites(self, directory: ContactDirectory):
        directory.save(Contact(name="Ana", emails=["ana@new.com"]))
        assert directory.load("Ana").emails == ["ana@new.com"]
        assert directory.load("Ana").phone_numbers == []

    @pytest.mark.parametrize("name", ["", "   "])
    def test_save_empty_name_rejected(self, contacts_dir: Path, name: str):
        with pytest.raises(ValidationError):
            ContactDirectory(contacts_dir).save(Contact(name=name, phone_numbers=["1"]))

    def test_save_write_failure(self, contacts_dir: Path):
        directory = ContactDirectory(contacts_dir)
        with patch.object(Path, "write_text", side_effect=PermissionError("denied")):
            with pytest.raises(StoreIOError) as exc_info:
                directory.save(Contact(name="Ana", phone_numbers=["1"]))
        assert isinstance(exc_info.value, OSError)

    def test_load_missing(self, directory: ContactDirectory):
        with pytest.raises(NotFoundError):
            directory.load("Nobody")

    def test_load_malformed_yaml(self, directory: ContactDirectory):
        (directory.contacts_dir / "Broken.yml").write_text("name: [unclosed\n", encoding="utf-8")
        with pytest.raises(ParseError):
            directory.load("Broken")

    def test_load_not_a_mapping(self, directory: ContactDirectory):
        (directory.contacts_dir / "List.yml").write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ParseError):
            directory.load("List")

    def test_load_missing_name_field(self, directory: ContactDirectory):
        (directory.contacts_dir / "Nameless.yml").write_text(
            "phone_numbers: ['123']\n", encoding="utf-8"
        )
        with pytest.raises(ParseError):
            directory.load("Nameless")

    def test_delete(self, directory: ContactDirectory):
        directory.delete("Ana")
        with pytest.raises(NotFoundError):
            directory.load("Ana")

    def test_delete_missing(self, directory: ContactDirectory):
        with pytest.raises(NotFoundError):
            directory.delete("Nobody")


class TestListAndFind:
    """Tests for cached listing and reverse lookup."""

    def test_list_contacts(self, directory: ContactDirectory):
        directory.save(Contact(name="Bob", emails=["bob@example.com"]))
        names = [c.name for c in directory.list_contacts()]
        assert names == ["Ana", "Bob"]

    def test_list_empty_directory(self, contacts_dir: Path):
        assert ContactDirectory(contacts_dir).list_contacts() == []

    def test_list_skips_malformed_records(self, directory: ContactDirectory):
        (directory.contacts_dir / "Broken.yml").write_text("name: [unclosed\n", encoding="utf-8")
        (directory.contacts_dir / "Binary.yml").write_bytes(b"\xff\xfe\x00")
        (directory.contacts_dir / "notes.txt").write_text("ignored", encoding="utf-8")
        directory.invalidate_cache()

        assert [c.name for c in directory.list_contacts()] == ["Ana"]

    @pytest.mark.parametrize("identifier", ["5551230000", "555-123-0000", "+1 (555) 123-0000"])
    def test_find_by_phone_spellings(self, directory: ContactDirectory, identifier: str):
        assert directory.find_by_identifier(identifier) == "Ana"

    def test_find_unknown(self, directory: ContactDirectory):
        assert directory.find_by_identifier("unknown@x.com") == ""

    def test_find_empty(self, directory: ContactDirectory):
        assert directory.find_by_identifier("") == ""
        assert directory.find_by_identifier("   ") == ""

    def test_find_by_email_case_insensitive(self, directory: ContactDirectory):
        directory.save(Contact(name="Bob", emails=["Bob@Example.com"]))
        assert directory.find_by_identifier("bob@example.COM") == "Bob"

    def test_find_every_own_identifier(self, contacts_dir: Path):
        directory = ContactDirectory(contacts_dir)
        contact = Contact(
            name="Cleo",
            phone_numbers=["+44 20 7946 0958", "15557776666"],
            emails=["cleo@example.org"],
        )
        directory.save(contact)
        for identifier in contact.identifiers():
            assert directory.find_by_identifier(identifier) == "Cleo"

    def test_save_visible_on_next_find(self, directory: ContactDirectory):
        assert directory.find_by_identifier("bob@example.com") == ""
        directory.save(Contact(name="Bob", emails=["bob@example.com"]))
        directory.invalidate_cache()
        assert directory.find_by_identifier("bob@example.com") == "Bob"
        assert "Bob" in [c.name for c in directory.list_contacts()]

    def test_delete_visible_on_next_list(self, directory: ContactDirectory):
        assert [c.name for c in directory.list_contacts()] == ["Ana"]
        directory.delete("Ana")
        directory.invalidate_cache()
        assert directory.list_contacts() == []
        assert directory.find_by_identifier("5551230000") == ""

    def test_external_edit_hidden_until_ttl(self, contacts_dir: Path):
        """Files changed behind the directory's back appear after the TTL."""
        clock = FakeClock()
        directory = ContactDirectory(contacts_dir, cache=ContactCache(ttl=30.0, clock=clock))
        directory.save(Contact(name="Ana", phone_numbers=["5551230000"]))
        assert len(directory.list_contacts()) == 1

        (contacts_dir / "Bob.yml").write_text("name: Bob\nemails: [bob@x.com]\n", encoding="utf-8")
        clock.advance(29)
        assert len(directory.list_contacts()) == 1
        clock.advance(2)
        assert len(directory.list_contacts()) == 2


class TestContactCache:
    """Tests for the TTL cache itself."""

    def test_loader_called_once_within_ttl(self):
        clock = FakeClock()
        cache = ContactCache(ttl=30.0, clock=clock)
        calls = []

        def loader():
            calls.append(1)
            return [Contact(name="Ana", phone_numbers=["5551230000"])]

        cache.get(loader)
        clock.advance(10)
        snapshot = cache.get(loader)

        assert len(calls) == 1
        assert snapshot.index == {"5551230000": "Ana"}

    def test_invalidate_forces_rescan(self):
        cache = ContactCache(ttl=30.0, clock=FakeClock())
        cache.get(lambda: [])
        cache.invalidate()
        cache.get(lambda: [])
        assert cache.scan_count == 2

    def test_loader_error_propagates_and_retries(self):
        clock = FakeClock()
        cache = ContactCache(ttl=30.0, clock=clock)
        cache.get(lambda: [Contact(name="Ana", emails=["a@x.com"])])
        clock.advance(60)

        def failing():
            raise StoreIOError("gone")

        with pytest.raises(StoreIOError):
            cache.get(failing)
        assert cache.scan_count == 1
        assert cache.get(lambda: []).contacts == ()
        assert cache.scan_count == 2

    def test_concurrent_readers_share_one_scan(self):
        """Racing callers past the TTL trigger exactly one rescan."""
        cache = ContactCache(ttl=30.0)
        calls = []
        calls_lock = threading.Lock()
        start = threading.Barrier(8)

        def slow_loader():
            with calls_lock:
                calls.append(1)
            time.sleep(0.05)
            return [Contact(name="Ana", phone_numbers=["5551230000"])]

        results = []

        def reader():
            start.wait()
            results.append(cache.get(slow_loader))

        threads = [threading.Thread(target=reader) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)

        assert len(calls) == 1
        assert len(results) == 8
        assert all(r is results[0] for r in results)

    def test_build_snapshot_skips_empty_identifiers(self):
        snapshot = build_snapshot([Contact(name="Ana", phone_numbers=["", "n/a"], emails=[""])])
        assert snapshot.index == {}


class TestEditingHelpers:
    """Tests for form-level validation, rename and quick add."""

    def test_validate_requires_name(self):
        with pytest.raises(ValidationError, match="name is required"):
            validate_contact(Contact(name=" ", phone_numbers=["1"]))

    def test_validate_requires_identifier(self):
        with pytest.raises(ValidationError, match="at least one"):
            validate_contact(Contact(name="Ana", phone_numbers=[" "], emails=[""]))

    def test_validate_strips_blank_entries(self):
        cleaned = validate_contact(
            Contact(name=" Ana ", phone_numbers=[" 555 ", ""], emails=["  "])
        )
        assert cleaned == Contact(name="Ana", phone_numbers=["555"], emails=[])

    def test_update_renames(self, directory: ContactDirectory):
        directory.update(
            Contact(name="Ana Lima", phone_numbers=["+15551230000"]), original_name="Ana"
        )
        with pytest.raises(NotFoundError):
            directory.load("Ana")
        assert directory.find_by_identifier("5551230000") == "Ana Lima"

    def test_update_same_name(self, directory: ContactDirectory):
        directory.update(
            Contact(name="Ana", phone_numbers=["+15551230000"], emails=["ana@x.com"]),
            original_name="Ana",
        )
        assert directory.load("Ana").emails == ["ana@x.com"]

    def test_update_missing_original(self, directory: ContactDirectory):
        with pytest.raises(NotFoundError):
            directory.update(Contact(name="New", emails=["n@x.com"]), original_name="Ghost")

    def test_quick_add_phone(self, contacts_dir: Path):
        directory = ContactDirectory(contacts_dir)
        contact = directory.quick_add("Dan", "+15550001111")
        assert contact.phone_numbers == ["+15550001111"]
        assert directory.find_by_identifier("5550001111") == "Dan"

    def test_quick_add_email(self, contacts_dir: Path):
        directory = ContactDirectory(contacts_dir)
        contact = directory.quick_add("Eve", "eve@example.com")
        assert contact.emails == ["eve@example.com"]
        assert contact.phone_numbers == []

    def test_quick_add_requires_name(self, contacts_dir: Path):
        with pytest.raises(ValidationError):
            ContactDirectory(contacts_dir).quick_add("", "eve@example.com")
