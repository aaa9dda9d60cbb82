"""
Configuration module for chime.

Handles file locations and cache settings.

Paths:
    - chat.db: Apple's Messages database (read-mostly foreign store)
    - contacts dir: our YAML contact records (read-write)
    - AddressBook: Apple's Contacts database (read-only, optional)

Environment Variables:
    CHIME_DB_PATH: Override the chat.db location.
    CHIME_CONTACTS_DIR: Override the contacts directory.
"""

import os
from pathlib import Path
from typing import Optional


class Config:
    """Configuration class for chime."""

    # Default database file name
    DEFAULT_DB_NAME = "chat.db"

    # Default path to Messages directory on macOS
    DEFAULT_MESSAGES_PATH = Path.home() / "Library" / "Messages"

    # Default directory for user-defined contact records
    DEFAULT_CONTACTS_DIR = Path.home() / ".chime" / "contacts"

    # Default path to Contacts database on macOS
    DEFAULT_ADDRESS_BOOK_PATH = Path.home() / "Library" / "Application Support" / "AddressBook"

    # Seconds a contacts directory scan stays valid
    DEFAULT_CACHE_TTL = 30.0

    def __init__(
        self,
        db_path: Optional[str] = None,
        contacts_dir: Optional[str] = None,
        address_book_path: Optional[str] = None,
        cache_ttl: float = DEFAULT_CACHE_TTL,
    ):
        """
        Initialize configuration.

        Args:
            db_path: Optional path to chat.db. If not provided, uses
                    CHIME_DB_PATH, then ./chat.db, then the Messages directory.
            contacts_dir: Optional contacts directory. If not provided, uses
                    CHIME_CONTACTS_DIR, then ~/.chime/contacts.
            address_book_path: Optional path to an AddressBook database. If not
                    provided, will attempt to find it in the default location.
            cache_ttl: Seconds before the contacts cache is rescanned.
        """
        # Chat.db path (foreign store)
        self._db_path: Optional[Path] = None
        env_db = os.getenv("CHIME_DB_PATH")
        if db_path:
            self._db_path = Path(db_path)
        elif env_db:
            self._db_path = Path(env_db)
        else:
            # Try current directory first
            current_dir_db = Path.cwd() / self.DEFAULT_DB_NAME
            if current_dir_db.exists():
                self._db_path = current_dir_db
            else:
                self._db_path = self.DEFAULT_MESSAGES_PATH / self.DEFAULT_DB_NAME

        # Contacts directory (ours)
        self._contacts_dir: Path
        env_contacts = os.getenv("CHIME_CONTACTS_DIR")
        if contacts_dir:
            self._contacts_dir = Path(contacts_dir)
        elif env_contacts:
            self._contacts_dir = Path(env_contacts)
        else:
            self._contacts_dir = self.DEFAULT_CONTACTS_DIR

        # AddressBook path (optional)
        self._address_book_path: Optional[Path] = None
        if address_book_path:
            self._address_book_path = Path(address_book_path)
        else:
            self._address_book_path = self._find_address_book()

        self.cache_ttl = cache_ttl

    def _find_address_book(self) -> Optional[Path]:
        """
        Find the AddressBook database file.

        The database has a versioned filename like AddressBook-v22.abcddb and
        lives either directly in the AddressBook directory or, for synced
        accounts, under Sources/<uuid>/.

        Returns:
            Path to the Contacts database, or None if not found.
        """
        if not self.DEFAULT_ADDRESS_BOOK_PATH.exists():
            return None

        candidates = sorted(self.DEFAULT_ADDRESS_BOOK_PATH.glob("AddressBook-v*.abcddb"))
        candidates += sorted(
            self.DEFAULT_ADDRESS_BOOK_PATH.glob("Sources/*/AddressBook-v*.abcddb")
        )
        return candidates[0] if candidates else None

    @property
    def db_path(self) -> Optional[Path]:
        """Get the chat.db file path."""
        return self._db_path

    @property
    def db_path_str(self) -> Optional[str]:
        """Get the chat.db file path as a string."""
        return str(self._db_path) if self._db_path else None

    @property
    def contacts_dir(self) -> Path:
        """Get the contacts directory."""
        return self._contacts_dir

    @property
    def address_book_path(self) -> Optional[Path]:
        """Get the Contacts database file path (optional)."""
        return self._address_book_path

    @property
    def address_book_path_str(self) -> Optional[str]:
        """Get the Contacts database file path as a string."""
        return str(self._address_book_path) if self._address_book_path else None

    def validate(self) -> bool:
        """
        Validate that the chat.db file exists and is readable.

        Returns:
            True if chat.db exists and is readable, False otherwise.
        """
        if not self._db_path:
            return False
        return self._db_path.exists() and os.access(self._db_path, os.R_OK)

    def validate_contacts(self) -> bool:
        """
        Validate that the AddressBook database exists and is readable.

        Returns:
            True if the AddressBook database exists and is readable, False otherwise.
        """
        if not self._address_book_path:
            return False
        return self._address_book_path.exists() and os.access(self._address_book_path, os.R_OK)

    def ensure_contacts_dir(self) -> None:
        """Create the contacts directory if it doesn't exist."""
        self._contacts_dir.mkdir(parents=True, exist_ok=True)


# Global configuration instance
_config: Optional[Config] = None


def get_config(db_path: Optional[str] = None) -> Config:
    """
    Get or create the global configuration instance.

    Args:
        db_path: Optional path to chat.db file.

    Returns:
        Config instance.
    """
    global _config
    if _config is None or db_path is not None:
        _config = Config(db_path)
    return _config


def set_config(config: Config) -> None:
    """
    Set the global configuration instance.

    Args:
        config: Config instance to use.
    """
    global _config
    _config = config
