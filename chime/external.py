"""
Best-effort name lookups through Contacts.app.

Each lookup is a separate osascript process walking every person in
Contacts.app, which can take seconds. Lookups therefore only run in the
background (see OperationDispatcher.lookup_contact) and their results land in
ExternalNameCache, which the resolution pipeline reads without waiting.
"""

import logging
import subprocess
import threading
from typing import Callable, Dict, Optional

from chime.events import ContactLookupCompleted, OperationDispatcher
from chime.normalizers import clean_phone

logger = logging.getLogger(__name__)

OSASCRIPT = "osascript"
DEFAULT_LOOKUP_TIMEOUT = 30.0

# cached and queried identifiers must both be this long for a partial match
MIN_LENIENT_MATCH_LENGTH = 8

_LOOKUP_SCRIPT = """
tell application "Contacts"
    set targetNumber to "{number}"
    try
        repeat with aPerson in people
            try
                repeat with aPhone in phones of aPerson
                    set phoneValue to value of aPhone
                    set cleanPhone to do shell script "echo " & quoted form of phoneValue & " | tr -cd '0-9+'"
                    if targetNumber is not "" and (cleanPhone contains targetNumber or targetNumber contains cleanPhone) then
                        return name of aPerson
                    end if
                end repeat
            end try
            try
                repeat with anEmail in emails of aPerson
                    set emailValue to value of anEmail
                    if emailValue is equal to "{email}" then
                        return name of aPerson
                    end if
                end repeat
            end try
        end repeat
    end try
    return ""
end tell
"""


def escape_applescript(s: str) -> str:
    """
    Escape a string for use inside an AppleScript string literal.

    Examples:
        >>> escape_applescript('say "hi"')
        'say \\\\"hi\\\\"'
    """
    s = s.replace("\\", "\\\\")
    s = s.replace('"', '\\"')
    s = s.replace("\n", "\\n")
    s = s.replace("\r", "\\r")
    s = s.replace("\t", "\\t")
    return s


def build_lookup_script(identifier: str) -> str:
    """Build the AppleScript searching Contacts.app for an identifier."""
    number = clean_phone(identifier) if "@" not in identifier else ""
    return _LOOKUP_SCRIPT.format(
        number=escape_applescript(number),
        email=escape_applescript(identifier),
    )


def lookup_via_applescript(
    identifier: str,
    runner: Callable[..., "subprocess.CompletedProcess[str]"] = subprocess.run,
    timeout: float = DEFAULT_LOOKUP_TIMEOUT,
) -> str:
    """
    Ask Contacts.app for the name owning a phone number or email.

    Args:
        identifier: Raw phone number or email.
        runner: subprocess.run compatible callable.
        timeout: Seconds before the osascript process is abandoned.

    Returns:
        The person's name, or "" if not found or the lookup failed.
    """
    if not identifier or not identifier.strip():
        return ""

    cmd = [OSASCRIPT, "-e", build_lookup_script(identifier)]
    try:
        result = runner(cmd, capture_output=True, text=True, timeout=timeout)
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug(f"Contacts lookup for {identifier!r} failed: {e}")
        return ""

    if result.returncode != 0:
        logger.debug(
            f"Contacts lookup for {identifier!r} exited {result.returncode}: "
            f"{(result.stderr or '').strip()}"
        )
        return ""

    name = (result.stdout or "").strip()
    if name == "missing value":
        return ""
    return name


class ExternalNameCache:
    """
    Names found by background Contacts.app lookups.

    Only handle() mutates the cache; get() never triggers a lookup.
    """

    def __init__(self) -> None:
        self._names: Dict[str, str] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._names)

    def handle(self, event: ContactLookupCompleted) -> None:
        """Store a completed lookup under the raw and cleaned identifier."""
        if not event.name:
            return
        with self._lock:
            self._names[event.identifier] = event.name
            cleaned = clean_phone(event.identifier)
            if cleaned and "@" not in event.identifier:
                self._names[cleaned] = event.name

    def get(self, identifier: str) -> Optional[str]:
        """
        Look up a cached name.

        Tries the exact identifier, then its cleaned phone form, then a
        partial match of cleaned phone numbers in either direction.
        """
        if not identifier:
            return None

        with self._lock:
            name = self._names.get(identifier)
            if name:
                return name

            if "@" in identifier:
                return None

            cleaned = clean_phone(identifier)
            if not cleaned:
                return None
            if cleaned != identifier:
                name = self._names.get(cleaned)
                if name:
                    return name

            if len(cleaned) < MIN_LENIENT_MATCH_LENGTH:
                return None
            for cached_id, cached_name in self._names.items():
                cached_cleaned = clean_phone(cached_id)
                if len(cached_cleaned) < MIN_LENIENT_MATCH_LENGTH:
                    continue
                if cached_cleaned in cleaned or cleaned in cached_cleaned:
                    return cached_name

        return None

    def attach(self, dispatcher: OperationDispatcher) -> None:
        """Subscribe handle() to lookup completions on a dispatcher."""
        dispatcher.subscribe(ContactLookupCompleted, self.handle)

    def schedule_lookup(
        self,
        dispatcher: OperationDispatcher,
        identifier: str,
        lookup: Callable[[str], str] = lookup_via_applescript,
    ) -> bool:
        """
        Start a background lookup unless the identifier is already cached.

        Returns:
            True if a lookup was started.
        """
        if not identifier or self.get(identifier):
            return False
        dispatcher.lookup_contact(identifier, lookup)
        return True
