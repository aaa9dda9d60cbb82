"""
Identifier → display name resolution.

Resolution is an ordered list of resolvers sharing one signature,
``identifier -> Optional[str]``. The first non-empty answer wins:

    1. ContactDirectory (user-defined contacts, authoritative)
    2. ExternalNameCache (filled by background Contacts.app lookups)
    3. SystemContacts (AddressBook database, queried directly)

New sources are added with add_resolver() without touching existing ones.
"""

import logging
from typing import Callable, Iterable, List, Optional

from chime.addressbook import SystemContacts
from chime.directory import ContactDirectory
from chime.external import ExternalNameCache

logger = logging.getLogger(__name__)

Resolver = Callable[[str], Optional[str]]


class ContactResolver:
    """Resolves identifiers to names through an ordered list of resolvers."""

    def __init__(self, resolvers: Optional[Iterable[Resolver]] = None):
        self._resolvers: List[Resolver] = list(resolvers or [])

    @property
    def resolvers(self) -> List[Resolver]:
        return list(self._resolvers)

    def add_resolver(self, resolver: Resolver) -> None:
        """Append a resolver, consulted after the existing ones."""
        self._resolvers.append(resolver)

    def resolve(self, identifier: str) -> str:
        """
        Resolve an identifier to a display name.

        A resolver that raises is logged and treated as a miss.

        Returns:
            The first name found, or "" (callers show the raw identifier).
        """
        if not identifier:
            return ""

        for resolver in self._resolvers:
            try:
                name = resolver(identifier)
            except Exception as e:
                logger.warning(f"Resolver {resolver!r} failed for {identifier!r}: {e}")
                continue
            if name:
                return name
        return ""

    def __call__(self, identifier: str) -> str:
        return self.resolve(identifier)


def build_resolver(
    directory: Optional[ContactDirectory] = None,
    external_cache: Optional[ExternalNameCache] = None,
    system_contacts: Optional[SystemContacts] = None,
) -> ContactResolver:
    """
    Wire the default resolution order from whichever sources are available.
    """
    resolver = ContactResolver()
    if directory is not None:
        resolver.add_resolver(directory.find_by_identifier)
    if external_cache is not None:
        resolver.add_resolver(external_cache.get)
    if system_contacts is not None:
        resolver.add_resolver(system_contacts.find_name)
    return resolver
