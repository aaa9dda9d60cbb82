"""
FastAPI backend for chime.

Exposes the access layer over HTTP: chat and message listings from chat.db,
the mark-read update, CRUD on the contacts directory, and name resolution.

chat.db is opened per request and only written by POST /chats/{id}/read.

Environment Variables:
    CHIME_DB_PATH: chat.db location (see Config).
    CHIME_CONTACTS_DIR: contacts directory (see Config).
    CHIME_ALLOWED_ORIGIN: extra CORS origin for a local front end.
"""

from __future__ import annotations

import os
from dataclasses import asdict
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from chime.addressbook import SystemContacts
from chime.config import get_config
from chime.directory import ContactCache, ContactDirectory
from chime.errors import ChimeError, NotFoundError, ParseError, StoreIOError, ValidationError
from chime.events import OperationDispatcher
from chime.external import ExternalNameCache
from chime.models import Chat, Contact, Message
from chime.resolution import ContactResolver, build_resolver
from chime.store import MessageStore

_ERROR_STATUS = {
    ValidationError: 422,
    NotFoundError: 404,
    StoreIOError: 503,
    ParseError: 500,
}

# Lazily built, shared by all requests
_directory: Optional[ContactDirectory] = None
_dispatcher: Optional[OperationDispatcher] = None
_external_cache = ExternalNameCache()


def _get_dispatcher() -> OperationDispatcher:
    """Get the background dispatcher feeding the lookup cache."""
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = OperationDispatcher(max_workers=2)
        _external_cache.attach(_dispatcher)
    return _dispatcher


def _get_directory() -> ContactDirectory:
    """Get the process-wide contacts directory."""
    global _directory
    if _directory is None:
        config = get_config()
        _directory = ContactDirectory(config.contacts_dir, cache=ContactCache(config.cache_ttl))
    return _directory


def _get_resolver() -> ContactResolver:
    """Build the resolver over the directory, lookup cache and AddressBook."""
    config = get_config()
    return build_resolver(
        directory=_get_directory(),
        external_cache=_external_cache,
        system_contacts=SystemContacts(config.address_book_path),
    )


def _get_store() -> MessageStore:
    """Get a message store wired to the resolver."""
    return MessageStore(get_config(), resolver=_get_resolver())


class ContactBody(BaseModel):
    """Request body for creating or editing a contact."""

    name: str
    phone_numbers: List[str] = Field(default_factory=list)
    emails: List[str] = Field(default_factory=list)


def _chat_to_dict(chat: Chat) -> Dict[str, Any]:
    data = asdict(chat)
    data["last_time"] = chat.last_time.isoformat() if chat.last_time else None
    return data


def _message_to_dict(message: Message) -> Dict[str, Any]:
    data = asdict(message)
    data["date"] = message.date.isoformat() if message.date else None
    return data


app = FastAPI(
    title="chime API",
    version="0.1.0",
    description="Chats, messages and contacts from the local Messages database.",
)

# Local dev CORS defaults
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        os.getenv("CHIME_ALLOWED_ORIGIN", "http://127.0.0.1:5173"),
        "http://localhost:5173",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ChimeError)
def chime_error_handler(request: Request, exc: ChimeError) -> JSONResponse:
    """Map chime errors to HTTP status codes."""
    status = 500
    for error_type, code in _ERROR_STATUS.items():
        if isinstance(exc, error_type):
            status = code
            break
    return JSONResponse(status_code=status, content=exc.to_dict())


@app.get("/health")
def health() -> Dict[str, Any]:
    """Health check - reports whether chat.db and the AddressBook are readable."""
    config = get_config()
    db_ok = config.validate()
    return {
        "status": "ok" if db_ok else "degraded",
        "db_path": config.db_path_str,
        "db_readable": db_ok,
        "address_book_readable": config.validate_contacts(),
        "contacts_dir": str(config.contacts_dir),
    }


@app.get("/chats")
def chats() -> List[Dict[str, Any]]:
    """List chats, most recently active first."""
    return [_chat_to_dict(chat) for chat in _get_store().list_chats()]


@app.get("/chats/{chat_id}/messages")
def messages(chat_id: int) -> List[Dict[str, Any]]:
    """List the messages of one chat, oldest first."""
    return [_message_to_dict(m) for m in _get_store().list_messages(chat_id)]


@app.post("/chats/{chat_id}/read")
def mark_read(chat_id: int) -> Dict[str, Any]:
    """Mark every unread incoming message of a chat as read."""
    changed = _get_store().mark_read(chat_id)
    return {"chat_id": chat_id, "changed": changed}


@app.get("/contacts")
def contacts() -> List[Dict[str, Any]]:
    """List user-defined contacts."""
    return [asdict(c) for c in _get_directory().list_contacts()]


@app.get("/contacts/{name}")
def contact_detail(name: str) -> Dict[str, Any]:
    """Get one contact by name."""
    return asdict(_get_directory().load(name))


@app.put("/contacts/{name}")
def put_contact(name: str, body: ContactBody) -> Dict[str, Any]:
    """
    Create or edit a contact.

    When the body's name differs from the path name, the record is renamed.
    """
    directory = _get_directory()
    contact = Contact(name=body.name, phone_numbers=body.phone_numbers, emails=body.emails)
    original = name if name != body.name else None
    return asdict(directory.update(contact, original_name=original))


@app.delete("/contacts/{name}")
def delete_contact(name: str) -> Dict[str, Any]:
    """Delete a contact."""
    _get_directory().delete(name)
    return {"deleted": name}


@app.get("/resolve/{identifier:path}")
def resolve(identifier: str) -> Dict[str, Any]:
    """
    Resolve a phone number or email to a display name.

    On a miss, a background Contacts.app lookup is started; a later request
    for the same identifier may then resolve from the lookup cache.
    """
    dispatcher = _get_dispatcher()
    dispatcher.dispatch_pending()

    name = _get_resolver().resolve(identifier)
    lookup_started = False
    if not name:
        lookup_started = _external_cache.schedule_lookup(dispatcher, identifier)

    return {
        "identifier": identifier,
        "name": name,
        "display": name or identifier,
        "resolved": bool(name),
        "lookup_started": lookup_started,
    }
