"""Mailbox lookups by role, name, or id."""

from __future__ import annotations

from .client import Client
from .errors import NotFoundError
from .logging import get_logger
from .models import Mailbox

logger = get_logger(__name__)

ROLES = ("inbox", "archive", "junk", "drafts", "sent", "trash")


def get_all_mailboxes(client: Client) -> list[Mailbox]:
    """All mailboxes in the account, fetched once per client."""
    if client.mailbox_cache is None:
        result = client.call("Mailbox/get", {"ids": None})
        client.mailbox_cache = [Mailbox.from_jmap(m) for m in result.get("list", [])]
        logger.debug(f"Fetched {len(client.mailbox_cache)} mailboxes")
    return client.mailbox_cache


def get_mailbox_by_role(client: Client, role: str) -> Mailbox:
    for mailbox in get_all_mailboxes(client):
        if mailbox.role == role:
            return mailbox
    raise NotFoundError(f"no mailbox found with role {role!r}")


def get_mailbox_by_name_or_id(client: Client, name_or_id: str) -> Mailbox:
    """Find a mailbox by exact id or case-insensitive name."""
    lower = name_or_id.lower()
    for mailbox in get_all_mailboxes(client):
        if mailbox.id == name_or_id or mailbox.name.lower() == lower:
            return mailbox
    raise NotFoundError(f"mailbox not found: {name_or_id!r}")


def resolve_mailbox(client: Client, name_or_id: str) -> Mailbox:
    """Resolve a role name ("inbox", "archive", ...), mailbox name, or id."""
    role = name_or_id.lower()
    if role in ROLES:
        try:
            return get_mailbox_by_role(client, role)
        except NotFoundError:
            pass
    return get_mailbox_by_name_or_id(client, name_or_id)


def list_mailboxes(client: Client, roles_only: bool = False) -> list[Mailbox]:
    mailboxes = get_all_mailboxes(client)
    if roles_only:
        return [m for m in mailboxes if m.role]
    return list(mailboxes)
