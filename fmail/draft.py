"""Draft composition: new, reply, reply-all, and forward.

Drafts are created with a single Email/set ``create`` in the Drafts mailbox
and checked by ``validate_set_for_draft`` before they are sent to the server.
Nothing here submits mail.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from email.utils import parseaddr
from enum import Enum

from .client import Client
from .errors import NotFoundError
from .jmap import Request
from .logging import FmailError, get_logger
from .mailboxes import get_mailbox_by_role
from .messages import extract_body, get_email
from .models import (
    Address,
    DestinationInfo,
    DraftResult,
    DraftSpec,
    addresses_from_jmap,
)
from .safety import DRAFT_KEYWORD, validate_set_for_draft

logger = get_logger(__name__)

CREATE_ID = "draft-0"
BODY_PART_ID = "body"
FORWARD_SEPARATOR = "\n\n---------- Forwarded message ----------\n"

# Email/get properties needed to reply to or forward an email
REPLY_PROPERTIES = [
    "id", "from", "to", "cc", "replyTo", "subject",
    "messageId", "references", "inReplyTo",
    "bodyValues", "textBody", "htmlBody",
]


class DraftMode(str, Enum):
    NEW = "new"
    REPLY = "reply"
    REPLY_ALL = "reply-all"
    FORWARD = "forward"

    def __str__(self) -> str:
        return self.value


@dataclass
class DraftOptions:
    mode: DraftMode = DraftMode.NEW
    to: list[Address] = field(default_factory=list)
    cc: list[Address] = field(default_factory=list)
    bcc: list[Address] = field(default_factory=list)
    subject: str = ""
    body: str = ""
    html: bool = False
    original_id: str | None = None


def reply_subject(original: str) -> str:
    """Prefix "Re: " unless the subject already starts with it (any case)."""
    trimmed = original.strip()
    if trimmed.lower().startswith("re:"):
        return trimmed
    return f"Re: {trimmed}"


def forward_subject(original: str) -> str:
    """Prefix "Fwd: " unless the subject already starts with it (any case)."""
    trimmed = original.strip()
    if trimmed.lower().startswith("fwd:"):
        return trimmed
    return f"Fwd: {trimmed}"


def dedup(items: list[str]) -> list[str]:
    """Remove duplicates, keeping first occurrences in order."""
    seen: set[str] = set()
    result = []
    for item in items:
        if item not in seen:
            seen.add(item)
            result.append(item)
    return result


def append_dedup(base: list[Address], additional: list[Address]) -> list[Address]:
    """Append addresses not already present in ``base`` (case-insensitive email)."""
    seen = {a.email.lower() for a in base}
    result = list(base)
    for address in additional:
        lower = address.email.lower()
        if lower in seen:
            continue
        result.append(address)
        seen.add(lower)
    return result


def session_from_address(username: str) -> list[Address]:
    """From address derived from the session username, if it looks like one."""
    if not username:
        return []
    name, addr = parseaddr(username)
    local, at, domain = addr.partition("@")
    if not (at and local and domain):
        return []
    return [Address(name=name, email=addr)]


def compose_draft(
    client: Client,
    mode: DraftMode,
    to: list[Address],
    cc: list[Address],
    bcc: list[Address],
    subject: str,
    body: str,
    original: dict | None = None,
    html: bool = False,
) -> DraftSpec:
    """Derive recipients, subject, body, and threading headers for a draft.

    ``original`` is the raw Email being replied to or forwarded (fetched with
    REPLY_PROPERTIES); it is ignored for new drafts. A non-empty ``subject``
    overrides the derived Re:/Fwd: subject.
    """
    mode = DraftMode(mode)
    from_ = session_from_address(client.username)
    spec = DraftSpec(
        mode=mode.value,
        from_=from_,
        to=list(to),
        cc=list(cc),
        bcc=list(bcc),
        subject=subject,
        body=body,
        html=html,
    )
    if mode is DraftMode.NEW:
        return spec

    if original is None:
        raise FmailError(f"{mode} draft requires the original email")

    original_subject = original.get("subject") or ""

    if mode is DraftMode.FORWARD:
        spec.subject = subject or forward_subject(original_subject)
        spec.body = body + FORWARD_SEPARATOR + extract_body(original)
        return spec

    # Reply and reply-all
    base_to = addresses_from_jmap(original.get("replyTo")) or addresses_from_jmap(
        original.get("from")
    )
    spec.to = append_dedup(base_to, to)
    spec.cc = []

    if mode is DraftMode.REPLY and cc:
        logger.warning("Ignoring CC on a plain reply", cc=[a.email for a in cc])

    if mode is DraftMode.REPLY_ALL:
        self_email = from_[0].email.lower() if from_ else ""
        seen = {a.email.lower() for a in spec.to}
        candidates = addresses_from_jmap(original.get("to")) + addresses_from_jmap(
            original.get("cc")
        )
        for address in candidates:
            lower = address.email.lower()
            if lower == self_email or lower in seen:
                continue
            spec.cc.append(address)
            seen.add(lower)
        spec.cc = append_dedup(spec.cc, cc)

    spec.subject = subject or reply_subject(original_subject)

    message_id = original.get("messageId") or []
    if message_id:
        spec.in_reply_to = list(message_id)
        spec.references = dedup(list(original.get("references") or []) + message_id)
    return spec


def build_draft_set(spec: DraftSpec, account_id: str, drafts_id: str) -> dict:
    """Email/set arguments creating ``spec`` as a single draft."""
    entry: dict = {
        "mailboxIds": {drafts_id: True},
        "keywords": {DRAFT_KEYWORD: True, "$seen": True},
        "to": [a.to_jmap() for a in spec.to],
        "cc": [a.to_jmap() for a in spec.cc],
        "bcc": [a.to_jmap() for a in spec.bcc],
        "subject": spec.subject,
        "bodyValues": {BODY_PART_ID: {"value": spec.body}},
    }
    if spec.from_:
        entry["from"] = [a.to_jmap() for a in spec.from_]
    if spec.in_reply_to:
        entry["inReplyTo"] = spec.in_reply_to
    if spec.references:
        entry["references"] = spec.references

    if spec.html:
        entry["htmlBody"] = [{"partId": BODY_PART_ID, "type": "text/html"}]
    else:
        entry["textBody"] = [{"partId": BODY_PART_ID, "type": "text/plain"}]

    return {"accountId": account_id, "create": {CREATE_ID: entry}}


def fetch_original(client: Client, email_id: str) -> dict:
    try:
        return get_email(client, email_id, REPLY_PROPERTIES)
    except NotFoundError:
        raise NotFoundError(f"original email {email_id}: not found") from None


def create_draft(client: Client, options: DraftOptions) -> DraftResult:
    """Compose and save a draft in the Drafts mailbox.

    Raises:
        NotFoundError: No Drafts mailbox, or the original email doesn't exist
        ForbiddenError: The Email/set arguments fail draft validation
        FmailError: The server refused to create the draft
    """
    mode = DraftMode(options.mode)
    drafts = get_mailbox_by_role(client, "drafts")

    original = None
    if mode is not DraftMode.NEW:
        if not options.original_id:
            raise FmailError(f"{mode} draft requires an original email id")
        original = fetch_original(client, options.original_id)

    spec = compose_draft(
        client,
        mode,
        options.to,
        options.cc,
        options.bcc,
        options.subject,
        options.body,
        original=original,
        html=options.html,
    )
    set_args = build_draft_set(spec, client.account_id, drafts.id)
    validate_set_for_draft(set_args, drafts.id)

    request = Request()
    call_id = request.invoke("Email/set", set_args)
    response = client.do(request)
    inv = response.get(call_id)
    if inv is None:
        raise FmailError("draft creation: unexpected response")
    inv.raise_for_error("Email/set")

    created = (inv.args.get("created") or {}).get(CREATE_ID)
    if created is None:
        set_error = (inv.args.get("notCreated") or {}).get(CREATE_ID)
        if set_error is None:
            raise FmailError("draft creation: unexpected response")
        reason = set_error.get("description") or set_error.get("type") or "unknown error"
        raise FmailError(f"draft creation failed: {reason}")

    logger.info("Draft created", id=created.get("id"), mode=mode.value)
    return DraftResult(
        id=created.get("id", ""),
        mode=mode.value,
        mailbox=DestinationInfo.of(drafts),
        from_=spec.from_,
        to=spec.to,
        cc=spec.cc,
        bcc=spec.bcc,
        subject=spec.subject,
        in_reply_to=", ".join(spec.in_reply_to) or None,
    )
