"""Plain data types passed between the client layer and output rendering."""

from __future__ import annotations

from dataclasses import dataclass, field
from email.utils import formataddr

from .colors import color_from_keywords


@dataclass
class Address:
    name: str = ""
    email: str = ""

    @classmethod
    def from_jmap(cls, data: dict) -> Address:
        return cls(name=data.get("name") or "", email=data.get("email") or "")

    def to_jmap(self) -> dict:
        return {"name": self.name or None, "email": self.email}

    def __str__(self) -> str:
        return formataddr((self.name, self.email)) if self.name else self.email


def addresses_from_jmap(items: list | None) -> list[Address]:
    return [Address.from_jmap(a) for a in items or []]


@dataclass
class Mailbox:
    id: str
    name: str
    role: str | None = None
    parent_id: str | None = None
    total_emails: int = 0
    unread_emails: int = 0

    @classmethod
    def from_jmap(cls, data: dict) -> Mailbox:
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            role=data.get("role") or None,
            parent_id=data.get("parentId") or None,
            total_emails=data.get("totalEmails", 0),
            unread_emails=data.get("unreadEmails", 0),
        )


@dataclass
class DestinationInfo:
    id: str
    name: str

    @classmethod
    def of(cls, mailbox: Mailbox) -> DestinationInfo:
        return cls(id=mailbox.id, name=mailbox.name)


@dataclass
class EmailSummary:
    id: str
    thread_id: str
    from_: list[Address]
    to: list[Address]
    subject: str
    received_at: str
    size: int
    is_unread: bool
    is_flagged: bool
    preview: str
    flag_color: str | None = None
    snippet: str | None = None

    @classmethod
    def from_jmap(cls, data: dict) -> EmailSummary:
        keywords = data.get("keywords") or {}
        color = color_from_keywords(keywords)
        return cls(
            id=data["id"],
            thread_id=data.get("threadId", ""),
            from_=addresses_from_jmap(data.get("from")),
            to=addresses_from_jmap(data.get("to")),
            subject=data.get("subject") or "",
            received_at=data.get("receivedAt") or "",
            size=data.get("size", 0),
            is_unread=not keywords.get("$seen", False),
            is_flagged=bool(keywords.get("$flagged", False)),
            preview=data.get("preview") or "",
            flag_color=str(color) if color is not None else None,
        )


@dataclass
class EmailListResult:
    total: int
    offset: int
    emails: list[EmailSummary] = field(default_factory=list)


@dataclass
class Attachment:
    name: str
    type: str
    size: int


@dataclass
class Header:
    name: str
    value: str


@dataclass
class EmailDetail:
    id: str
    thread_id: str
    from_: list[Address]
    to: list[Address]
    cc: list[Address]
    bcc: list[Address]
    reply_to: list[Address]
    subject: str
    sent_at: str | None
    received_at: str
    is_unread: bool
    is_flagged: bool
    body: str
    attachments: list[Attachment] = field(default_factory=list)
    list_unsubscribe: str | None = None
    list_unsubscribe_post: str | None = None
    headers: list[Header] | None = None


@dataclass
class ThreadEmail:
    id: str
    from_: list[Address]
    to: list[Address]
    subject: str
    received_at: str
    preview: str
    is_unread: bool


@dataclass
class ThreadView:
    email: EmailDetail
    thread: list[ThreadEmail]


@dataclass
class AccountInfo:
    name: str
    is_personal: bool


@dataclass
class SessionInfo:
    username: str
    accounts: dict[str, AccountInfo]
    capabilities: list[str]


@dataclass
class SenderStat:
    email: str
    name: str
    count: int
    subjects: list[str] | None = None


@dataclass
class StatsResult:
    total: int
    senders: list[SenderStat]


@dataclass
class SummarySender:
    email: str
    name: str
    count: int = 0
    unread: int = 0
    newsletter: bool | None = None
    subjects: list[str] | None = None


@dataclass
class DomainStat:
    domain: str
    count: int = 0
    unread: int = 0


@dataclass
class SummaryResult:
    """Triage overview of one mailbox.

    ``senders`` and ``domains`` hold the top entries only; ``sender_count``
    and ``domain_count`` count all of them. ``newsletters`` is None unless
    newsletter detection was requested.
    """

    total: int
    unread: int
    sender_count: int
    domain_count: int
    senders: list[SummarySender]
    domains: list[DomainStat]
    newsletters: list[SummarySender] | None = None


@dataclass
class BatchOutcome:
    """Per-id result of one bulk mutation.

    Every requested id appears exactly once, either in ``succeeded`` or as an
    ``(id, reason)`` pair in ``failed``.
    """

    succeeded: list[str] = field(default_factory=list)
    failed: list[tuple[str, str]] = field(default_factory=list)

    @property
    def errors(self) -> list[str]:
        return [f"{email_id}: {reason}" for email_id, reason in self.failed]

    @property
    def ok(self) -> bool:
        return not self.failed


@dataclass
class MutationResult:
    """Rendered outcome of archive/move/spam/mark-read/flag/unflag.

    ``verb`` names the key the succeeded ids are reported under
    (e.g. "archived", "moved").
    """

    verb: str
    matched: int
    outcome: BatchOutcome
    destination: DestinationInfo | None = None

    def to_dict(self) -> dict:
        data: dict = {
            "matched": self.matched,
            "processed": len(self.outcome.succeeded) + len(self.outcome.failed),
            "failed": len(self.outcome.failed),
            self.verb: self.outcome.succeeded,
        }
        if self.destination is not None:
            data["destination"] = {"id": self.destination.id, "name": self.destination.name}
        data["errors"] = self.outcome.errors
        return data


@dataclass
class DryRunResult:
    operation: str
    count: int
    emails: list[EmailSummary]
    not_found: list[str]
    destination: DestinationInfo | None = None


@dataclass
class DraftSpec:
    """Everything needed to build the Email/set create entry for one draft."""

    mode: str
    from_: list[Address]
    to: list[Address]
    cc: list[Address]
    bcc: list[Address]
    subject: str
    body: str
    html: bool = False
    in_reply_to: list[str] = field(default_factory=list)
    references: list[str] = field(default_factory=list)


@dataclass
class DraftResult:
    id: str
    mode: str
    mailbox: DestinationInfo
    from_: list[Address]
    to: list[Address]
    cc: list[Address]
    bcc: list[Address]
    subject: str
    in_reply_to: str | None = None


@dataclass
class SieveScriptInfo:
    id: str
    name: str
    is_active: bool


@dataclass
class SieveScriptList:
    total: int
    scripts: list[SieveScriptInfo] = field(default_factory=list)


@dataclass
class SieveScriptDetail:
    """A stored script with its content; also the result of creating one."""

    id: str
    name: str
    blob_id: str
    is_active: bool
    content: str


@dataclass
class SieveValidateResult:
    valid: bool
    content: str
    error: str | None = None


@dataclass
class SieveActivateResult:
    id: str | None
    is_active: bool


@dataclass
class SieveDeleteResult:
    id: str
    name: str


@dataclass
class SieveDryRunResult:
    operation: str
    script: str
    content: str | None = None
    valid: bool | None = None
