"""JSON and text rendering of command results."""

from __future__ import annotations

import dataclasses
import json
from typing import Any

from .models import (
    Address,
    DraftResult,
    DryRunResult,
    EmailDetail,
    EmailListResult,
    EmailSummary,
    Mailbox,
    MutationResult,
    SessionInfo,
    SieveDryRunResult,
    SieveScriptDetail,
    SieveScriptList,
    SieveValidateResult,
    StatsResult,
    SummaryResult,
    ThreadView,
)

FORMATS = ("json", "text")

MAX_FROM_WIDTH = 40
MAX_SUBJECT_WIDTH = 80

# Dataclass field names that differ from their JSON keys
_RENAMED_KEYS = {"from_": "from"}


def to_jsonable(value: Any) -> Any:
    """Convert result objects to plain JSON-compatible values."""
    if isinstance(value, MutationResult):
        return value.to_dict()
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {
            _RENAMED_KEYS.get(f.name, f.name): to_jsonable(getattr(value, f.name))
            for f in dataclasses.fields(value)
        }
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    return value


def render(data: Any, fmt: str = "json") -> str:
    if fmt == "text":
        return render_text(data)
    return json.dumps(to_jsonable(data), indent=2, ensure_ascii=False)


def format_error(code: str, message: str, hint: str = "", fmt: str = "json") -> str:
    if fmt == "text":
        text = f"Error [{code}]: {message}"
        if hint:
            text += f"\nHint: {hint}"
        return text
    data = {"error": code, "message": message}
    if hint:
        data["hint"] = hint
    return json.dumps(data, indent=2)


def truncate(text: str, width: int) -> str:
    """Shorten to ``width`` characters ending in "..." (unchanged if width < 4)."""
    if width < 4 or len(text) <= width:
        return text
    return text[: width - 3] + "..."


def _addrs(addresses: list[Address]) -> str:
    return ", ".join(str(a) for a in addresses)


def _short_date(timestamp: str) -> str:
    # "2025-01-02T03:04:05Z" -> "2025-01-02 03:04"
    return timestamp[:16].replace("T", " ")


def render_text(data: Any) -> str:
    if isinstance(data, SessionInfo):
        return _session_text(data)
    if isinstance(data, list) and all(isinstance(m, Mailbox) for m in data):
        return _mailboxes_text(data)
    if isinstance(data, EmailListResult):
        return _email_list_text(data)
    if isinstance(data, EmailDetail):
        return _email_detail_text(data)
    if isinstance(data, ThreadView):
        return _thread_text(data)
    if isinstance(data, MutationResult):
        return _mutation_text(data)
    if isinstance(data, DryRunResult):
        return _dry_run_text(data)
    if isinstance(data, StatsResult):
        return _stats_text(data)
    if isinstance(data, SummaryResult):
        return _summary_text(data)
    if isinstance(data, DraftResult):
        return _draft_text(data)
    if isinstance(data, SieveScriptList):
        return _sieve_list_text(data)
    if isinstance(data, SieveScriptDetail):
        return _sieve_detail_text(data)
    if isinstance(data, SieveValidateResult):
        return _sieve_validate_text(data)
    if isinstance(data, SieveDryRunResult):
        return _sieve_dry_run_text(data)
    return json.dumps(to_jsonable(data), indent=2, ensure_ascii=False)


def _session_text(info: SessionInfo) -> str:
    lines = [
        f"Username: {info.username}",
        f"Capabilities: {', '.join(info.capabilities)}",
    ]
    for account_id in sorted(info.accounts):
        account = info.accounts[account_id]
        personal = " (personal)" if account.is_personal else ""
        lines.append(f"Account: {account_id} - {account.name}{personal}")
    return "\n".join(lines)


def _mailboxes_text(mailboxes: list[Mailbox]) -> str:
    if not mailboxes:
        return "No mailboxes"
    name_width = max(len(m.name) for m in mailboxes)
    id_width = max(len(m.id) for m in mailboxes)
    lines = []
    for m in mailboxes:
        role = f"[{m.role}]" if m.role else ""
        lines.append(
            f"{m.name:<{name_width}}  {m.id:<{id_width}}  "
            f"total:{m.total_emails}  unread:{m.unread_emails}  {role}".rstrip()
        )
    return "\n".join(lines)


def _summary_rows(emails: list[EmailSummary]) -> list[tuple[str, str, str]]:
    rows = []
    for e in emails:
        sender = truncate(str(e.from_[0]), MAX_FROM_WIDTH) if e.from_ else ""
        rows.append((sender, truncate(e.subject, MAX_SUBJECT_WIDTH), _short_date(e.received_at)))
    return rows


def _email_list_text(result: EmailListResult) -> str:
    lines = [
        f"Total: {result.total} (showing {len(result.emails)} from offset {result.offset})",
        "",
    ]
    rows = _summary_rows(result.emails)
    from_width = max((len(r[0]) for r in rows), default=0)
    subject_width = max((len(r[1]) for r in rows), default=0)
    for email, (sender, subject, date) in zip(result.emails, rows):
        unread = "*" if email.is_unread else " "
        flag = ""
        if email.is_flagged:
            flag = f"  [flagged: {email.flag_color}]" if email.flag_color else "  [flagged]"
        lines.append(
            f"{unread} {sender:<{from_width}}  {subject:<{subject_width}}  {date}{flag}"
        )
        lines.append(f"  ID: {email.id}")
        if email.snippet:
            lines.append(f"  ...{email.snippet}")
    return "\n".join(lines)


def _email_detail_text(email: EmailDetail) -> str:
    lines = [
        f"Subject: {email.subject}",
        f"From: {_addrs(email.from_)}",
        f"To: {_addrs(email.to)}",
    ]
    if email.cc:
        lines.append(f"CC: {_addrs(email.cc)}")
    if email.reply_to:
        lines.append(f"Reply-To: {_addrs(email.reply_to)}")
    lines.append(f"Date: {email.received_at}")
    if email.list_unsubscribe:
        lines.append(f"List-Unsubscribe: {email.list_unsubscribe}")
    if email.list_unsubscribe_post:
        lines.append(f"List-Unsubscribe-Post: {email.list_unsubscribe_post}")
    lines.append(f"ID: {email.id}")
    if email.headers:
        lines.append("-" * 72)
        lines.extend(f"{h.name}: {h.value.strip()}" for h in email.headers)
    lines.append("-" * 72)
    lines.append(email.body)
    if email.attachments:
        lines.append("-" * 72)
        lines.append(f"Attachments ({len(email.attachments)}):")
        lines.extend(f"  - {a.name} ({a.type}, {a.size} bytes)" for a in email.attachments)
    return "\n".join(lines)


def _thread_text(view: ThreadView) -> str:
    lines = [f"Thread ({len(view.thread)} messages):", ""]
    for index, entry in enumerate(view.thread, start=1):
        current = entry.id == view.email.id
        marker = "> " if current else "  "
        sender = str(entry.from_[0]) if entry.from_ else ""
        lines.append(
            f"{marker}[{index}] {sender} - {entry.subject} ({_short_date(entry.received_at)})"
        )
        if not current and entry.preview:
            lines.append(f"      {entry.preview}")
    lines.append("")
    lines.append(_email_detail_text(view.email))
    return "\n".join(lines)


def _mutation_text(result: MutationResult) -> str:
    outcome = result.outcome
    processed = len(outcome.succeeded) + len(outcome.failed)
    lines = [f"Matched: {result.matched}, Processed: {processed}, Failed: {len(outcome.failed)}"]
    if outcome.succeeded:
        label = result.verb.replace("_", " ").capitalize()
        lines.append(f"{label}: {', '.join(outcome.succeeded)}")
    if result.destination is not None:
        lines.append(f"Destination: {result.destination.name} ({result.destination.id})")
    if outcome.failed:
        lines.append("Errors:")
        lines.extend(f"  - {error}" for error in outcome.errors)
    return "\n".join(lines)


def _dry_run_text(result: DryRunResult) -> str:
    lines = [f"Dry run: would {result.operation} {result.count} email(s)"]
    if result.emails:
        lines.append("")
        rows = _summary_rows(result.emails)
        id_width = max(len(e.id) for e in result.emails)
        from_width = max(len(r[0]) for r in rows)
        subject_width = max(len(r[1]) for r in rows)
        for email, (sender, subject, date) in zip(result.emails, rows):
            lines.append(
                f"  {email.id:<{id_width}}  {sender:<{from_width}}  "
                f"{subject:<{subject_width}}  {date}"
            )
    if result.destination is not None:
        lines.append("")
        lines.append(f"Destination: {result.destination.name} ({result.destination.id})")
    if result.not_found:
        lines.append("")
        lines.append(f"Not found: {', '.join(result.not_found)}")
    return "\n".join(lines)


def _stats_text(result: StatsResult) -> str:
    lines = [f"Total: {result.total} emails from {len(result.senders)} senders", ""]
    count_width = max((len(str(s.count)) for s in result.senders), default=1)
    for stat in result.senders:
        sender = f"{stat.name} <{stat.email}>" if stat.name else stat.email
        lines.append(f"{stat.count:>{count_width}}  {sender}")
        for subject in stat.subjects or []:
            lines.append(f"{'':>{count_width}}    - {subject}")
    return "\n".join(lines)


def _summary_text(result: SummaryResult) -> str:
    lines = [
        f"Total: {result.total} emails ({result.unread} unread) from "
        f"{result.sender_count} senders across {result.domain_count} domains",
    ]
    counts = [s.count for s in result.senders] + [d.count for d in result.domains]
    width = max((len(str(c)) for c in counts), default=1)

    if result.senders:
        lines += ["", "Top senders:"]
        for stat in result.senders:
            sender = f"{stat.name} <{stat.email}>" if stat.name else stat.email
            tag = " [newsletter]" if stat.newsletter else ""
            lines.append(f"  {stat.count:>{width}}  {sender}  (unread: {stat.unread}){tag}")
            for subject in stat.subjects or []:
                lines.append(f"  {'':>{width}}    - {subject}")
    if result.domains:
        lines += ["", "Top domains:"]
        for domain in result.domains:
            lines.append(f"  {domain.count:>{width}}  {domain.domain}  (unread: {domain.unread})")
    if result.newsletters is not None:
        lines += ["", "Newsletters:"]
        if not result.newsletters:
            lines.append("  (none)")
        lines.extend(f"  {s.count:>{width}}  {s.email}" for s in result.newsletters)
    return "\n".join(lines)


def _sieve_list_text(result: SieveScriptList) -> str:
    if not result.scripts:
        return "No sieve scripts"
    id_width = max(len(s.id) for s in result.scripts)
    return "\n".join(
        f"{'*' if s.is_active else ' '} {s.id:<{id_width}}  {s.name}" for s in result.scripts
    )


def _sieve_detail_text(script: SieveScriptDetail) -> str:
    status = "active" if script.is_active else "inactive"
    return "\n".join(
        [f"Script: {script.name} ({script.id}, {status})", "-" * 72, script.content.rstrip("\n")]
    )


def _sieve_validate_text(result: SieveValidateResult) -> str:
    if result.valid:
        return "Valid"
    return f"Invalid: {result.error}"


def _sieve_dry_run_text(result: SieveDryRunResult) -> str:
    lines = [f"Dry run: would {result.operation} sieve script {result.script}"]
    if result.valid is not None:
        lines.append("Server validation: " + ("valid" if result.valid else "invalid"))
    if result.content:
        lines += ["-" * 72, result.content.rstrip("\n")]
    return "\n".join(lines)


def _draft_text(result: DraftResult) -> str:
    lines = [
        f"Draft created: {result.id}",
        f"Mode: {result.mode}",
        f"Mailbox: {result.mailbox.name} ({result.mailbox.id})",
    ]
    if result.from_:
        lines.append(f"From: {_addrs(result.from_)}")
    lines.append(f"To: {_addrs(result.to)}")
    if result.cc:
        lines.append(f"CC: {_addrs(result.cc)}")
    if result.bcc:
        lines.append(f"BCC: {_addrs(result.bcc)}")
    lines.append(f"Subject: {result.subject}")
    if result.in_reply_to:
        lines.append(f"In-Reply-To: {result.in_reply_to}")
    return "\n".join(lines)
