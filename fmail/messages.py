"""Read-only email operations: list, search, read, thread, stats, summary."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterator

from .client import Client
from .errors import NotFoundError
from .jmap import Request, result_ref
from .logging import FmailError, get_logger
from .models import (
    Attachment,
    DomainStat,
    EmailDetail,
    EmailListResult,
    EmailSummary,
    Header,
    SenderStat,
    StatsResult,
    SummaryResult,
    SummarySender,
    ThreadEmail,
    ThreadView,
    addresses_from_jmap,
)

logger = get_logger(__name__)

# Email/get properties used for list and search results
SUMMARY_PROPERTIES = [
    "id", "threadId", "mailboxIds", "from", "to",
    "subject", "receivedAt", "size", "keywords", "preview",
]

# Email/get properties used for full email reads
DETAIL_PROPERTIES = [
    "id", "threadId", "mailboxIds", "from", "to", "cc", "bcc",
    "replyTo", "subject", "sentAt", "receivedAt", "size", "keywords",
    "bodyValues", "textBody", "htmlBody", "attachments", "headers",
]

BODY_PROPERTIES = ["partId", "blobId", "size", "name", "type", "charset", "disposition"]

SORT_FIELDS = {
    "receivedat": "receivedAt",
    "sentat": "sentAt",
    "from": "from",
    "subject": "subject",
}

STATS_PAGE_SIZE = 500
ID_QUERY_PAGE_SIZE = 500

# Email/get header properties that mark mailing-list mail
NEWSLETTER_HEADERS = ["header:List-Id", "header:List-Unsubscribe"]


def parse_sort(value: str) -> tuple[str, bool]:
    """Parse "field [asc|desc]" (or "field:asc") into (field, ascending).

    Raises ValueError for unknown fields or directions.
    """
    parts = value.replace(":", " ").split()
    field, ascending = "receivedAt", False
    if parts:
        normalized = SORT_FIELDS.get(parts[0].lower())
        if normalized is None:
            raise ValueError(f"unsupported sort field {parts[0]!r}")
        field = normalized
    if len(parts) >= 2:
        direction = parts[1].lower()
        if direction not in ("asc", "desc"):
            raise ValueError(f"unsupported sort direction {parts[1]!r} (use asc or desc)")
        ascending = direction == "asc"
    return field, ascending


def build_filter(
    *,
    mailbox_id: str | None = None,
    text: str | None = None,
    from_: str | None = None,
    to: str | None = None,
    subject: str | None = None,
    before: datetime | None = None,
    after: datetime | None = None,
    has_attachment: bool = False,
    unread_only: bool = False,
    flagged_only: bool = False,
    unflagged_only: bool = False,
) -> dict:
    """Build an Email/query filter.

    A FilterCondition has a single ``notKeyword`` slot, so unread-only plus
    unflagged-only becomes an AND operator of two conditions. The mailbox
    scope stays on the first condition.
    """
    if flagged_only and unflagged_only:
        raise ValueError("flagged_only and unflagged_only are mutually exclusive")

    condition: dict = {}
    if mailbox_id:
        condition["inMailbox"] = mailbox_id
    if text:
        condition["text"] = text
    if from_:
        condition["from"] = from_
    if to:
        condition["to"] = to
    if subject:
        condition["subject"] = subject
    if before is not None:
        condition["before"] = _utc(before)
    if after is not None:
        condition["after"] = _utc(after)
    if has_attachment:
        condition["hasAttachment"] = True
    if unread_only:
        condition["notKeyword"] = "$seen"
    if flagged_only:
        condition["hasKeyword"] = "$flagged"

    if unflagged_only:
        if unread_only:
            return {
                "operator": "AND",
                "conditions": [condition, {"notKeyword": "$flagged"}],
            }
        condition["notKeyword"] = "$flagged"
    return condition


def _utc(value: datetime) -> str:
    """UTCDate string; naive datetimes are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass
class SearchOptions:
    filter: dict
    limit: int = 25
    offset: int = 0
    sort_field: str = "receivedAt"
    ascending: bool = False
    with_snippets: bool = False


def query_emails(client: Client, options: SearchOptions) -> EmailListResult:
    """Email/query + Email/get (+ SearchSnippet/get) in one exchange.

    If only the snippet call fails the results are returned without snippets.
    Any other method error names the failing method and call id.
    """
    request = Request()
    query_id = request.invoke(
        "Email/query",
        {
            "accountId": client.account_id,
            "filter": options.filter,
            "sort": [{"property": options.sort_field, "isAscending": options.ascending}],
            "position": options.offset,
            "limit": options.limit,
            "calculateTotal": True,
        },
    )
    request.invoke(
        "Email/get",
        {
            "accountId": client.account_id,
            "#ids": result_ref(query_id, "Email/query"),
            "properties": SUMMARY_PROPERTIES,
        },
    )
    snippet_id = None
    if options.with_snippets:
        snippet_id = request.invoke(
            "SearchSnippet/get",
            {
                "accountId": client.account_id,
                "filter": options.filter,
                "#emailIds": result_ref(query_id, "Email/query"),
            },
        )

    response = client.do(request)

    result = EmailListResult(total=0, offset=options.offset)
    snippets: dict[str, str] = {}
    for inv in response.invocations:
        method = request.method_for(inv.call_id)
        if inv.is_error:
            if snippet_id is not None and inv.call_id == snippet_id:
                logger.debug("Search snippets unavailable", error=inv.args.get("type"))
                continue
            inv.raise_for_error(method)
        if inv.name == "Email/query":
            result.total = inv.args.get("total", 0)
        elif inv.name == "Email/get":
            result.emails = [EmailSummary.from_jmap(e) for e in inv.args.get("list", [])]
        elif inv.name == "SearchSnippet/get":
            for snippet in inv.args.get("list", []):
                preview = snippet.get("preview")
                if preview:
                    snippets[snippet["emailId"]] = preview

    for summary in result.emails:
        if summary.id in snippets:
            summary.snippet = snippets[summary.id]
    return result


def query_email_ids(client: Client, filter_: dict) -> list[str]:
    """All email ids matching a filter, newest first, paging through results."""
    ids: list[str] = []
    position = 0
    while True:
        result = client.call(
            "Email/query",
            {
                "filter": filter_,
                "sort": [{"property": "receivedAt", "isAscending": False}],
                "position": position,
                "limit": ID_QUERY_PAGE_SIZE,
                "calculateTotal": True,
            },
        )
        page = result.get("ids", [])
        ids.extend(page)
        position += len(page)
        if not page or position >= result.get("total", 0):
            break
    logger.debug(f"Filter matched {len(ids)} emails")
    return ids


def get_email_summaries(
    client: Client, email_ids: list[str]
) -> tuple[list[EmailSummary], list[str]]:
    """Fetch summaries by id. Returns (found summaries, not-found ids)."""
    summaries: list[EmailSummary] = []
    not_found: list[str] = []
    size = client.max_batch_size
    for start in range(0, len(email_ids), size):
        batch = email_ids[start : start + size]
        result = client.call(
            "Email/get", {"ids": batch, "properties": SUMMARY_PROPERTIES}
        )
        summaries.extend(EmailSummary.from_jmap(e) for e in result.get("list", []))
        not_found.extend(result.get("notFound") or [])
    return summaries, not_found


def get_email(client: Client, email_id: str, properties: list[str]) -> dict:
    """Fetch one raw Email object with text and HTML body values.

    Raises NotFoundError if the server doesn't know the id.
    """
    result = client.call(
        "Email/get",
        {
            "ids": [email_id],
            "properties": properties,
            "bodyProperties": BODY_PROPERTIES,
            "fetchTextBodyValues": True,
            "fetchHTMLBodyValues": True,
        },
    )
    found = result.get("list", [])
    if result.get("notFound") or not found:
        raise NotFoundError(f"email {email_id}: not found")
    return found[0]


def extract_body(email: dict, prefer_html: bool = False) -> str:
    """Body text of a raw Email: text part, falling back to HTML (or HTML first)."""
    values = email.get("bodyValues") or {}

    def first(parts_key: str) -> str | None:
        for part in email.get(parts_key) or []:
            value = values.get(part.get("partId"))
            if value is not None:
                return value.get("value", "")
        return None

    if prefer_html:
        html = first("htmlBody")
        if html is not None:
            return html
    text = first("textBody")
    if text is not None:
        return text
    return first("htmlBody") or ""


def to_detail(email: dict, prefer_html: bool = False, raw_headers: bool = False) -> EmailDetail:
    keywords = email.get("keywords") or {}
    detail = EmailDetail(
        id=email["id"],
        thread_id=email.get("threadId", ""),
        from_=addresses_from_jmap(email.get("from")),
        to=addresses_from_jmap(email.get("to")),
        cc=addresses_from_jmap(email.get("cc")),
        bcc=addresses_from_jmap(email.get("bcc")),
        reply_to=addresses_from_jmap(email.get("replyTo")),
        subject=email.get("subject") or "",
        sent_at=email.get("sentAt"),
        received_at=email.get("receivedAt") or "",
        is_unread=not keywords.get("$seen", False),
        is_flagged=bool(keywords.get("$flagged", False)),
        body=extract_body(email, prefer_html),
        attachments=[
            Attachment(name=a.get("name") or "", type=a.get("type") or "", size=a.get("size", 0))
            for a in email.get("attachments") or []
        ],
    )
    headers = []
    for h in email.get("headers") or []:
        name = h.get("name", "")
        value = h.get("value", "")
        if name.lower() == "list-unsubscribe":
            detail.list_unsubscribe = value.strip()
        elif name.lower() == "list-unsubscribe-post":
            detail.list_unsubscribe_post = value.strip()
        if raw_headers:
            headers.append(Header(name=name, value=value))
    if raw_headers:
        detail.headers = headers
    return detail


def read_email(
    client: Client, email_id: str, prefer_html: bool = False, raw_headers: bool = False
) -> EmailDetail:
    email = get_email(client, email_id, DETAIL_PROPERTIES)
    return to_detail(email, prefer_html, raw_headers)


def _single_entry(detail: EmailDetail) -> ThreadEmail:
    return ThreadEmail(
        id=detail.id,
        from_=detail.from_,
        to=detail.to,
        subject=detail.subject,
        received_at=detail.received_at,
        preview="",
        is_unread=detail.is_unread,
    )


def read_thread(
    client: Client, email_id: str, prefer_html: bool = False, raw_headers: bool = False
) -> ThreadView:
    """Read an email plus condensed entries for its whole thread, oldest first."""
    detail = read_email(client, email_id, prefer_html, raw_headers)
    if not detail.thread_id:
        return ThreadView(email=detail, thread=[_single_entry(detail)])

    result = client.call(
        "Thread/get", {"ids": [detail.thread_id], "properties": ["id", "emailIds"]}
    )
    threads = result.get("list", [])
    if result.get("notFound") or not threads or not threads[0].get("emailIds"):
        return ThreadView(email=detail, thread=[_single_entry(detail)])

    result = client.call(
        "Email/get",
        {
            "ids": threads[0]["emailIds"],
            "properties": [
                "id", "threadId", "from", "to", "subject", "receivedAt", "preview", "keywords",
            ],
        },
    )
    entries = [
        ThreadEmail(
            id=e["id"],
            from_=addresses_from_jmap(e.get("from")),
            to=addresses_from_jmap(e.get("to")),
            subject=e.get("subject") or "",
            received_at=e.get("receivedAt") or "",
            preview=e.get("preview") or "",
            is_unread=not (e.get("keywords") or {}).get("$seen", False),
        )
        for e in result.get("list", [])
    ]
    if not entries:
        entries = [_single_entry(detail)]
    entries.sort(key=lambda e: e.received_at)
    return ThreadView(email=detail, thread=entries)


def _scan(client: Client, filter_: dict, properties: list[str]) -> Iterator[tuple[int, list[dict]]]:
    """Page through every email matching ``filter_``, newest first.

    Yields ``(total, emails)`` per page, where ``total`` is the match count
    the server reported on the first page.
    """
    total = 0
    position = 0

    while True:
        request = Request()
        query_id = request.invoke(
            "Email/query",
            {
                "accountId": client.account_id,
                "filter": filter_,
                "sort": [{"property": "receivedAt", "isAscending": False}],
                "position": position,
                "limit": STATS_PAGE_SIZE,
                "calculateTotal": True,
            },
        )
        get_id = request.invoke(
            "Email/get",
            {
                "accountId": client.account_id,
                "#ids": result_ref(query_id, "Email/query"),
                "properties": properties,
            },
        )
        response = client.do(request)

        query_inv = response.get(query_id)
        get_inv = response.get(get_id)
        if query_inv is None or get_inv is None:
            raise FmailError("aggregate query: unexpected response")
        query_inv.raise_for_error("Email/query")
        get_inv.raise_for_error("Email/get")

        page_ids = query_inv.args.get("ids", [])
        if position == 0:
            total = query_inv.args.get("total", 0)

        yield total, get_inv.args.get("list", [])

        position += len(page_ids)
        if not page_ids or position >= total:
            break


def _sender(email: dict) -> tuple[str, str] | None:
    """Lowercased address and display name of the first From, if any."""
    senders = email.get("from") or []
    if not senders or not senders[0].get("email"):
        return None
    return senders[0]["email"].lower(), senders[0].get("name") or ""


def aggregate_by_sender(
    client: Client, filter_: dict, include_subjects: bool = False
) -> StatsResult:
    """Count matching emails per sender address, most frequent first."""
    counts: dict[str, int] = {}
    names: dict[str, str] = {}
    subjects: dict[str, set[str]] = {}
    total = 0

    for total, emails in _scan(client, filter_, ["id", "from", "subject"]):
        for email in emails:
            sender = _sender(email)
            if sender is None:
                continue
            key, name = sender
            counts[key] = counts.get(key, 0) + 1
            if name and not names.get(key):
                names[key] = name
            if include_subjects and email.get("subject"):
                subjects.setdefault(key, set()).add(email["subject"])

    stats = [
        SenderStat(
            email=address,
            name=names.get(address, ""),
            count=count,
            subjects=sorted(subjects[address]) if include_subjects and address in subjects else None,
        )
        for address, count in counts.items()
    ]
    stats.sort(key=lambda s: (-s.count, s.email))
    return StatsResult(total=total, senders=stats)


def summarize(
    client: Client,
    filter_: dict,
    *,
    limit: int = 10,
    include_subjects: bool = False,
    detect_newsletters: bool = False,
) -> SummaryResult:
    """Triage overview of matching emails: top senders and domains, unread counts.

    Senders and domains are ranked by count (ties by address) and cut to the
    top ``limit``. With ``detect_newsletters``, a sender counts as a
    newsletter when any of its emails carries a List-Id or List-Unsubscribe
    header.
    """
    if limit < 1:
        raise ValueError(f"limit must be at least 1, got {limit}")

    properties = ["id", "from", "subject", "keywords"]
    if detect_newsletters:
        properties += NEWSLETTER_HEADERS

    senders: dict[str, SummarySender] = {}
    domains: dict[str, DomainStat] = {}
    subjects: dict[str, set[str]] = {}
    total = 0
    unread = 0

    for total, emails in _scan(client, filter_, properties):
        for email in emails:
            is_unread = not (email.get("keywords") or {}).get("$seen", False)
            unread += is_unread
            sender = _sender(email)
            if sender is None:
                continue
            key, name = sender

            stat = senders.setdefault(key, SummarySender(email=key, name=""))
            stat.count += 1
            stat.unread += is_unread
            if name and not stat.name:
                stat.name = name
            if detect_newsletters:
                stat.newsletter = bool(stat.newsletter) or any(
                    email.get(header) for header in NEWSLETTER_HEADERS
                )
            if include_subjects and email.get("subject"):
                subjects.setdefault(key, set()).add(email["subject"])

            domain = key.rpartition("@")[2]
            domain_stat = domains.setdefault(domain, DomainStat(domain=domain))
            domain_stat.count += 1
            domain_stat.unread += is_unread

    if include_subjects:
        for key, stat in senders.items():
            stat.subjects = sorted(subjects.get(key, ()))

    ranked = sorted(senders.values(), key=lambda s: (-s.count, s.email))
    result = SummaryResult(
        total=total,
        unread=unread,
        sender_count=len(senders),
        domain_count=len(domains),
        senders=ranked[:limit],
        domains=sorted(domains.values(), key=lambda d: (-d.count, d.domain))[:limit],
    )
    if detect_newsletters:
        result.newsletters = [s for s in ranked if s.newsletter][:limit]
    logger.debug("Summarized mailbox", total=total, senders=len(senders), domains=len(domains))
    return result
