"""Main CLI entry point for fmail."""

from __future__ import annotations

import functools
from pathlib import Path
from typing import Callable

import click

from .auth import get_token
from .client import Client
from .colors import FlagColor
from .config import DEFAULT_CONFIG, get_config, resolve_settings, set_config_value
from .draft import DraftMode, DraftOptions, create_draft
from .errors import ErrorHandlingGroup, PartialFailureError
from .input import parse_addresses, read_body_stdin, read_script_stdin
from .logging import FmailError, configure_logging, get_logger
from .mailboxes import get_mailbox_by_role, list_mailboxes, resolve_mailbox
from .messages import (
    SearchOptions,
    aggregate_by_sender,
    build_filter,
    get_email_summaries,
    parse_sort,
    query_email_ids,
    query_emails,
    read_email,
    read_thread,
    summarize,
)
from .models import (
    BatchOutcome,
    DestinationInfo,
    DryRunResult,
    MutationResult,
    SieveDryRunResult,
)
from .mutate import (
    clear_flag_color,
    mark_as_read,
    mark_as_spam,
    move_emails,
    set_flagged,
    set_flagged_with_color,
    set_unflagged,
)
from .output import FORMATS, render
from .safety import validate_target_mailbox
from .sieve import (
    activate_script,
    create_script,
    deactivate_script,
    delete_script,
    generate_sieve_script,
    get_script,
    list_scripts,
    validate_script,
)
from .transport import CancelToken

logger = get_logger(__name__)


@click.group(cls=ErrorHandlingGroup)
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Config file (default: ~/.config/fmail/config.json)",
)
@click.option(
    "--format", "fmt", type=click.Choice(FORMATS), help="Output format (default: json)"
)
@click.option("--session-url", help="JMAP session endpoint")
@click.option("--account-id", help="Account ID (default: primary mail account)")
@click.option(
    "--credential-command", help="Shell command that prints the API token to stdout"
)
@click.option("--timeout", type=float, help="Per-request HTTP timeout in seconds")
@click.option(
    "--deadline",
    type=float,
    help="Give up on the whole operation after this many seconds",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging to stderr")
@click.option(
    "--json-log",
    metavar="FILE",
    envvar="FMAIL_LOG",
    default="auto",
    help='JSON log file path (default: auto, "-" for stdout, "none" to disable)',
)
@click.pass_context
def cli(
    ctx: click.Context,
    config_path: Path | None,
    fmt: str | None,
    session_url: str | None,
    account_id: str | None,
    credential_command: str | None,
    timeout: float | None,
    deadline: float | None,
    verbose: bool,
    json_log: str,
):
    """fmail: triage Fastmail from the command line.

    Lists, searches, reads, archives, moves, flags, and drafts email over
    JMAP, and manages Sieve filters. It never deletes mail and never sends it.
    """
    # Allow "none" to disable file logging
    log_file = None if json_log == "none" else json_log
    configure_logging(verbose=verbose, json_log=log_file)

    ctx.obj = {"format": fmt or "json", "config_path": config_path, "deadline": deadline}
    ctx.obj.update(
        resolve_settings(
            {
                "session_url": session_url,
                "account_id": account_id,
                "credential_command": credential_command,
                "format": fmt,
                "timeout": timeout,
            },
            config_path,
        )
    )


def open_client(ctx: click.Context) -> Client:
    """Connect once per invocation and reuse the Client for every call."""
    obj = ctx.find_root().obj
    if obj.get("client") is None:
        token = get_token(obj["credential_command"])
        client = Client.connect(
            obj["session_url"],
            token,
            account_id=obj["account_id"] or None,
            timeout=obj["timeout"],
            cancel_token=CancelToken(obj.get("deadline")),
        )
        ctx.find_root().call_on_close(client.jmap.close)
        obj["client"] = client
    return obj["client"]


def emit(ctx: click.Context, data) -> None:
    click.echo(render(data, ctx.find_root().obj["format"]))


def _sort_option(value: str) -> tuple[str, bool]:
    try:
        return parse_sort(value)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--sort") from None


def state_filter_options(f):
    """--unread, --flagged, --unflagged."""

    @click.option("--unread", "-u", is_flag=True, help="Only unread emails")
    @click.option("--flagged", "-f", is_flag=True, help="Only flagged emails")
    @click.option("--unflagged", is_flag=True, help="Only unflagged emails")
    @functools.wraps(f)
    def wrapper(*args, **kwargs):
        if kwargs.get("flagged") and kwargs.get("unflagged"):
            raise click.UsageError("--flagged and --unflagged are mutually exclusive")
        return f(*args, **kwargs)

    return wrapper


def content_filter_options(recipient_flag: str = "--to"):
    """--from, --to (or ``recipient_flag``), --subject, --before, --after, --has-attachment."""

    def decorator(f):
        options = [
            click.option("--from", "from_", help="Sender address or name contains"),
            click.option(recipient_flag, "to", help="Recipient address or name contains"),
            click.option("--subject", help="Subject contains"),
            click.option(
                "--before", type=click.DateTime(), help="Received before this date/time (UTC)"
            ),
            click.option(
                "--after", type=click.DateTime(), help="Received after this date/time (UTC)"
            ),
            click.option("--has-attachment", is_flag=True, help="Only emails with attachments"),
        ]
        for option in reversed(options):
            f = option(f)
        return f

    return decorator


FILTER_KEYS = (
    "mailbox", "from_", "to", "subject", "before", "after",
    "has_attachment", "unread", "flagged", "unflagged",
)


def _filter_for(client: Client, text: str | None = None, **filters) -> dict:
    mailbox_id = None
    if filters.get("mailbox"):
        mailbox_id = resolve_mailbox(client, filters["mailbox"]).id
    return build_filter(
        mailbox_id=mailbox_id,
        text=text,
        from_=filters.get("from_"),
        to=filters.get("to"),
        subject=filters.get("subject"),
        before=filters.get("before"),
        after=filters.get("after"),
        has_attachment=bool(filters.get("has_attachment")),
        unread_only=bool(filters.get("unread")),
        flagged_only=bool(filters.get("flagged")),
        unflagged_only=bool(filters.get("unflagged")),
    )


def _check_targets(email_ids: tuple[str, ...], filters: dict) -> None:
    has_filter = any(filters.get(key) for key in FILTER_KEYS)
    if email_ids and has_filter:
        raise click.UsageError("Provide email IDs or filter options, not both")
    if not email_ids and not has_filter:
        raise click.UsageError("Provide email IDs or at least one filter option")


def _resolve_targets(client: Client, email_ids: tuple[str, ...], filters: dict) -> list[str]:
    if email_ids:
        return list(email_ids)
    return query_email_ids(client, _filter_for(client, **filters))


def mutation_command(f):
    """Email id arguments, filter options, and --dry-run for a mutation command."""
    f = click.option(
        "--dry-run", "-n", is_flag=True, help="Preview affected emails without making changes"
    )(f)
    f = state_filter_options(f)
    f = content_filter_options("--recipient")(f)
    f = click.option("--mailbox", "-m", help="Only emails in this mailbox (with filters)")(f)
    f = click.argument("email_ids", nargs=-1)(f)
    return f


def run_mutation(
    ctx: click.Context,
    *,
    operation: str,
    verb: str,
    email_ids: tuple[str, ...],
    filters: dict,
    dry_run: bool,
    apply: Callable[[Client, list[str]], BatchOutcome],
    destination_role: str | None = None,
    destination_name: str | None = None,
) -> None:
    """Shared flow of archive/move/spam/mark-read/flag/unflag.

    Resolves the target emails (ids or filter), then either previews them
    or applies the mutation. Exits non-zero after rendering if any id failed
    or, for a dry run, wasn't found.
    """
    _check_targets(email_ids, filters)
    client = open_client(ctx)

    destination = None
    if destination_role:
        destination = get_mailbox_by_role(client, destination_role)
    elif destination_name:
        destination = resolve_mailbox(client, destination_name)
    if destination is not None:
        validate_target_mailbox(destination, operation=operation)
    dest_info = DestinationInfo.of(destination) if destination is not None else None

    ids = _resolve_targets(client, email_ids, filters)

    if dry_run:
        summaries, not_found = get_email_summaries(client, ids)
        emit(
            ctx,
            DryRunResult(
                operation=operation,
                count=len(summaries),
                emails=summaries,
                not_found=not_found,
                destination=dest_info,
            ),
        )
        if not_found:
            raise PartialFailureError("one or more email IDs were not found")
        return

    outcome = apply(client, ids) if ids else BatchOutcome()
    logger.info(
        f"{operation}: {len(outcome.succeeded)} succeeded, {len(outcome.failed)} failed",
        matched=len(ids),
    )
    emit(ctx, MutationResult(verb=verb, matched=len(ids), outcome=outcome, destination=dest_info))
    if outcome.failed:
        raise PartialFailureError(f"one or more emails failed to {operation}")


@cli.command()
@click.pass_context
def session(ctx: click.Context):
    """Show the authenticated session: username, accounts, capabilities."""
    emit(ctx, open_client(ctx).session_info())


@cli.command()
@click.option("--roles-only", is_flag=True, help="Only show mailboxes with a defined role")
@click.pass_context
def mailboxes(ctx: click.Context, roles_only: bool):
    """List mailboxes with their roles and counts."""
    emit(ctx, list_mailboxes(open_client(ctx), roles_only=roles_only))


@cli.command("list")
@click.option("--mailbox", "-m", default="inbox", show_default=True, help="Mailbox name, role, or ID")
@click.option("--limit", "-l", default=25, show_default=True, type=click.IntRange(min=1))
@click.option("--offset", "-o", default=0, show_default=True, type=click.IntRange(min=0))
@click.option(
    "--sort",
    "-s",
    default="receivedAt desc",
    show_default=True,
    help="receivedAt, sentAt, from, or subject, with asc/desc",
)
@state_filter_options
@click.pass_context
def list_cmd(
    ctx: click.Context,
    mailbox: str,
    limit: int,
    offset: int,
    sort: str,
    unread: bool,
    flagged: bool,
    unflagged: bool,
):
    """List emails in a mailbox, newest first."""
    sort_field, ascending = _sort_option(sort)
    client = open_client(ctx)
    filter_ = _filter_for(client, mailbox=mailbox, unread=unread, flagged=flagged, unflagged=unflagged)
    emit(
        ctx,
        query_emails(
            client,
            SearchOptions(
                filter=filter_, limit=limit, offset=offset,
                sort_field=sort_field, ascending=ascending,
            ),
        ),
    )


@cli.command()
@click.argument("query", required=False)
@click.option("--mailbox", "-m", help="Restrict to a mailbox (name, role, or ID)")
@content_filter_options()
@state_filter_options
@click.option("--limit", "-l", default=25, show_default=True, type=click.IntRange(min=1))
@click.option("--offset", "-o", default=0, show_default=True, type=click.IntRange(min=0))
@click.option("--sort", "-s", default="receivedAt desc", show_default=True)
@click.pass_context
def search(ctx: click.Context, query: str | None, limit: int, offset: int, sort: str, **filters):
    """Search emails by full text and/or filters.

    QUERY: Full-text search across headers and body (optional)

    \b
    Examples:
        fmail search "invoice" --after 2025-01-01
        fmail search --from newsletter@example.com --unread
    """
    sort_field, ascending = _sort_option(sort)
    client = open_client(ctx)
    filter_ = _filter_for(client, text=query, **filters)
    emit(
        ctx,
        query_emails(
            client,
            SearchOptions(
                filter=filter_, limit=limit, offset=offset,
                sort_field=sort_field, ascending=ascending,
                with_snippets=bool(query),
            ),
        ),
    )


@cli.command()
@click.argument("email_id")
@click.option("--html", is_flag=True, help="Prefer the HTML body (default: plain text)")
@click.option("--raw-headers", is_flag=True, help="Include all raw headers")
@click.option("--thread", is_flag=True, help="Show all emails in the same thread")
@click.pass_context
def read(ctx: click.Context, email_id: str, html: bool, raw_headers: bool, thread: bool):
    """Read one email."""
    client = open_client(ctx)
    if thread:
        emit(ctx, read_thread(client, email_id, prefer_html=html, raw_headers=raw_headers))
    else:
        emit(ctx, read_email(client, email_id, prefer_html=html, raw_headers=raw_headers))


@cli.command()
@click.option("--mailbox", "-m", default="inbox", show_default=True, help="Mailbox name, role, or ID")
@state_filter_options
@click.option("--subjects", is_flag=True, help="Include subject lines per sender")
@click.pass_context
def stats(ctx: click.Context, mailbox: str, subjects: bool, **filters):
    """Count emails per sender, most frequent first."""
    client = open_client(ctx)
    filter_ = _filter_for(client, mailbox=mailbox, **filters)
    emit(ctx, aggregate_by_sender(client, filter_, include_subjects=subjects))


@cli.command()
@click.option("--mailbox", "-m", default="inbox", show_default=True, help="Mailbox name, role, or ID")
@state_filter_options
@click.option(
    "--limit",
    "-l",
    default=10,
    show_default=True,
    type=click.IntRange(min=1),
    help="Number of top senders and domains to show",
)
@click.option("--subjects", is_flag=True, help="Include subject lines per sender")
@click.option(
    "--newsletters", is_flag=True, help="Detect newsletters via List-Id/List-Unsubscribe headers"
)
@click.pass_context
def summary(
    ctx: click.Context, mailbox: str, limit: int, subjects: bool, newsletters: bool, **filters
):
    """Triage overview: top senders and domains, unread counts.

    \b
    Examples:
        fmail summary
        fmail summary --unread --newsletters --limit 20
    """
    client = open_client(ctx)
    filter_ = _filter_for(client, mailbox=mailbox, **filters)
    emit(
        ctx,
        summarize(
            client,
            filter_,
            limit=limit,
            include_subjects=subjects,
            detect_newsletters=newsletters,
        ),
    )


@cli.command()
@mutation_command
@click.pass_context
def archive(ctx: click.Context, email_ids: tuple[str, ...], dry_run: bool, **filters):
    """Move emails to the Archive mailbox.

    \b
    Examples:
        fmail archive M123 M456
        fmail archive --mailbox inbox --from newsletter@example.com --dry-run
    """
    run_mutation(
        ctx,
        operation="archive",
        verb="archived",
        email_ids=email_ids,
        filters=filters,
        dry_run=dry_run,
        destination_role="archive",
        apply=lambda client, ids: move_emails(client, ids, get_mailbox_by_role(client, "archive")),
    )


@cli.command()
@mutation_command
@click.option("--to", "target", required=True, help="Target mailbox name, role, or ID")
@click.pass_context
def move(ctx: click.Context, email_ids: tuple[str, ...], dry_run: bool, target: str, **filters):
    """Move emails to another mailbox (never to Trash)."""
    run_mutation(
        ctx,
        operation="move",
        verb="moved",
        email_ids=email_ids,
        filters=filters,
        dry_run=dry_run,
        destination_name=target,
        apply=lambda client, ids: move_emails(client, ids, resolve_mailbox(client, target)),
    )


@cli.command()
@mutation_command
@click.pass_context
def spam(ctx: click.Context, email_ids: tuple[str, ...], dry_run: bool, **filters):
    """Move emails to Junk and mark them as spam."""
    run_mutation(
        ctx,
        operation="spam",
        verb="marked_as_spam",
        email_ids=email_ids,
        filters=filters,
        dry_run=dry_run,
        destination_role="junk",
        apply=lambda client, ids: mark_as_spam(client, ids, get_mailbox_by_role(client, "junk")),
    )


@cli.command("mark-read")
@mutation_command
@click.pass_context
def mark_read(ctx: click.Context, email_ids: tuple[str, ...], dry_run: bool, **filters):
    """Mark emails as read."""
    run_mutation(
        ctx,
        operation="mark-read",
        verb="marked_as_read",
        email_ids=email_ids,
        filters=filters,
        dry_run=dry_run,
        apply=mark_as_read,
    )


@cli.command()
@mutation_command
@click.option(
    "--color",
    "-c",
    type=click.Choice(FlagColor.names(), case_sensitive=False),
    help="Flag color",
)
@click.pass_context
def flag(ctx: click.Context, email_ids: tuple[str, ...], dry_run: bool, color: str | None, **filters):
    """Flag emails, optionally with a color."""
    flag_color = FlagColor.parse(color) if color else None

    def apply(client: Client, ids: list[str]) -> BatchOutcome:
        if flag_color is None:
            return set_flagged(client, ids)
        return set_flagged_with_color(client, ids, flag_color)

    run_mutation(
        ctx,
        operation="flag",
        verb="flagged",
        email_ids=email_ids,
        filters=filters,
        dry_run=dry_run,
        apply=apply,
    )


@cli.command()
@mutation_command
@click.option("--color", "color_only", is_flag=True, help="Remove only the flag color (keep the flag)")
@click.pass_context
def unflag(ctx: click.Context, email_ids: tuple[str, ...], dry_run: bool, color_only: bool, **filters):
    """Unflag emails, or clear just their flag color."""
    run_mutation(
        ctx,
        operation="unflag",
        verb="unflagged",
        email_ids=email_ids,
        filters=filters,
        dry_run=dry_run,
        apply=clear_flag_color if color_only else set_unflagged,
    )


@cli.command()
@click.option("--to", "to", multiple=True, help="Recipient (RFC 5322, repeatable)")
@click.option("--cc", multiple=True, help="CC recipient (RFC 5322, repeatable; ignored for --reply-to)")
@click.option("--bcc", multiple=True, help="BCC recipient (RFC 5322, repeatable)")
@click.option("--subject", default="", help="Subject (overrides Re:/Fwd: subjects)")
@click.option("--body", default=None, help="Message body")
@click.option("--body-stdin", is_flag=True, help="Read the body from stdin")
@click.option("--html", is_flag=True, help="Treat the body as HTML")
@click.option("--reply-to", "reply_id", metavar="ID", help="Reply to this email")
@click.option("--reply-all", "reply_all_id", metavar="ID", help="Reply to all recipients of this email")
@click.option("--forward", "forward_id", metavar="ID", help="Forward this email")
@click.pass_context
def draft(
    ctx: click.Context,
    to: tuple[str, ...],
    cc: tuple[str, ...],
    bcc: tuple[str, ...],
    subject: str,
    body: str | None,
    body_stdin: bool,
    html: bool,
    reply_id: str | None,
    reply_all_id: str | None,
    forward_id: str | None,
):
    """Create a draft in the Drafts mailbox. It is never sent.

    \b
    Modes:
        new        --to and --subject required
        reply      --reply-to ID
        reply-all  --reply-all ID
        forward    --forward ID, --to required

    \b
    Examples:
        fmail draft --to alice@example.com --subject "Lunch?" --body "Friday?"
        echo "Thanks!" | fmail draft --reply-to M123 --body-stdin
    """
    modes = [
        (DraftMode.REPLY, reply_id),
        (DraftMode.REPLY_ALL, reply_all_id),
        (DraftMode.FORWARD, forward_id),
    ]
    chosen = [(mode, original_id) for mode, original_id in modes if original_id]
    if len(chosen) > 1:
        raise click.UsageError("--reply-to, --reply-all, and --forward are mutually exclusive")
    mode, original_id = chosen[0] if chosen else (DraftMode.NEW, None)

    if body is not None and body_stdin:
        raise click.UsageError("--body and --body-stdin are mutually exclusive")
    if body is None and not body_stdin:
        raise click.UsageError("Either --body or --body-stdin is required")
    if body_stdin:
        body = read_body_stdin(allow_empty=True)

    to_addrs = parse_addresses(to, "--to")
    if mode is DraftMode.NEW:
        if not to_addrs:
            raise click.UsageError("--to is required for new drafts")
        if not subject:
            raise click.UsageError("--subject is required for new drafts")
    elif mode is DraftMode.FORWARD and not to_addrs:
        raise click.UsageError("--to is required for forwards")

    options = DraftOptions(
        mode=mode,
        to=to_addrs,
        cc=parse_addresses(cc, "--cc"),
        bcc=parse_addresses(bcc, "--bcc"),
        subject=subject,
        body=body or "",
        html=html,
        original_id=original_id,
    )
    emit(ctx, create_draft(open_client(ctx), options))


@cli.group()
def sieve():
    """Manage server-side Sieve filter scripts.

    Only one script is active at a time. Deleting a script removes a filter,
    never mail; an active script must be deactivated first.
    """


@sieve.command("list")
@click.pass_context
def sieve_list(ctx: click.Context):
    """List all Sieve scripts."""
    emit(ctx, list_scripts(open_client(ctx)))


@sieve.command("show")
@click.argument("script_id")
@click.pass_context
def sieve_show(ctx: click.Context, script_id: str):
    """Show a Sieve script and its content."""
    emit(ctx, get_script(open_client(ctx), script_id))


@sieve.command("create")
@click.option("--name", required=True, help="Name for the new script")
@click.option("--from", "from_", default="", help="Match this sender address (template mode)")
@click.option("--from-domain", default="", help="Match this sender domain (template mode)")
@click.option(
    "--action",
    default="",
    help="junk, discard, keep, or fileinto (template mode)",
)
@click.option("--fileinto", default="", help="Target mailbox for --action fileinto")
@click.option("--script-stdin", is_flag=True, help="Read a raw Sieve script from stdin")
@click.option("--activate", is_flag=True, help="Activate the script once created")
@click.option(
    "--dry-run", "-n", is_flag=True, help="Show and validate the script without storing it"
)
@click.pass_context
def sieve_create(
    ctx: click.Context,
    name: str,
    from_: str,
    from_domain: str,
    action: str,
    fileinto: str,
    script_stdin: bool,
    activate: bool,
    dry_run: bool,
):
    """Create a Sieve script, inactive unless --activate.

    \b
    Examples:
        fmail sieve create --name "Block" --from spam@example.com --action junk
        echo 'keep;' | fmail sieve create --name "Custom" --script-stdin
    """
    has_template = bool(from_ or from_domain or action)
    if has_template and script_stdin:
        raise click.UsageError(
            "template flags (--from, --from-domain, --action) and --script-stdin are mutually exclusive"
        )
    if not has_template and not script_stdin:
        raise click.UsageError(
            "provide either template flags (--from/--from-domain + --action) or --script-stdin"
        )
    if script_stdin:
        content = read_script_stdin()
    else:
        try:
            content = generate_sieve_script(
                from_=from_, from_domain=from_domain, action=action, fileinto=fileinto
            )
        except ValueError as e:
            raise click.UsageError(str(e)) from None

    client = open_client(ctx)
    if dry_run:
        emit(
            ctx,
            SieveDryRunResult(
                operation="create",
                script=name,
                content=content,
                valid=validate_script(client, content).valid,
            ),
        )
        return
    emit(ctx, create_script(client, name, content, activate=activate))


@sieve.command("activate")
@click.argument("script_id")
@click.option("--dry-run", "-n", is_flag=True, help="Preview without making changes")
@click.pass_context
def sieve_activate(ctx: click.Context, script_id: str, dry_run: bool):
    """Activate a script, deactivating the one currently active."""
    if dry_run:
        emit(ctx, SieveDryRunResult(operation="activate", script=script_id))
        return
    emit(ctx, activate_script(open_client(ctx), script_id))


@sieve.command("deactivate")
@click.option("--dry-run", "-n", is_flag=True, help="Preview without making changes")
@click.pass_context
def sieve_deactivate(ctx: click.Context, dry_run: bool):
    """Deactivate the active script."""
    if dry_run:
        emit(ctx, SieveDryRunResult(operation="deactivate", script="active"))
        return
    emit(ctx, deactivate_script(open_client(ctx)))


@sieve.command("delete")
@click.argument("script_id")
@click.option("--dry-run", "-n", is_flag=True, help="Preview without making changes")
@click.pass_context
def sieve_delete(ctx: click.Context, script_id: str, dry_run: bool):
    """Delete an inactive Sieve script. Mail is not touched."""
    if dry_run:
        emit(ctx, SieveDryRunResult(operation="delete", script=script_id))
        return
    emit(ctx, delete_script(open_client(ctx), script_id))


@sieve.command("validate")
@click.option("--script", default=None, help="Sieve script content")
@click.option("--script-stdin", is_flag=True, help="Read the script from stdin")
@click.pass_context
def sieve_validate(ctx: click.Context, script: str | None, script_stdin: bool):
    """Check Sieve syntax on the server without storing the script."""
    if script and script_stdin:
        raise click.UsageError("--script and --script-stdin are mutually exclusive")
    if not script and not script_stdin:
        raise click.UsageError("either --script or --script-stdin is required")
    content = read_script_stdin() if script_stdin else script
    emit(ctx, validate_script(open_client(ctx), content))


@cli.group()
def config():
    """Show or change configuration."""


@config.command("show")
@click.pass_context
def config_show(ctx: click.Context):
    """Show the effective configuration (file, environment, and flags)."""
    obj = ctx.find_root().obj
    click.echo(render({key: obj[key] for key in DEFAULT_CONFIG}, "json"))


@config.command("set")
@click.argument("key", type=click.Choice(list(DEFAULT_CONFIG)))
@click.argument("value")
@click.pass_context
def config_set(ctx: click.Context, key: str, value: str):
    """Set a configuration value.

    \b
    Examples:
        fmail config set format text
        fmail config set credential_command "pass show fastmail/token"
    """
    path = ctx.find_root().obj.get("config_path")
    set_config_value(key, value, path)
    click.echo(render({key: get_config(path)[key]}, "json"))


@cli.command()
@click.argument("shell", type=click.Choice(["bash", "zsh", "fish"]))
def completions(shell: str):
    """Generate shell completion script.

    Output the completion script for the specified shell. Add to your shell
    config to enable tab completion.

    \b
    Bash (~/.bashrc):
        eval "$(fmail completions bash)"

    \b
    Zsh (~/.zshrc):
        eval "$(fmail completions zsh)"

    \b
    Fish (~/.config/fish/config.fish):
        fmail completions fish | source
    """
    from click.shell_completion import get_completion_class

    comp_cls = get_completion_class(shell)
    if comp_cls is None:
        raise FmailError(f"Unsupported shell: {shell}")

    comp = comp_cls(cli, {}, "fmail", "_FMAIL_COMPLETE")
    click.echo(comp.source())
