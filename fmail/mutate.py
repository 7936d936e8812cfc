"""Bulk email mutations: archive, move, spam, mark-read, flag, unflag.

Batching Strategy
=================

Every mutation here is an Email/set ``update`` keyed by email id. Servers cap
the number of objects one Email/set may touch (``maxObjectsInSet`` in the core
capability); when the session doesn't say, 50 is assumed.

    - Ids are split into consecutive batches of at most that size, in input order
    - Batches are sent one after another, never concurrently
    - A failed batch doesn't stop the ones after it

Outcome Accounting
------------------
Each id ends up in exactly one place in the returned BatchOutcome:

    - succeeded: listed in the response's ``updated``
    - failed: listed in ``notUpdated`` (with the server's description)
    - failed: mentioned in neither ("no status returned by server")
    - failed: its whole batch failed (transport or method error text)

Partial failure is a normal result, not an exception. Cancellation is the one
exception that stops the run, since the caller asked for everything to stop.

No patch built here removes an email: ``destroy`` is never sent, and moves
are checked against trash destinations first.
"""

from __future__ import annotations

from typing import Callable

from .client import Client
from .colors import FlagColor, clear_color_patch, color_patch
from .errors import OperationCancelledError
from .jmap import Request
from .logging import FmailError, get_logger
from .models import BatchOutcome, Mailbox
from .safety import validate_target_mailbox

logger = get_logger(__name__)


def batch_set_emails(
    client: Client, email_ids: list[str], patch_fn: Callable[[str], dict]
) -> BatchOutcome:
    """Apply ``patch_fn(id)`` to every id via batched Email/set updates.

    Args:
        client: Connected client (provides account id and batch size)
        email_ids: Ids to update, in the order batches should be formed;
            repeats are dropped, keeping the first occurrence
        patch_fn: Builds the JMAP patch for one id
    """
    email_ids = list(dict.fromkeys(email_ids))
    size = client.max_batch_size
    outcome = BatchOutcome()

    logger.info(f"Updating {len(email_ids)} emails", batch_size=size)

    for start in range(0, len(email_ids), size):
        batch = email_ids[start : start + size]
        request = Request()
        call_id = request.invoke(
            "Email/set",
            {
                "accountId": client.account_id,
                "update": {email_id: patch_fn(email_id) for email_id in batch},
            },
        )

        try:
            response = client.do(request)
            inv = response.get(call_id)
            if inv is None:
                raise FmailError("Email/set: unexpected response")
            inv.raise_for_error("Email/set")
        except OperationCancelledError:
            raise
        except FmailError as e:
            logger.warning(
                "Batch failed",
                error=str(e),
                batch_start=start,
                batch_size=len(batch),
            )
            outcome.failed.extend((email_id, str(e)) for email_id in batch)
            continue

        updated = inv.args.get("updated") or {}
        not_updated = inv.args.get("notUpdated") or {}
        for email_id in batch:
            if email_id in updated:
                outcome.succeeded.append(email_id)
            elif email_id in not_updated:
                set_error = not_updated[email_id] or {}
                outcome.failed.append(
                    (email_id, set_error.get("description") or "unknown error")
                )
            else:
                outcome.failed.append((email_id, "no status returned by server"))

        logger.debug(
            f"Processed {min(start + size, len(email_ids))}/{len(email_ids)} emails",
            succeeded=len(outcome.succeeded),
            failed=len(outcome.failed),
        )

    return outcome


def move_emails(client: Client, email_ids: list[str], target: Mailbox) -> BatchOutcome:
    """Move emails to ``target`` by replacing their mailboxIds.

    Refuses trash destinations before any request is sent.
    """
    validate_target_mailbox(target)
    return batch_set_emails(
        client, email_ids, lambda _id: {"mailboxIds": {target.id: True}}
    )


def mark_as_spam(client: Client, email_ids: list[str], junk: Mailbox) -> BatchOutcome:
    """Move emails to the junk mailbox and set $junk."""
    validate_target_mailbox(junk, operation="spam")
    return batch_set_emails(
        client,
        email_ids,
        lambda _id: {"mailboxIds": {junk.id: True}, "keywords/$junk": True},
    )


def mark_as_read(client: Client, email_ids: list[str]) -> BatchOutcome:
    return batch_set_emails(client, email_ids, lambda _id: {"keywords/$seen": True})


def set_flagged(client: Client, email_ids: list[str]) -> BatchOutcome:
    return batch_set_emails(client, email_ids, lambda _id: {"keywords/$flagged": True})


def set_flagged_with_color(
    client: Client, email_ids: list[str], color: FlagColor
) -> BatchOutcome:
    return batch_set_emails(
        client,
        email_ids,
        lambda _id: {"keywords/$flagged": True, **color_patch(color)},
    )


def set_unflagged(client: Client, email_ids: list[str]) -> BatchOutcome:
    """Remove $flagged and clear the color bits."""
    return batch_set_emails(
        client,
        email_ids,
        lambda _id: {"keywords/$flagged": None, **clear_color_patch()},
    )


def clear_flag_color(client: Client, email_ids: list[str]) -> BatchOutcome:
    """Clear the color bits but leave $flagged alone."""
    return batch_set_emails(client, email_ids, lambda _id: clear_color_patch())
