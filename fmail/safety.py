"""Safety guardrails checked before any mutating request is sent.

fmail never deletes mail and never sends it. Moves into a trash folder are
deletions in disguise, so they are refused; the only Email/set create this
tool issues is a single draft in the Drafts mailbox.

Deleting a Sieve script (`fmail sieve delete`) removes a server-side filter,
not mail: no Email/set is involved. An active script must be deactivated
before it can be deleted.
"""

from __future__ import annotations

from .errors import ForbiddenError
from .models import Mailbox

# Mailbox names that indicate a trash/deleted items destination
TRASH_NAMES = frozenset({"trash", "deleted items", "deleted messages"})

DRAFT_KEYWORD = "$draft"


def validate_target_mailbox(mailbox: Mailbox, operation: str = "move") -> None:
    """Raise ForbiddenError if ``mailbox`` is a trash destination.

    Matches on role, or on the exact name (case-insensitive). Names that
    merely contain "trash" ("Trashcan", "Trash Bin") are allowed.
    """
    if mailbox.role == "trash":
        raise ForbiddenError(
            operation,
            f"mailbox {mailbox.name!r} has role 'trash'; deletion is not permitted",
        )
    if mailbox.name.lower() in TRASH_NAMES:
        raise ForbiddenError(
            operation,
            f"mailbox {mailbox.name!r} appears to be a trash folder; deletion is not permitted",
        )


def validate_set_for_draft(set_args: dict, drafts_mailbox_id: str) -> None:
    """Check that Email/set arguments describe exactly one draft creation.

    Enforces:
      - no destroy entries
      - no update entries
      - exactly one create entry
      - that entry's mailboxIds is exactly {drafts_mailbox_id}
      - that entry has the $draft keyword
    """
    if set_args.get("destroy"):
        raise ForbiddenError("draft", "Email/set destroy is not allowed in draft creation")
    if set_args.get("update"):
        raise ForbiddenError("draft", "Email/set update is not allowed in draft creation")

    create = set_args.get("create") or {}
    if len(create) != 1:
        raise ForbiddenError(
            "draft",
            f"draft creation must have exactly 1 create entry, got {len(create)}",
        )

    (entry,) = create.values()
    if entry.get("mailboxIds") != {drafts_mailbox_id: True}:
        raise ForbiddenError("draft", "draft must target only the Drafts mailbox")
    if not (entry.get("keywords") or {}).get(DRAFT_KEYWORD):
        raise ForbiddenError("draft", f"draft must have {DRAFT_KEYWORD} keyword")
