"""Tests for draft composition."""

from __future__ import annotations

import pytest

from fmail.draft import (
    FORWARD_SEPARATOR,
    DraftMode,
    DraftOptions,
    append_dedup,
    build_draft_set,
    compose_draft,
    create_draft,
    dedup,
    forward_subject,
    reply_subject,
    session_from_address,
)
from fmail.errors import ForbiddenError, NotFoundError
from fmail.logging import FmailError
from fmail.models import Address
from fmail.safety import validate_set_for_draft

from tests.fixtures.jmap_server import ACCOUNT_ID, with_mailboxes

ORIGINAL = {
    "id": "orig",
    "from": [{"name": "Alice", "email": "alice@example.com"}],
    "to": [
        {"name": "Me", "email": "ME@example.com"},
        {"name": "Bob", "email": "bob@example.com"},
    ],
    "cc": [
        {"name": "Carol", "email": "carol@example.com"},
        {"name": "Alice again", "email": "Alice@Example.com"},
        {"name": "Bob dup", "email": "BOB@example.com"},
    ],
    "replyTo": None,
    "subject": "  Quarterly numbers ",
    "messageId": ["<m2@example.com>"],
    "references": ["<m1@example.com>", "<m2@example.com>"],
    "bodyValues": {"1": {"value": "Original text"}},
    "textBody": [{"partId": "1", "type": "text/plain"}],
    "htmlBody": [],
}


class FakeUser:
    """Only the username is needed to compose."""

    def __init__(self, username: str = "me@example.com"):
        self.username = username


def addr(email: str, name: str = "") -> Address:
    return Address(name=name, email=email)


def compose(mode, original=ORIGINAL, to=(), cc=(), bcc=(), subject="", body="Body", username="me@example.com"):
    return compose_draft(
        FakeUser(username), mode, list(to), list(cc), list(bcc), subject, body, original=original
    )


class TestSubjects:
    """Tests for Re:/Fwd: prefixing."""

    def test_reply_subject(self):
        assert reply_subject("Hello") == "Re: Hello"
        assert reply_subject("Re: Already replied") == "Re: Already replied"
        assert reply_subject("RE: shouting") == "RE: shouting"
        assert reply_subject("  padded  ") == "Re: padded"

    def test_forward_subject(self):
        assert forward_subject("Hello") == "Fwd: Hello"
        assert forward_subject("Fwd: Already forwarded") == "Fwd: Already forwarded"
        assert forward_subject("fwd: lower") == "fwd: lower"


class TestHelpers:
    """Tests for dedup helpers and From derivation."""

    def test_dedup_keeps_order(self):
        assert dedup(["a", "b", "a", "c", "b"]) == ["a", "b", "c"]

    def test_append_dedup_case_insensitive(self):
        """Test that additions already in the base are skipped."""
        result = append_dedup([addr("A@x.com")], [addr("a@X.com"), addr("b@x.com"), addr("B@x.com")])
        assert [a.email for a in result] == ["A@x.com", "b@x.com"]

    @pytest.mark.parametrize(
        "username, expected",
        [
            ("me@example.com", "me@example.com"),
            ("Me <me@example.com>", "me@example.com"),
            ("justauser", None),
            ("@example.com", None),
            ("me@", None),
            ("", None),
        ],
    )
    def test_session_from_address(self, username, expected):
        """Test that From is only set for a valid address."""
        result = session_from_address(username)
        assert (result[0].email if result else None) == expected


class TestCompose:
    """Tests for recipient, subject, and threading derivation."""

    def test_new_is_verbatim(self):
        """Test that a new draft uses caller values as given."""
        spec = compose(
            DraftMode.NEW, original=None, to=[addr("x@example.com")], subject="Hi", body="Hello"
        )
        assert [a.email for a in spec.to] == ["x@example.com"]
        assert spec.subject == "Hi"
        assert spec.body == "Hello"
        assert spec.in_reply_to == [] and spec.references == []
        assert spec.from_[0].email == "me@example.com"

    def test_reply(self):
        """Test reply recipients, subject, and threading headers."""
        spec = compose(DraftMode.REPLY, to=[addr("alice@EXAMPLE.com"), addr("dan@example.com")], bcc=[addr("b@c.com")])
        assert [a.email for a in spec.to] == ["alice@example.com", "dan@example.com"]
        assert spec.cc == []
        assert [a.email for a in spec.bcc] == ["b@c.com"]
        assert spec.subject == "Re: Quarterly numbers"
        assert spec.in_reply_to == ["<m2@example.com>"]
        assert spec.references == ["<m1@example.com>", "<m2@example.com>"]

    def test_reply_drops_caller_cc(self):
        """Test that only reply-all carries CC; a plain reply has none."""
        spec = compose(DraftMode.REPLY, cc=[addr("carol@example.com")], bcc=[addr("b@c.com")])
        assert spec.cc == []
        assert [a.email for a in spec.bcc] == ["b@c.com"]

    def test_reply_uses_reply_to(self):
        """Test that Reply-To wins over From."""
        original = {**ORIGINAL, "replyTo": [{"name": "List", "email": "list@example.com"}]}
        spec = compose(DraftMode.REPLY, original=original)
        assert [a.email for a in spec.to] == ["list@example.com"]

    def test_reply_without_message_id(self):
        """Test that no threading headers are set without a Message-ID."""
        original = {**ORIGINAL, "messageId": None}
        spec = compose(DraftMode.REPLY, original=original)
        assert spec.in_reply_to == [] and spec.references == []

    def test_reply_subject_override(self):
        spec = compose(DraftMode.REPLY, subject="Different")
        assert spec.subject == "Different"

    def test_reply_all_cc(self):
        """Test CC excludes self and To, with no case-insensitive duplicates."""
        spec = compose(DraftMode.REPLY_ALL, cc=[addr("carol@EXAMPLE.com"), addr("eve@example.com")])
        assert [a.email for a in spec.to] == ["alice@example.com"]
        assert [a.email for a in spec.cc] == ["bob@example.com", "carol@example.com", "eve@example.com"]
        emails = [a.email.lower() for a in spec.cc]
        assert "me@example.com" not in emails
        assert len(emails) == len(set(emails))

    def test_reply_all_without_valid_username_keeps_self(self):
        """Test that self can only be excluded when it is known."""
        spec = compose(DraftMode.REPLY_ALL, username="me")
        assert spec.from_ == []
        assert "ME@example.com" in [a.email for a in spec.cc]

    def test_forward(self):
        """Test forward subject, body, and recipients."""
        spec = compose(DraftMode.FORWARD, to=[addr("f@example.com")], body="FYI")
        assert [a.email for a in spec.to] == ["f@example.com"]
        assert spec.subject == "Fwd: Quarterly numbers"
        assert spec.body == "FYI" + FORWARD_SEPARATOR + "Original text"
        assert spec.in_reply_to == [] and spec.references == []

    def test_forward_html_fallback(self):
        """Test that the HTML body is quoted when there is no text part."""
        original = {
            **ORIGINAL,
            "bodyValues": {"2": {"value": "<p>hi</p>"}},
            "textBody": [],
            "htmlBody": [{"partId": "2", "type": "text/html"}],
        }
        spec = compose(DraftMode.FORWARD, original=original, to=[addr("f@example.com")], body="")
        assert spec.body.endswith("<p>hi</p>")

    def test_reply_requires_original(self):
        with pytest.raises(FmailError):
            compose(DraftMode.REPLY, original=None)


class TestBuildDraftSet:
    """Tests for the Email/set arguments of a draft."""

    def test_passes_validation(self):
        """Test that composed drafts always validate."""
        for mode in DraftMode:
            original = None if mode is DraftMode.NEW else ORIGINAL
            spec = compose(mode, original=original, to=[addr("x@example.com")], subject="S")
            set_args = build_draft_set(spec, ACCOUNT_ID, "mb-drafts")
            validate_set_for_draft(set_args, "mb-drafts")

    def test_shape(self):
        """Test keywords, body part, and threading fields."""
        spec = compose(DraftMode.REPLY)
        entry = build_draft_set(spec, ACCOUNT_ID, "mb-drafts")["create"]["draft-0"]
        assert entry["keywords"] == {"$draft": True, "$seen": True}
        assert entry["mailboxIds"] == {"mb-drafts": True}
        assert entry["textBody"] == [{"partId": "body", "type": "text/plain"}]
        assert entry["bodyValues"] == {"body": {"value": "Body"}}
        assert entry["inReplyTo"] == ["<m2@example.com>"]
        assert entry["from"] == [{"name": None, "email": "me@example.com"}]

    def test_html(self):
        spec = compose(DraftMode.NEW, original=None, to=[addr("x@example.com")], subject="S")
        spec.html = True
        entry = build_draft_set(spec, ACCOUNT_ID, "mb-drafts")["create"]["draft-0"]
        assert entry["htmlBody"] == [{"partId": "body", "type": "text/html"}]
        assert "textBody" not in entry


def draft_handler(created: bool = True):
    def handler(name, args):
        if name == "Email/get":
            if args["ids"] == ["missing"]:
                return name, {"list": [], "notFound": ["missing"]}
            return name, {"list": [ORIGINAL], "notFound": []}
        if name == "Email/set":
            if created:
                return name, {"created": {"draft-0": {"id": "Mdraft1"}}}
            return name, {"notCreated": {"draft-0": {"type": "invalidProperties", "description": "bad to"}}}
        raise AssertionError(name)

    return with_mailboxes(handler)


class TestCreateDraft:
    """Tests for the full create flow."""

    def test_reply_all(self, make_client):
        """Test a created reply-all draft."""
        client = make_client(draft_handler())
        result = create_draft(client, DraftOptions(mode=DraftMode.REPLY_ALL, body="Thanks", original_id="orig"))

        assert result.id == "Mdraft1"
        assert result.mode == "reply-all"
        assert result.mailbox.name == "Drafts"
        assert result.subject == "Re: Quarterly numbers"
        assert result.in_reply_to == "<m2@example.com>"
        (set_args,) = client.jmap.calls("Email/set")
        assert set(set_args) == {"accountId", "create"}

    def test_original_not_found(self, make_client):
        client = make_client(draft_handler())
        with pytest.raises(NotFoundError):
            create_draft(client, DraftOptions(mode=DraftMode.FORWARD, original_id="missing"))
        assert client.jmap.calls("Email/set") == []

    def test_not_created(self, make_client):
        """Test that a server rejection carries its description."""
        client = make_client(draft_handler(created=False))
        with pytest.raises(FmailError, match="bad to"):
            create_draft(client, DraftOptions(to=[addr("x@example.com")], subject="S", body="B"))

    def test_validation_failure_sends_nothing(self, make_client, monkeypatch):
        """Test that a malformed set never reaches the server."""

        def bad_set(spec, account_id, drafts_id):
            return {"accountId": account_id, "create": {"draft-0": {"mailboxIds": {"mb-inbox": True}}}}

        monkeypatch.setattr("fmail.draft.build_draft_set", bad_set)
        client = make_client(draft_handler())
        with pytest.raises(ForbiddenError):
            create_draft(client, DraftOptions(to=[addr("x@example.com")], subject="S"))
        assert client.jmap.calls("Email/set") == []
