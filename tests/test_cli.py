"""Tests for fmail CLI."""

from __future__ import annotations

import json

import pytest
from click.testing import CliRunner

from fmail import cli as cli_module
from fmail import config
from fmail.cli import cli
from fmail.client import Client

from tests.fixtures.jmap_server import (
    SIEVE_CAPABILITIES,
    FakeJMAP,
    default_handler,
    sieve_handler,
    with_mailboxes,
)


def summary(email_id: str) -> dict:
    return {
        "id": email_id,
        "threadId": "t1",
        "from": [{"name": "Alice", "email": "alice@example.com"}],
        "to": [{"name": None, "email": "me@example.com"}],
        "subject": f"Subject {email_id}",
        "receivedAt": "2025-03-01T12:00:00Z",
        "size": 10,
        "keywords": {},
        "preview": "",
    }


QUERY_IDS = ["e1", "e2"]


def mail_handler(name, args):
    """Ids starting with "e" exist; anything else is not found."""
    if name == "Email/get":
        # A back-referenced get resolves to the query result
        ids = args["ids"] if "ids" in args else QUERY_IDS
        return name, {
            "list": [summary(i) for i in ids if i.startswith("e")],
            "notFound": [i for i in ids if not i.startswith("e")],
        }
    if name == "Email/query":
        return name, {"ids": QUERY_IDS, "total": len(QUERY_IDS), "position": args.get("position", 0)}
    if name == "Email/set" and "update" in args:
        update = args["update"]
        return name, {
            "updated": {i: None for i in update if i.startswith("e")},
            "notUpdated": {
                i: {"type": "notFound", "description": "no such email"}
                for i in update
                if not i.startswith("e")
            },
        }
    return default_handler(name, args)


@pytest.fixture
def fake_jmap(monkeypatch) -> FakeJMAP:
    """Replace the network connection with an in-memory server."""
    jmap = FakeJMAP(with_mailboxes(mail_handler))
    client = Client(jmap)
    monkeypatch.setattr(cli_module, "open_client", lambda ctx: client)
    return jmap


def invoke(*args, input=None):
    runner = CliRunner()
    return runner.invoke(cli, list(args), input=input)


def error_output(result) -> dict:
    """The JSON error on stderr, after any log lines."""
    return json.loads(result.stderr[result.stderr.index("{\n") :])


def test_help():
    """Test --help flag."""
    result = invoke("--help")
    assert result.exit_code == 0
    assert "never deletes mail and never sends it" in result.output
    for command in ("archive", "move", "spam", "mark-read", "flag", "unflag", "draft", "search"):
        assert command in result.output


def test_completions_bash():
    """Test bash completion script generation."""
    result = invoke("completions", "bash")
    assert result.exit_code == 0
    assert "_FMAIL_COMPLETE" in result.output


def test_completions_zsh():
    result = invoke("completions", "zsh")
    assert result.exit_code == 0
    assert "compdef" in result.output


def test_session(fake_jmap):
    result = invoke("session")
    assert result.exit_code == 0
    data = json.loads(result.stdout)
    assert data["username"] == "me@example.com"


def test_mailboxes_text(fake_jmap):
    """Test --format text before the subcommand."""
    result = invoke("--format", "text", "mailboxes", "--roles-only")
    assert result.exit_code == 0
    assert "[archive]" in result.stdout
    assert "Receipts" not in result.stdout


def test_list(fake_jmap):
    """Test that list filters on the inbox by default."""
    result = invoke("list", "--unread", "--limit", "5")
    assert result.exit_code == 0
    assert [e["id"] for e in json.loads(result.stdout)["emails"]] == ["e1", "e2"]
    (query,) = fake_jmap.calls("Email/query")
    assert query["filter"] == {"inMailbox": "mb-inbox", "notKeyword": "$seen"}
    assert query["limit"] == 5


def test_list_bad_sort(fake_jmap):
    result = invoke("list", "--sort", "size desc")
    assert result.exit_code == 2
    assert fake_jmap.requests == []


def test_search_flagged_unflagged_conflict(fake_jmap):
    result = invoke("search", "--flagged", "--unflagged")
    assert result.exit_code == 2
    assert "mutually exclusive" in result.output


def test_archive_by_ids(fake_jmap):
    """Test archive output and the Email/set it sends."""
    result = invoke("archive", "e1", "e2")
    assert result.exit_code == 0
    data = json.loads(result.stdout)
    assert data["archived"] == ["e1", "e2"]
    assert data["destination"] == {"id": "mb-archive", "name": "Archive"}
    assert data["failed"] == 0
    (call,) = fake_jmap.calls("Email/set")
    assert call["update"]["e1"] == {"mailboxIds": {"mb-archive": True}}


def test_archive_by_filter(fake_jmap):
    """Test filter-based targeting resolves ids with Email/query."""
    result = invoke("archive", "--mailbox", "inbox", "--from", "news@example.com")
    assert result.exit_code == 0
    assert json.loads(result.stdout)["matched"] == 2
    (query,) = fake_jmap.calls("Email/query")
    assert query["filter"] == {"inMailbox": "mb-inbox", "from": "news@example.com"}


def test_archive_ids_and_filter(fake_jmap):
    """Test that ids and filters can't be combined."""
    result = invoke("archive", "e1", "--from", "x@example.com")
    assert result.exit_code == 2
    assert fake_jmap.requests == []


def test_archive_nothing(fake_jmap):
    result = invoke("archive")
    assert result.exit_code == 2


def test_partial_failure_exits_non_zero(fake_jmap):
    """Test that the result is rendered and the exit code reports the failure."""
    result = invoke("mark-read", "e1", "bogus")
    assert result.exit_code == 1
    data = json.loads(result.stdout)
    assert data["marked_as_read"] == ["e1"]
    assert data["errors"] == ["bogus: no such email"]
    assert error_output(result)["error"] == "partial_failure"


def test_dry_run_sends_no_set(fake_jmap):
    """Test the preview and that nothing is mutated."""
    result = invoke("spam", "e1", "--dry-run")
    assert result.exit_code == 0
    data = json.loads(result.stdout)
    assert data["operation"] == "spam"
    assert data["count"] == 1
    assert data["destination"]["name"] == "Spam"
    assert fake_jmap.calls("Email/set") == []


def test_dry_run_not_found(fake_jmap):
    result = invoke("archive", "e1", "missing", "-n")
    assert result.exit_code == 1
    assert json.loads(result.stdout)["not_found"] == ["missing"]
    assert fake_jmap.calls("Email/set") == []


@pytest.mark.parametrize("target", ["Trash", "trash", "mb-trash"])
def test_move_to_trash_forbidden(fake_jmap, target):
    """Test that moves to trash fail before any Email/set."""
    result = invoke("move", "e1", "--to", target)
    assert result.exit_code == 1
    error = error_output(result)
    assert error["error"] == "forbidden_operation"
    assert "not permitted" in error["hint"]
    assert fake_jmap.calls("Email/set") == []


def test_move_to_trash_forbidden_text(fake_jmap):
    result = invoke("--format", "text", "move", "e1", "--to", "Trash")
    assert result.exit_code == 1
    assert "Error [forbidden_operation]: " in result.stderr


def test_move_with_recipient_filter(fake_jmap):
    """Test that --to is the target and --recipient the filter on move."""
    result = invoke("move", "--recipient", "me@example.com", "--to", "Receipts")
    assert result.exit_code == 0
    assert json.loads(result.stdout)["destination"]["id"] == "mb-receipts"
    (query,) = fake_jmap.calls("Email/query")
    assert query["filter"] == {"to": "me@example.com"}


def test_flag_color(fake_jmap):
    result = invoke("flag", "e1", "--color", "Orange")
    assert result.exit_code == 0
    (call,) = fake_jmap.calls("Email/set")
    assert call["update"]["e1"]["keywords/$flagged"] is True


def test_unflag_color_only(fake_jmap):
    result = invoke("unflag", "e1", "--color")
    assert result.exit_code == 0
    (call,) = fake_jmap.calls("Email/set")
    assert "keywords/$flagged" not in call["update"]["e1"]


def test_read_not_found(fake_jmap):
    result = invoke("read", "missing")
    assert result.exit_code == 1
    assert error_output(result)["error"] == "not_found"


class TestSummary:
    """Tests for the summary command."""

    def test_flagged_and_unflagged_conflict(self, fake_jmap):
        result = invoke("summary", "--flagged", "--unflagged")
        assert result.exit_code == 2
        assert "mutually exclusive" in result.output
        assert fake_jmap.requests == []

    def test_limit_must_be_positive(self, fake_jmap):
        result = invoke("summary", "--limit", "0")
        assert result.exit_code == 2
        assert fake_jmap.requests == []

    def test_no_positional_args(self, fake_jmap):
        result = invoke("summary", "extra")
        assert result.exit_code == 2
        assert fake_jmap.requests == []

    def test_summary(self, fake_jmap):
        """Test the inbox default, the filter, and the aggregated output."""
        result = invoke("summary", "--unread", "--newsletters", "-l", "5")
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["total"] == 2
        assert data["unread"] == 2
        assert data["senders"] == [
            {
                "email": "alice@example.com",
                "name": "Alice",
                "count": 2,
                "unread": 2,
                "newsletter": False,
                "subjects": None,
            }
        ]
        assert data["domains"] == [{"domain": "example.com", "count": 2, "unread": 2}]
        assert data["newsletters"] == []
        (query,) = fake_jmap.calls("Email/query")
        assert query["filter"] == {"inMailbox": "mb-inbox", "notKeyword": "$seen"}


class TestDraft:
    """Tests for draft option validation."""

    def test_new_requires_to(self, fake_jmap):
        result = invoke("draft", "--subject", "Hi", "--body", "x")
        assert result.exit_code == 2
        assert "--to is required" in result.output

    def test_new_requires_subject(self, fake_jmap):
        result = invoke("draft", "--to", "a@example.com", "--body", "x")
        assert result.exit_code == 2

    def test_body_required(self, fake_jmap):
        result = invoke("draft", "--to", "a@example.com", "--subject", "Hi")
        assert result.exit_code == 2
        assert "--body" in result.output

    def test_modes_exclusive(self, fake_jmap):
        result = invoke("draft", "--reply-to", "e1", "--forward", "e2", "--body", "x")
        assert result.exit_code == 2
        assert fake_jmap.requests == []

    def test_forward_requires_to(self, fake_jmap):
        result = invoke("draft", "--forward", "e1", "--body", "x")
        assert result.exit_code == 2

    def test_invalid_address(self, fake_jmap):
        result = invoke("draft", "--to", "not-an-address", "--subject", "Hi", "--body", "x")
        assert result.exit_code == 2
        assert "Invalid address in --to" in result.output

    def test_create_from_stdin(self, fake_jmap, monkeypatch):
        """Test a new draft with the body piped on stdin."""

        def handler(name, args):
            if name == "Email/set":
                return name, {"created": {"draft-0": {"id": "Mnew"}}}
            return mail_handler(name, args)

        fake_jmap.handler = with_mailboxes(handler)
        result = invoke(
            "draft", "--to", "Bob <bob@example.com>", "--subject", "Hi", "--body-stdin",
            input="See you Friday\n",
        )
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["id"] == "Mnew"
        assert data["to"] == [{"name": "Bob", "email": "bob@example.com"}]
        (call,) = fake_jmap.calls("Email/set")
        assert call["create"]["draft-0"]["bodyValues"]["body"]["value"] == "See you Friday"


@pytest.fixture
def sieve_jmap(monkeypatch) -> FakeJMAP:
    """In-memory server that advertises Sieve support."""
    jmap = FakeJMAP(sieve_handler, capabilities=SIEVE_CAPABILITIES)
    client = Client(jmap)
    monkeypatch.setattr(cli_module, "open_client", lambda ctx: client)
    return jmap


class TestSieve:
    """Tests for the sieve command group."""

    def test_list_text(self, sieve_jmap):
        result = invoke("--format", "text", "sieve", "list")
        assert result.exit_code == 0
        assert result.stdout.splitlines()[0].startswith("* S1")

    def test_show(self, sieve_jmap):
        sieve_jmap.blobs["B2"] = b"keep;\n"
        result = invoke("sieve", "show", "S2")
        assert result.exit_code == 0
        assert json.loads(result.stdout)["content"] == "keep;\n"

    def test_create_from_template(self, sieve_jmap):
        result = invoke("sieve", "create", "--name", "Block", "--from", "spam@example.com", "--action", "junk")
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["id"] == "S9"
        assert 'fileinto "Junk";' in data["content"]
        assert data["is_active"] is False

    def test_create_from_stdin_and_activate(self, sieve_jmap):
        result = invoke("sieve", "create", "--name", "Custom", "--script-stdin", "--activate", input="keep;\n")
        assert result.exit_code == 0
        (call,) = sieve_jmap.calls("SieveScript/set")
        assert call["onSuccessActivateScript"] == "#create0"
        assert sieve_jmap.blobs[call["create"]["create0"]["blobId"]] == b"keep;\n"

    def test_create_from_and_from_domain_exclusive(self, sieve_jmap):
        result = invoke(
            "sieve", "create", "--name", "x", "--from", "a@b.com", "--from-domain", "b.com", "--action", "junk"
        )
        assert result.exit_code == 2
        assert "--from and --from-domain are mutually exclusive" in result.output
        assert sieve_jmap.requests == []

    def test_create_template_and_stdin_exclusive(self, sieve_jmap):
        result = invoke("sieve", "create", "--name", "x", "--action", "keep", "--script-stdin", input="keep;")
        assert result.exit_code == 2
        assert sieve_jmap.requests == []

    def test_create_requires_content(self, sieve_jmap):
        result = invoke("sieve", "create", "--name", "x")
        assert result.exit_code == 2

    def test_create_dry_run_validates_only(self, sieve_jmap):
        """Test that a dry run validates on the server and stores nothing."""
        result = invoke("sieve", "create", "--name", "x", "--from-domain", "b.com", "--action", "discard", "-n")
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["operation"] == "create"
        assert data["valid"] is True
        assert sieve_jmap.calls("SieveScript/set") == []

    def test_delete_active_forbidden(self, sieve_jmap):
        result = invoke("sieve", "delete", "S1")
        assert result.exit_code == 1
        error = error_output(result)
        assert error["error"] == "forbidden_operation"
        assert "fmail sieve deactivate" in error["hint"]

    def test_delete(self, sieve_jmap):
        result = invoke("sieve", "delete", "S2")
        assert result.exit_code == 0
        assert json.loads(result.stdout) == {"id": "S2", "name": "Newsletters"}

    def test_delete_dry_run(self, sieve_jmap):
        result = invoke("sieve", "delete", "S2", "--dry-run")
        assert result.exit_code == 0
        assert json.loads(result.stdout)["operation"] == "delete"
        assert sieve_jmap.requests == []

    def test_activate_and_deactivate(self, sieve_jmap):
        assert json.loads(invoke("sieve", "activate", "S2").stdout) == {"id": "S2", "is_active": True}
        assert json.loads(invoke("sieve", "deactivate").stdout) == {"id": None, "is_active": False}

    def test_validate(self, sieve_jmap):
        result = invoke("sieve", "validate", "--script", "keep;")
        assert result.exit_code == 0
        assert json.loads(result.stdout)["valid"] is True

    def test_validate_needs_one_source(self, sieve_jmap):
        assert invoke("sieve", "validate").exit_code == 2
        assert invoke("sieve", "validate", "--script", "keep;", "--script-stdin").exit_code == 2

    def test_unsupported_server(self, fake_jmap):
        """Test the error when the session lacks the sieve capability."""
        result = invoke("sieve", "list")
        assert result.exit_code == 1
        assert "urn:ietf:params:jmap:sieve" in error_output(result)["message"]


class TestConfig:
    """Tests for config show and set."""

    def test_show_defaults(self):
        result = invoke("config", "show")
        assert result.exit_code == 0
        assert json.loads(result.stdout)["format"] == "json"

    def test_show_reflects_flags(self):
        result = invoke("--timeout", "9", "config", "show")
        assert json.loads(result.stdout)["timeout"] == 9.0

    def test_set(self):
        result = invoke("config", "set", "timeout", "15")
        assert result.exit_code == 0
        assert json.loads(result.stdout) == {"timeout": 15.0}
        assert json.loads(config.CONFIG_FILE.read_text())["timeout"] == 15.0

    def test_set_invalid_value(self):
        result = invoke("config", "set", "format", "yaml")
        assert result.exit_code == 1
        assert error_output(result)["error"] == "config_error"

    def test_bad_config_file(self, tmp_path):
        """Test that an explicit unreadable config file is a config error."""
        path = tmp_path / "broken.json"
        path.write_text("{")
        result = invoke("--config", str(path), "config", "show")
        assert result.exit_code == 1
        assert error_output(result)["error"] == "config_error"

    def test_set_creates_explicit_file(self, tmp_path):
        """Test that config set can create the file named with --config."""
        path = tmp_path / "new.json"
        result = invoke("--json-log", "none", "--config", str(path), "config", "set", "format", "text")
        assert result.exit_code == 0
        assert json.loads(path.read_text()) == {"format": "text"}

    def test_show_missing_explicit_file(self, tmp_path):
        result = invoke("--config", str(tmp_path / "absent.json"), "config", "show")
        assert result.exit_code == 0
        assert json.loads(result.stdout)["format"] == "json"
