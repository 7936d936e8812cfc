"""Input utilities for CLI commands."""

import sys
from email.utils import getaddresses

import click

from .models import Address


def read_body_stdin(*, allow_empty: bool = False) -> str:
    """Read message body from stdin.

    Raises UsageError for interactive terminals. If allow_empty is False,
    also raises UsageError for empty input.
    """
    if sys.stdin.isatty():
        raise click.UsageError("Expected body on stdin")

    body = sys.stdin.read().strip()
    if not body and not allow_empty:
        raise click.UsageError("Body cannot be empty")

    return body


def parse_addresses(values: tuple[str, ...], option: str) -> list[Address]:
    """Parse repeated RFC 5322 address options ("Name <a@b>", "a@b, c@d").

    Raises UsageError naming ``option`` for entries without a valid address.
    """
    addresses = []
    for name, addr in getaddresses(list(values)):
        local, at, domain = addr.partition("@")
        if not (at and local and domain):
            raise click.UsageError(f"Invalid address in {option}: {addr or name!r}")
        addresses.append(Address(name=name, email=addr))
    return addresses


def read_script_stdin() -> str:
    """Read a Sieve script from stdin, unmodified.

    Raises UsageError for interactive terminals and empty input.
    """
    if sys.stdin.isatty():
        raise click.UsageError("Expected script on stdin")

    script = sys.stdin.read()
    if not script.strip():
        raise click.UsageError("Script cannot be empty")

    return script
