"""API token resolution for Fastmail.

The token comes from ``FMAIL_TOKEN`` if set, otherwise from a credential
command (a keychain lookup by default) whose stdout is the token.
"""

from __future__ import annotations

import os
import subprocess
import sys

from .errors import AuthenticationError
from .logging import get_logger

logger = get_logger(__name__)

TOKEN_ENV_VAR = "FMAIL_TOKEN"

MACOS_CREDENTIAL_COMMAND = "security find-generic-password -s fmail -a fastmail -w"
LINUX_CREDENTIAL_COMMAND = "secret-tool lookup service fmail"

SETUP_HINT = (
    f"Set {TOKEN_ENV_VAR}, or store an API token with "
    "'fmail config set credential_command <cmd>'"
)


def default_credential_command() -> str:
    if sys.platform == "darwin":
        return MACOS_CREDENTIAL_COMMAND
    return LINUX_CREDENTIAL_COMMAND


def get_token(credential_command: str = "") -> str:
    """Resolve the API token.

    Raises AuthenticationError if the command fails or prints nothing.
    """
    token = os.environ.get(TOKEN_ENV_VAR, "").strip()
    if token:
        logger.debug("Using token from environment")
        return token

    command = credential_command or default_credential_command()
    logger.debug("Running credential command", command=command)
    try:
        result = subprocess.run(
            ["sh", "-c", command], capture_output=True, text=True, check=False
        )
    except OSError as e:
        raise AuthenticationError(
            f"could not run credential command: {e}", hint=SETUP_HINT
        ) from e

    if result.returncode != 0:
        detail = result.stderr.strip() or f"exit status {result.returncode}"
        raise AuthenticationError(
            f"credential command failed: {detail}", hint=SETUP_HINT
        )

    token = result.stdout.strip()
    if not token:
        raise AuthenticationError("credential command returned no token", hint=SETUP_HINT)
    return token
