"""Server-side Sieve filter scripts over JMAP (RFC 9661).

Script content lives in blobs: creating or validating a script uploads the
text first and refers to it by blob id, and showing one downloads it. Only
one script is active at a time; activating a script deactivates the
previous one.

Deleting a script removes a filter, never mail. The server refuses to
delete the active script, and that refusal is reported as a forbidden
operation with a hint to deactivate first.
"""

from __future__ import annotations

from .client import Client
from .errors import ForbiddenError, NotFoundError
from .jmap import CORE_URI, Request
from .logging import FmailError, get_logger
from .models import (
    SieveActivateResult,
    SieveDeleteResult,
    SieveScriptDetail,
    SieveScriptInfo,
    SieveScriptList,
    SieveValidateResult,
)

logger = get_logger(__name__)

SIEVE_URI = "urn:ietf:params:jmap:sieve"
SIEVE_USING = [CORE_URI, SIEVE_URI]
SIEVE_CONTENT_TYPE = "application/sieve"

# Creation id used in SieveScript/set create, and its back-reference
CREATE_ID = "create0"

TEMPLATE_ACTIONS = ("junk", "discard", "keep", "fileinto")


def _quote(value: str) -> str:
    """Sieve quoted string."""
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


def generate_sieve_script(
    from_: str = "",
    from_domain: str = "",
    action: str = "",
    fileinto: str = "",
) -> str:
    """Build a one-rule script that matches a sender or sender domain.

    Args:
        from_: Exact sender address to match
        from_domain: Sender domain to match (exclusive with ``from_``)
        action: junk, discard, keep, or fileinto
        fileinto: Target mailbox, required for the fileinto action

    Raises:
        ValueError: With a message naming the offending CLI flags
    """
    if not from_ and not from_domain:
        raise ValueError("either --from or --from-domain is required")
    if from_ and from_domain:
        raise ValueError("--from and --from-domain are mutually exclusive")
    if not action:
        raise ValueError("--action is required")
    if action not in TEMPLATE_ACTIONS:
        raise ValueError(f'unsupported action "{action}": use junk, discard, keep, or fileinto')
    if action == "fileinto" and not fileinto:
        raise ValueError("--fileinto is required when --action is fileinto")

    if from_:
        condition = f'address :is "from" {_quote(from_)}'
    else:
        condition = f'address :domain :is "from" {_quote(from_domain)}'

    if action == "junk":
        command = 'fileinto "Junk";'
    elif action == "fileinto":
        command = f"fileinto {_quote(fileinto)};"
    else:
        command = f"{action};"

    lines = []
    if command.startswith("fileinto"):
        lines += ['require ["fileinto"];', ""]
    lines += [f"if {condition} {{", f"    {command}", "    stop;", "}"]
    return "\n".join(lines) + "\n"


def _require_sieve(client: Client) -> None:
    client.require_capability(SIEVE_URI, "sieve scripts")


def _call(client: Client, method: str, args: dict) -> dict:
    return client.call(method, args, using=SIEVE_USING)


def list_scripts(client: Client) -> SieveScriptList:
    _require_sieve(client)
    result = _call(client, "SieveScript/get", {"ids": None})
    scripts = [
        SieveScriptInfo(
            id=s["id"],
            name=s.get("name") or "",
            is_active=bool(s.get("isActive", False)),
        )
        for s in result.get("list", [])
    ]
    return SieveScriptList(total=len(scripts), scripts=scripts)


def get_script(client: Client, script_id: str) -> SieveScriptDetail:
    """Fetch a script's metadata and download its content."""
    _require_sieve(client)
    result = _call(client, "SieveScript/get", {"ids": [script_id]})
    scripts = result.get("list") or []
    if result.get("notFound") or not scripts:
        raise NotFoundError(f"sieve script {script_id}: not found")

    script = scripts[0]
    content = client.download(
        script["blobId"],
        name=f"{script.get('name') or script_id}.siv",
        content_type=SIEVE_CONTENT_TYPE,
    )
    return SieveScriptDetail(
        id=script["id"],
        name=script.get("name") or "",
        blob_id=script["blobId"],
        is_active=bool(script.get("isActive", False)),
        content=content.decode("utf-8", errors="replace"),
    )


def create_script(
    client: Client, name: str, content: str, activate: bool = False
) -> SieveScriptDetail:
    """Upload ``content`` and store it as a new script, inactive unless ``activate``."""
    _require_sieve(client)
    blob_id = client.upload(content.encode("utf-8"), SIEVE_CONTENT_TYPE)

    args: dict = {"create": {CREATE_ID: {"name": name, "blobId": blob_id}}}
    if activate:
        args["onSuccessActivateScript"] = f"#{CREATE_ID}"
    result = _call(client, "SieveScript/set", args)

    created = (result.get("created") or {}).get(CREATE_ID)
    if created is None:
        set_error = (result.get("notCreated") or {}).get(CREATE_ID)
        if set_error is None:
            raise FmailError("creating sieve script: unexpected response")
        reason = set_error.get("description") or set_error.get("type") or "unknown error"
        raise FmailError(f"creating sieve script: {reason}")

    logger.info("Sieve script created", id=created.get("id"), name=name, active=activate)
    return SieveScriptDetail(
        id=created.get("id", ""),
        name=name,
        blob_id=blob_id,
        is_active=activate,
        content=content,
    )


def validate_script(client: Client, content: str) -> SieveValidateResult:
    """Check script syntax on the server without storing it."""
    _require_sieve(client)
    blob_id = client.upload(content.encode("utf-8"), SIEVE_CONTENT_TYPE)
    result = _call(client, "SieveScript/validate", {"blobId": blob_id})
    error = result.get("error")
    if error is None:
        return SieveValidateResult(valid=True, content=content)
    return SieveValidateResult(
        valid=False,
        content=content,
        error=error.get("description") or error.get("type") or "invalid script",
    )


def activate_script(client: Client, script_id: str) -> SieveActivateResult:
    _require_sieve(client)
    _call(client, "SieveScript/set", {"onSuccessActivateScript": script_id})
    logger.info("Sieve script activated", id=script_id)
    return SieveActivateResult(id=script_id, is_active=True)


def deactivate_script(client: Client) -> SieveActivateResult:
    """Deactivate whichever script is active; no script filters mail afterwards."""
    _require_sieve(client)
    _call(client, "SieveScript/set", {"onSuccessDeactivateScript": True})
    logger.info("Sieve scripts deactivated")
    return SieveActivateResult(id=None, is_active=False)


def delete_script(client: Client, script_id: str) -> SieveDeleteResult:
    """Destroy a script, reporting its name.

    Raises ForbiddenError when the script is active, NotFoundError when the
    server doesn't know it.
    """
    _require_sieve(client)
    request = Request(SIEVE_USING)
    get_id = request.invoke(
        "SieveScript/get",
        {"accountId": client.account_id, "ids": [script_id], "properties": ["id", "name"]},
    )
    set_id = request.invoke(
        "SieveScript/set", {"accountId": client.account_id, "destroy": [script_id]}
    )
    response = client.do(request)

    get_inv = response.get(get_id)
    set_inv = response.get(set_id)
    if get_inv is None or set_inv is None:
        raise FmailError("deleting sieve script: unexpected response")
    get_inv.raise_for_error("SieveScript/get")
    set_inv.raise_for_error("SieveScript/set")

    scripts = get_inv.args.get("list") or []
    name = (scripts[0].get("name") or "") if scripts else ""

    if script_id in (set_inv.args.get("destroyed") or []):
        logger.info("Sieve script deleted", id=script_id, name=name)
        return SieveDeleteResult(id=script_id, name=name)

    set_error = (set_inv.args.get("notDestroyed") or {}).get(script_id)
    if set_error is None:
        raise FmailError("deleting sieve script: unexpected response")
    if set_error.get("type") == "sieveIsActive":
        raise ForbiddenError(
            "delete sieve script",
            "cannot delete active sieve script: deactivate it first",
            hint="Use 'fmail sieve deactivate' before deleting",
        )
    if set_error.get("type") == "notFound":
        raise NotFoundError(f"sieve script {script_id}: not found")
    reason = set_error.get("description") or set_error.get("type") or "unknown error"
    raise FmailError(f"deleting sieve script: {reason}")
