"""The Client value every fmail operation takes as its first argument.

A Client holds what one CLI invocation knows about the server: the session
identity, the active account, the negotiated mutation batch size, and a
mailbox list fetched at most once. Nothing here is process-global.
"""

from __future__ import annotations

from .errors import FmailError
from .jmap import MAIL_URI, JMAPClient, Request, Response
from .logging import get_logger
from .models import AccountInfo, Mailbox, SessionInfo
from .transport import CancelToken

logger = get_logger(__name__)

# Used when the server doesn't advertise maxObjectsInSet (or reports 0)
DEFAULT_BATCH_SIZE = 50


class Client:
    """Account-scoped JMAP client.

    Args:
        jmap: Protocol client offering ``session``, ``do(request)``, and blob
            ``upload``/``download``
        account_id: Account to operate on; defaults to the primary mail account
    """

    def __init__(self, jmap: JMAPClient, account_id: str | None = None):
        self.jmap = jmap
        session = jmap.session
        self.username: str = session.username or ""
        self.account_id: str = account_id or session.primary_accounts.get(MAIL_URI, "")
        if not self.account_id:
            raise FmailError("no primary mail account found in session")
        self.max_batch_size: int = session.max_objects_in_set or DEFAULT_BATCH_SIZE
        self.mailbox_cache: list[Mailbox] | None = None

    @classmethod
    def connect(
        cls,
        session_url: str,
        token: str,
        *,
        account_id: str | None = None,
        timeout: float = 30.0,
        cancel_token: CancelToken | None = None,
    ) -> Client:
        """Authenticate, discover the session, and return a ready Client."""
        jmap = JMAPClient(
            session_url, token, cancel_token=cancel_token, timeout=timeout
        )
        client = cls(jmap, account_id=account_id or None)
        logger.info(
            "Connected",
            username=client.username,
            account_id=client.account_id,
            batch_size=client.max_batch_size,
        )
        return client

    def do(self, request: Request) -> Response:
        return self.jmap.do(request)

    def call(self, method: str, args: dict, using: list[str] | None = None) -> dict:
        """Run a single method call and return its response arguments.

        Raises MethodError when the server rejects the call.
        """
        request = Request(using)
        call_id = request.invoke(method, {"accountId": self.account_id, **args})
        response = self.do(request)
        inv = response.get(call_id)
        if inv is None:
            raise FmailError(f"{method}: unexpected response")
        inv.raise_for_error(method)
        return inv.args

    def require_capability(self, uri: str, feature: str) -> None:
        if uri not in self.jmap.session.capabilities:
            raise FmailError(f"server does not support {feature} (missing {uri} capability)")

    def upload(self, data: bytes, content_type: str = "application/octet-stream") -> str:
        """Upload a blob to the active account and return its blob id."""
        blob = self.jmap.upload(self.account_id, data, content_type)
        if not blob.get("blobId"):
            raise FmailError("upload: server returned no blobId")
        return blob["blobId"]

    def download(
        self, blob_id: str, name: str = "blob", content_type: str = "application/octet-stream"
    ) -> bytes:
        return self.jmap.download(self.account_id, blob_id, name, content_type)

    def session_info(self) -> SessionInfo:
        session = self.jmap.session
        accounts = {
            account_id: AccountInfo(
                name=acct.get("name", ""),
                is_personal=bool(acct.get("isPersonal", False)),
            )
            for account_id, acct in session.accounts.items()
        }
        return SessionInfo(
            username=session.username,
            accounts=accounts,
            capabilities=sorted(session.capabilities),
        )
