"""Minimal JMAP (RFC 8620/8621) session and exchange client.

One exchange is a POST of ``{"using": [...], "methodCalls": [...]}`` to the
session's API URL. Each method call is ``[name, args, callId]``; the response
carries ``methodResponses`` in the same shape, where the name ``"error"``
marks a method-level error for that call id.

Responses are kept as a list of tagged Invocation values. Callers look up the
invocation for a call id and match on its name, instead of guessing from the
shape of the arguments.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from urllib.parse import quote

import httpx

from .errors import AuthenticationError, MethodError, TransportError
from .logging import get_logger
from .transport import CancelToken, RetryTransport

logger = get_logger(__name__)

CORE_URI = "urn:ietf:params:jmap:core"
MAIL_URI = "urn:ietf:params:jmap:mail"
DEFAULT_USING = [CORE_URI, MAIL_URI]

DEFAULT_SESSION_URL = "https://api.fastmail.com/jmap/session"


def result_ref(call_id: str, name: str, path: str = "/ids") -> dict:
    """Back-reference to the result of an earlier call in the same request."""
    return {"resultOf": call_id, "name": name, "path": path}


@dataclass
class Session:
    username: str
    api_url: str
    accounts: dict = field(default_factory=dict)
    primary_accounts: dict = field(default_factory=dict)
    capabilities: dict = field(default_factory=dict)
    upload_url: str = ""
    download_url: str = ""

    @classmethod
    def from_json(cls, data: dict) -> Session:
        return cls(
            username=data.get("username", ""),
            api_url=data.get("apiUrl", ""),
            upload_url=data.get("uploadUrl", ""),
            download_url=data.get("downloadUrl", ""),
            accounts=data.get("accounts", {}),
            primary_accounts=data.get("primaryAccounts", {}),
            capabilities=data.get("capabilities", {}),
        )

    @property
    def max_objects_in_set(self) -> int | None:
        """Server's core maxObjectsInSet, or None when absent or not positive."""
        core = self.capabilities.get(CORE_URI) or {}
        value = core.get("maxObjectsInSet")
        if isinstance(value, int) and value > 0:
            return value
        return None


def expand_url(template: str, **values: str) -> str:
    """Fill the {variables} of a session URL template, percent-encoding each value."""
    for key, value in values.items():
        template = template.replace("{" + key + "}", quote(value, safe=""))
    return template


@dataclass
class Invocation:
    """One entry of methodResponses: a method name, its arguments, and its call id."""

    name: str
    args: dict
    call_id: str

    @property
    def is_error(self) -> bool:
        return self.name == "error"

    def raise_for_error(self, method: str) -> None:
        if self.is_error:
            raise MethodError(
                method,
                self.call_id,
                self.args.get("type", "serverFail"),
                self.args.get("description"),
            )


class Request:
    """A batch of method calls to send in one exchange."""

    def __init__(self, using: list[str] | None = None):
        self.using = list(using or DEFAULT_USING)
        self.method_calls: list[list] = []

    def invoke(self, name: str, args: dict) -> str:
        """Append a method call and return its call id."""
        call_id = f"c{len(self.method_calls)}"
        self.method_calls.append([name, args, call_id])
        return call_id

    def method_for(self, call_id: str) -> str:
        """Method name of the call with this id, or "unknown"."""
        for name, _args, cid in self.method_calls:
            if cid == call_id:
                return name
        return "unknown"

    def to_json(self) -> dict:
        return {"using": self.using, "methodCalls": self.method_calls}


@dataclass
class Response:
    invocations: list[Invocation]
    session_state: str | None = None

    @classmethod
    def from_json(cls, data: dict) -> Response:
        invocations = []
        for index, entry in enumerate(data.get("methodResponses", [])):
            name, args, call_id = (list(entry) + [None, None, None])[:3]
            invocations.append(
                Invocation(
                    name=name or "error",
                    args=args or {},
                    call_id=call_id or str(index),
                )
            )
        return cls(invocations=invocations, session_state=data.get("sessionState"))

    def get(self, call_id: str) -> Invocation | None:
        for inv in self.invocations:
            if inv.call_id == call_id:
                return inv
        return None


class JMAPClient:
    """Authenticated JMAP client over httpx with retrying transport.

    Args:
        session_url: JMAP session resource URL
        token: Bearer token
        transport: Inner httpx transport (tests pass httpx.MockTransport)
        cancel_token: Cancellation shared by every exchange of this client
        timeout: Per-request timeout in seconds
    """

    def __init__(
        self,
        session_url: str,
        token: str,
        *,
        transport: httpx.BaseTransport | None = None,
        cancel_token: CancelToken | None = None,
        timeout: float = 30.0,
    ):
        self.session_url = session_url
        self.cancel_token = cancel_token or CancelToken()
        self._http = httpx.Client(
            transport=RetryTransport(transport, cancel_token=self.cancel_token),
            timeout=timeout,
            headers={"Authorization": f"Bearer {token}"},
        )
        self._session: Session | None = None

    @property
    def session(self) -> Session:
        if self._session is None:
            data = self._send("GET", self.session_url)
            self._session = Session.from_json(data)
            logger.debug(
                "JMAP session established",
                username=self._session.username,
                api_url=self._session.api_url,
            )
        return self._session

    def do(self, request: Request) -> Response:
        """Send a request and return its tagged method responses."""
        names = [call[0] for call in request.method_calls]
        logger.debug("JMAP request", methods=names)
        data = self._send("POST", self.session.api_url, request.to_json())
        return Response.from_json(data)

    def upload(
        self, account_id: str, data: bytes, content_type: str = "application/octet-stream"
    ) -> dict:
        """Upload a blob and return the server's ``{"blobId", "type", "size"}``."""
        if not self.session.upload_url:
            raise TransportError("session does not advertise an uploadUrl")
        url = expand_url(self.session.upload_url, accountId=account_id)
        response = self._request("POST", url, content=data, headers={"Content-Type": content_type})
        blob = self._json(response, url)
        logger.debug("Blob uploaded", blob_id=blob.get("blobId"), size=len(data))
        return blob

    def download(
        self,
        account_id: str,
        blob_id: str,
        name: str = "blob",
        content_type: str = "application/octet-stream",
    ) -> bytes:
        if not self.session.download_url:
            raise TransportError("session does not advertise a downloadUrl")
        url = expand_url(
            self.session.download_url,
            accountId=account_id,
            blobId=blob_id,
            name=name,
            type=content_type,
        )
        return self._request("GET", url).content

    def _send(self, method: str, url: str, payload: dict | None = None) -> dict:
        return self._json(self._request(method, url, json=payload), url)

    def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            response = self._http.request(
                method,
                url,
                extensions={"cancel_token": self.cancel_token},
                **kwargs,
            )
        except httpx.HTTPError as e:
            raise TransportError(f"{method} {url}: {e}") from e

        if response.status_code in (401, 403):
            raise AuthenticationError(
                f"server rejected credentials (HTTP {response.status_code})",
                hint="Check your credential command or the token it returns",
            )
        if response.is_error:
            raise TransportError(f"HTTP {response.status_code} from {url}")
        return response

    @staticmethod
    def _json(response: httpx.Response, url: str) -> dict:
        try:
            return response.json()
        except ValueError as e:
            raise TransportError(f"invalid JSON from {url}: {e}") from e

    def close(self) -> None:
        self._http.close()
