# -*- coding: utf-8 -*-
# Copyright: (c) 2021, Jordan Borean (@jborean93) <jborean93@gmail.com>
# MIT License (see LICENSE or https://opensource.org/licenses/MIT)

import collections
import copy
import logging
import typing

import httpx

log = logging.getLogger(__name__)

WSMAN_PATH = "/wsman"
SOAP_CONTENT_TYPE = "application/soap+xml;charset=UTF-8"
DEFAULT_USER_AGENT = "Python WinRM HTTP Client"
DOMAIN_SEPARATOR = "\\"

_DEFAULT_PORTS = {
    "http": 80,
    "https": 443,
}

TransportResult = collections.namedtuple("TransportResult", ["error", "body"])
TransportResult.__doc__ = """The outcome of a logical call.

error is None for a 2xx response, the status code for any other response or
the exception that stopped the call before a final response was received.
"""

Callback = typing.Callable[[typing.Any, bytes], None]


def split_username(
    username: str,
) -> typing.Tuple[str, str]:
    """Split a down-level logon name into the domain and the bare username.

    Args:
        username: The username in the form ``DOMAIN\\user``.

    Returns:
        Tuple[str, str]: The domain and the username.
    """
    parts = username.split(DOMAIN_SEPARATOR)
    if len(parts) < 2:
        raise ValueError(f"The username '{username}' does not contain a domain separator")

    return parts[0], parts[1]


class RequestDescriptor:
    """Everything needed to send a single WinRM request.

    The descriptor is owned by the caller and never modified by the transport,
    a redirect produces a copy with :meth:`with_location`.

    Args:
        host: The hostname or IP address of the WinRM endpoint.
        port: The port of the WinRM endpoint.
        path: The request path, including any query string.
        method: The HTTP verb, overridden by the verb method that is called.
        headers: Extra headers to send on the authenticated request.
        body: The request payload, a str is encoded as UTF-8.
        username: The username, ``DOMAIN\\user`` selects NTLM authentication.
        password: The password for username.
        domain: An explicit domain, the one in username always takes precedence.
        workstation: The workstation name to advertise during NTLM.
        timeout: Timeout in seconds for each HTTP leg, None or 0 for no timeout.
        scheme: Either http or https.
    """

    def __init__(
        self,
        host: str,
        port: int = 5985,
        path: str = WSMAN_PATH,
        method: str = "POST",
        headers: typing.Optional[typing.Mapping[str, str]] = None,
        body: typing.Union[bytes, str] = b"",
        username: typing.Optional[str] = None,
        password: typing.Optional[str] = None,
        domain: typing.Optional[str] = None,
        workstation: typing.Optional[str] = None,
        timeout: typing.Optional[float] = None,
        scheme: str = "http",
    ):
        self.host = host
        self.port = port
        self.path = path or "/"
        self.method = method.upper()
        self.headers = dict(headers or {})
        self.body = body.encode("utf-8") if isinstance(body, str) else bytes(body or b"")
        self.username = username or ""
        self.password = password or ""
        self.domain = domain
        self.workstation = workstation
        self.timeout = timeout or None
        self.scheme = scheme.lower()

    def __repr__(self):
        return f"<{type(self).__name__} {self.method} {self.url} username={self.username!r}>"

    @property
    def url(self) -> httpx.URL:
        host = self.host
        if ":" in host and not host.startswith("["):
            host = f"[{host}]"

        return httpx.URL(f"{self.scheme}://{host}:{self.port}{self.path}")

    def with_location(
        self,
        location: str,
    ) -> "RequestDescriptor":
        """Copy of the descriptor that targets the Location of a redirect."""
        new_url = self.url.join(location)

        new_request = copy.copy(self)
        new_request.headers = dict(self.headers)
        new_request.scheme = new_url.scheme
        new_request.host = new_url.host
        new_request.port = new_url.port or _DEFAULT_PORTS.get(new_url.scheme, self.port)
        new_request.path = new_url.raw_path.decode("ascii")

        return new_request

    def with_method(
        self,
        method: str,
    ) -> "RequestDescriptor":
        new_request = copy.copy(self)
        new_request.method = method.upper()

        return new_request


class Completion:
    """One-shot completion guard for a logical call.

    The first :meth:`resolve` stores the result and fires the callback, any
    later resolution is ignored. Both the end of the response body and the
    release of the connection can signal the end of a call, only one of them
    reaches the caller.

    Args:
        callback: Called with ``(error, body)`` when the call is resolved.
    """

    def __init__(
        self,
        callback: typing.Optional[Callback] = None,
    ):
        self._callback = callback
        self._result: typing.Optional[TransportResult] = None

    @property
    def done(self) -> bool:
        return self._result is not None

    @property
    def result(self) -> TransportResult:
        if self._result is None:
            raise RuntimeError("The call has not been resolved yet")

        return self._result

    def resolve(
        self,
        error: typing.Any,
        body: bytes = b"",
    ) -> bool:
        """Resolve the call.

        Args:
            error: None, the status code or the exception of the call.
            body: The response body.

        Returns:
            bool: Whether this call resolved the completion, False if it was
                already resolved.
        """
        if self._result is not None:
            log.debug("Ignoring duplicate completion (%r) of an already resolved call", error)
            return False

        self._result = TransportResult(error, body)
        if self._callback:
            self._callback(error, body)

        return True
