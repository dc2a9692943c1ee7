# -*- coding: utf-8 -*-
# Copyright: (c) 2021, Jordan Borean (@jborean93) <jborean93@gmail.com>
# MIT License (see LICENSE or https://opensource.org/licenses/MIT)

import abc
import base64
import binascii
import enum
import logging
import re
import struct
import typing

import httpx
import spnego
from spnego.exceptions import SpnegoError

from ._utils import (
    DOMAIN_SEPARATOR,
    RequestDescriptor,
    split_username,
)

from .exceptions import (
    ChallengeMissingError,
    HandshakeStateError,
    MalformedChallengeError,
    NTLMProtocolError,
)

log = logging.getLogger(__name__)

WWW_AUTHS = "WWW-Authenticate"
WWW_AUTHZ = "Authorization"
NTLM_AUTH_PATTERN = re.compile(r"\b(NTLM|Negotiate)\b[ \t]*([^,\s]*)", re.I)
NTLMSSP_SIGNATURE = b"NTLMSSP\x00"
NTLM_CHALLENGE_MESSAGE = 2


def parse_challenge(
    auths: str,
) -> typing.Tuple[str, bytes]:
    """Extract the NTLM challenge from a WWW-Authenticate header value.

    The header may hold multiple comma separated challenges, the first NTLM
    or Negotiate scheme that carries a token is used.

    Args:
        auths: The WWW-Authenticate header value.

    Returns:
        Tuple[str, bytes]: The auth type (NTLM or Negotiate) the server used
            and the raw type 2 challenge message.
    """
    for match in NTLM_AUTH_PATTERN.finditer(auths):
        token = match.group(2)
        if not token:
            continue

        try:
            challenge = base64.b64decode(token, validate=True)
        except (binascii.Error, ValueError):
            raise MalformedChallengeError(f"The {match.group(1)} token in the WWW-Authenticate header is not valid base64")

        if len(challenge) < 12 or not challenge.startswith(NTLMSSP_SIGNATURE):
            raise MalformedChallengeError("The WWW-Authenticate token is not an NTLM message")

        message_type = struct.unpack("<I", challenge[8:12])[0]
        if message_type != NTLM_CHALLENGE_MESSAGE:
            raise MalformedChallengeError(f"Expecting an NTLM challenge message but got message type {message_type}")

        auth_type = "Negotiate" if match.group(1).lower() == "negotiate" else "NTLM"
        return auth_type, challenge

    raise MalformedChallengeError()


class AuthContext:
    """The NTLM credentials for a single logical call.

    The domain always comes from the ``DOMAIN\\user`` username, an explicit
    domain on the request is not used.
    """

    def __init__(
        self,
        username: str,
        password: str,
        domain: str = "",
        workstation: str = "",
    ):
        self.username = username
        self.password = password
        self.domain = domain
        self.workstation = workstation

    def __repr__(self):
        return (
            f"<{type(self).__name__} domain={self.domain!r} username={self.username!r} "
            f"workstation={self.workstation!r}>"
        )

    @classmethod
    def from_request(
        cls,
        request: RequestDescriptor,
    ) -> "AuthContext":
        domain, username = split_username(request.username)
        if request.domain and request.domain != domain:
            log.debug("Ignoring explicit domain %r in favour of %r from the username", request.domain, domain)

        return cls(username, request.password, domain=domain, workstation=request.workstation or "")

    @property
    def principal(self) -> str:
        if not self.domain:
            return self.username

        return f"{self.domain}{DOMAIN_SEPARATOR}{self.username}"


class NTLMContext(metaclass=abc.ABCMeta):
    """Produces the NTLM messages for one handshake."""

    @abc.abstractmethod
    def negotiate(self) -> bytes:
        """Build the type 1 negotiate message."""
        pass

    @abc.abstractmethod
    def authenticate(
        self,
        challenge: bytes,
    ) -> bytes:
        """Build the type 3 authenticate message for the type 2 challenge.

        Should raise :class:`MalformedChallengeError` if the challenge cannot
        be processed.
        """
        pass


class SpnegoNTLMContext(NTLMContext):
    """NTLM messages computed by pyspnego.

    pyspnego chooses the workstation name it advertises, the one in the
    AuthContext is only used by custom contexts.
    """

    def __init__(
        self,
        auth_context: AuthContext,
        hostname: str,
        service: str = "HTTP",
    ):
        self._context = spnego.client(
            auth_context.principal,
            auth_context.password,
            hostname=hostname,
            service=service,
            protocol="ntlm",
        )

    def negotiate(self) -> bytes:
        return self._context.step()

    def authenticate(
        self,
        challenge: bytes,
    ) -> bytes:
        try:
            token = self._context.step(challenge)
        except (SpnegoError, ValueError, struct.error) as err:
            raise MalformedChallengeError(f"Failed to process the NTLM challenge: {err}") from err

        if not token:
            raise MalformedChallengeError("The NTLM challenge did not produce an authenticate message")

        return token


ContextFactory = typing.Callable[[AuthContext, str], NTLMContext]


class RedirectRequired(Exception):
    """The negotiate leg was redirected, the whole call must be restarted."""

    def __init__(
        self,
        location: str,
    ):
        super().__init__(location)
        self.location = location


class BasicAuth(httpx.Auth):
    def __init__(
        self,
        username: str,
        password: str,
    ):
        credential = f'{username or ""}:{password or ""}'.encode("utf-8")
        self._token = f"Basic {base64.b64encode(credential).decode()}"

    def auth_flow(
        self,
        request: httpx.Request,
    ) -> typing.Generator[httpx.Request, httpx.Response, None]:
        request.headers[WWW_AUTHZ] = self._token
        yield request


class HandshakeState(enum.Enum):
    NEGOTIATE_SENT = enum.auto()
    CHALLENGE_RECEIVED = enum.auto()
    AUTHENTICATE_SENT = enum.auto()
    DONE = enum.auto()
    FAILED = enum.auto()


# None is the state before the negotiate leg is sent.
_TRANSITIONS: typing.Dict[typing.Optional[HandshakeState], typing.Set[HandshakeState]] = {
    None: {HandshakeState.NEGOTIATE_SENT, HandshakeState.FAILED},
    HandshakeState.NEGOTIATE_SENT: {HandshakeState.CHALLENGE_RECEIVED, HandshakeState.FAILED},
    HandshakeState.CHALLENGE_RECEIVED: {HandshakeState.AUTHENTICATE_SENT, HandshakeState.FAILED},
    HandshakeState.AUTHENTICATE_SENT: {HandshakeState.DONE, HandshakeState.FAILED},
    HandshakeState.DONE: set(),
    HandshakeState.FAILED: set(),
}


class NTLMAuth(httpx.Auth):
    """NTLM negotiate/challenge/authenticate handshake for one logical call.

    The negotiate leg is sent without a body over a keep-alive connection.
    The challenge in the WWW-Authenticate header of its response is used to
    compute the authenticate message that is sent with the real request and
    ``Connection: Close``. The response to that leg is the final response,
    whatever its status, there is no second attempt.

    A response to the negotiate leg with a Location header raises
    :class:`RedirectRequired` so the caller can restart the call against the
    new location.

    The same httpx client must drive both legs so they share a connection,
    the server binds the NTLM session to it.

    Args:
        context: Computes the type 1 and type 3 messages.
    """

    requires_response_body = True

    def __init__(
        self,
        context: NTLMContext,
    ):
        self._context = context
        self.state: typing.Optional[HandshakeState] = None

    def auth_flow(
        self,
        request: httpx.Request,
    ) -> typing.Generator[httpx.Request, httpx.Response, None]:
        negotiate = self._context.negotiate()
        negotiate_request = httpx.Request(
            request.method,
            request.url,
            headers={
                "Accept-Encoding": request.headers.get("Accept-Encoding", "identity"),
                "Content-Type": request.headers.get("Content-Type", ""),
                "User-Agent": request.headers.get("User-Agent", ""),
                WWW_AUTHZ: f"NTLM {base64.b64encode(negotiate).decode()}",
                "Connection": "keep-alive",
                "Content-Length": "0",
            },
            extensions=request.extensions,
        )

        self._transition(HandshakeState.NEGOTIATE_SENT)
        log.debug("Sending NTLM negotiate message to %s", request.url)
        response = yield negotiate_request

        location = response.headers.get("Location")
        if location:
            log.debug("Negotiate request to %s was redirected to %s", request.url, location)
            self._transition(HandshakeState.FAILED)
            raise RedirectRequired(location)

        auths = response.headers.get(WWW_AUTHS)
        if not auths:
            self._fail(ChallengeMissingError())

        try:
            auth_type, challenge = parse_challenge(auths)
            self._transition(HandshakeState.CHALLENGE_RECEIVED)
            authenticate = self._context.authenticate(challenge)
        except NTLMProtocolError as err:
            self._fail(err)

        log.debug("Received %s challenge of %d bytes, sending authenticate message", auth_type, len(challenge))
        request.headers[WWW_AUTHZ] = f"{auth_type} {base64.b64encode(authenticate).decode()}"
        request.headers["Connection"] = "Close"
        request.headers["Content-Length"] = str(len(request.content))

        self._transition(HandshakeState.AUTHENTICATE_SENT)
        response = yield request
        self._transition(HandshakeState.DONE)
        log.debug("NTLM authenticated request to %s completed with %d", request.url, response.status_code)

    def _fail(
        self,
        err: NTLMProtocolError,
    ) -> typing.NoReturn:
        log.warning("NTLM handshake failed: %s", err)
        if self.state != HandshakeState.FAILED:
            self._transition(HandshakeState.FAILED)
        raise err

    def _transition(
        self,
        new_state: HandshakeState,
    ):
        if new_state not in _TRANSITIONS[self.state]:
            current = self.state.name if self.state else "INITIAL"
            raise HandshakeStateError(f"Cannot move the NTLM handshake from {current} to {new_state.name}")

        log.debug("NTLM handshake state %s -> %s", self.state.name if self.state else "INITIAL", new_state.name)
        self.state = new_state
