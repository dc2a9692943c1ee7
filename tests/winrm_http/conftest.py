# -*- coding: utf-8 -*-
# Copyright: (c) 2021, Jordan Borean (@jborean93) <jborean93@gmail.com>
# MIT License (see LICENSE or https://opensource.org/licenses/MIT)

import base64
import struct
import typing

import httpx
import pytest
import spnego

from winrm_http import (
    AuthContext,
    NTLMContext,
    RequestDescriptor,
)

NEGOTIATE_MESSAGE = b"NTLMSSP\x00" + struct.pack("<I", 1) + b"\x07\x82\x08\xa2" + b"\x00" * 16
CHALLENGE_MESSAGE = b"NTLMSSP\x00" + struct.pack("<I", 2) + b"\x00" * 8 + b"\x05\x82\x89\xa2" + b"\x11" * 8
AUTHENTICATE_MESSAGE = b"NTLMSSP\x00" + struct.pack("<I", 3) + b"\x00" * 24


def b64(data: bytes) -> str:
    return base64.b64encode(data).decode()


def challenge_response(auth_type: str = "NTLM") -> httpx.Response:
    return httpx.Response(401, headers={"WWW-Authenticate": f"{auth_type} {b64(CHALLENGE_MESSAGE)}"})


def auth_token(request: httpx.Request) -> bytes:
    return base64.b64decode(request.headers["Authorization"].split(" ", 1)[1])


class FakeNTLMContext(NTLMContext):
    def __init__(
        self,
        auth_context: AuthContext,
        hostname: str,
    ):
        self.auth_context = auth_context
        self.hostname = hostname
        self.challenges = []

    def negotiate(self) -> bytes:
        return NEGOTIATE_MESSAGE

    def authenticate(
        self,
        challenge: bytes,
    ) -> bytes:
        self.challenges.append(challenge)
        return AUTHENTICATE_MESSAGE


class FakeContextFactory:
    def __init__(self):
        self.contexts: typing.List[FakeNTLMContext] = []

    def __call__(
        self,
        auth_context: AuthContext,
        hostname: str,
    ) -> FakeNTLMContext:
        context = FakeNTLMContext(auth_context, hostname)
        self.contexts.append(context)
        return context


class ChunkedStream(httpx.SyncByteStream, httpx.AsyncByteStream):
    def __init__(
        self,
        chunks: typing.List[bytes],
    ):
        self.chunks = chunks
        self.closed = 0

    def __iter__(self):
        yield from self.chunks

    async def __aiter__(self):
        for chunk in self.chunks:
            yield chunk

    def close(self):
        self.closed += 1

    async def aclose(self):
        self.closed += 1


class FakeServer:
    """Answers each leg with the next scripted response and records the legs.

    A scripted entry can be a Response, an exception to raise or a callable
    that gets the request.
    """

    def __init__(
        self,
        *responses: typing.Any,
    ):
        self.requests: typing.List[httpx.Request] = []
        self.transports = 0
        self._responses = list(responses)

    def __call__(
        self,
        request: httpx.Request,
    ) -> httpx.Response:
        self.requests.append(request)
        response = self._responses.pop(0) if len(self._responses) > 1 else self._responses[0]

        if isinstance(response, Exception):
            raise response

        if callable(response) and not isinstance(response, httpx.Response):
            return response(request)

        return response

    def transport_factory(self) -> httpx.MockTransport:
        self.transports += 1
        return httpx.MockTransport(self)


class CallbackRecorder:
    def __init__(self):
        self.calls = []

    def __call__(
        self,
        error: typing.Any,
        body: bytes,
    ):
        self.calls.append((error, body))


def acceptor_handler(
    acceptor: typing.Any,
    body: bytes = b"<ok/>",
) -> typing.Callable[[httpx.Request], httpx.Response]:
    """Server side of the NTLM handshake backed by a pyspnego acceptor."""

    def handler(request: httpx.Request) -> httpx.Response:
        out_token = acceptor.step(auth_token(request))
        if out_token:
            return httpx.Response(401, headers={"WWW-Authenticate": f"NTLM {b64(out_token)}"})

        return httpx.Response(200, content=body)

    return handler


@pytest.fixture
def ntlm_acceptor(tmp_path, monkeypatch):
    user_file = tmp_path / "ntlm_users"
    user_file.write_text("CORP:alice:secret\n")
    monkeypatch.setenv("NTLM_USER_FILE", str(user_file))

    return spnego.server(protocol="ntlm")


@pytest.fixture
def context_factory():
    return FakeContextFactory()


@pytest.fixture
def callback():
    return CallbackRecorder()


@pytest.fixture
def ntlm_request():
    return RequestDescriptor(
        "server",
        username="CORP\\alice",
        password="secret",
        headers={"X-Request": "value"},
        body="<s:Envelope/>",
        timeout=5,
    )


@pytest.fixture
def basic_request():
    return RequestDescriptor(
        "server",
        username="alice",
        password="secret",
        body="<s:Envelope/>",
        timeout=5,
    )
