# -*- coding: utf-8 -*-
# Copyright: (c) 2021, Jordan Borean (@jborean93) <jborean93@gmail.com>
# MIT License (see LICENSE or https://opensource.org/licenses/MIT)

"""
Authenticated HTTP transport for WinRM.

Carries WS-Management payloads, as opaque bytes, to a remote host using either
HTTP Basic authentication or the NTLM negotiate/challenge/authenticate
handshake. A ``DOMAIN\\user`` username selects NTLM, any other username uses
Basic.

The HTTP library used is `httpx`_ and the NTLM messages are computed by
`pyspnego`_.

.. _httpx:
    https://github.com/encode/httpx

.. _pyspnego:
    https://github.com/jborean93/pyspnego
"""

from ._auth import (
    AuthContext,
    BasicAuth,
    HandshakeState,
    NTLMAuth,
    NTLMContext,
    SpnegoNTLMContext,
    parse_challenge,
)

from ._transport import (
    AsyncWinRMHttp,
    AuthScheme,
    WinRMHttp,
    select_auth_scheme,
)

from ._utils import (
    Completion,
    RequestDescriptor,
    TransportResult,
    split_username,
)

__all__ = [
    "AsyncWinRMHttp",
    "AuthContext",
    "AuthScheme",
    "BasicAuth",
    "Completion",
    "HandshakeState",
    "NTLMAuth",
    "NTLMContext",
    "RequestDescriptor",
    "SpnegoNTLMContext",
    "TransportResult",
    "WinRMHttp",
    "parse_challenge",
    "select_auth_scheme",
    "split_username",
]
