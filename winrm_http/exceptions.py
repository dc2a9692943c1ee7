# -*- coding: utf-8 -*-
# Copyright: (c) 2021, Jordan Borean (@jborean93) <jborean93@gmail.com>
# MIT License (see LICENSE or https://opensource.org/licenses/MIT)

import typing


class WinRMHttpError(Exception):
    """Base class for every error raised by the WinRM HTTP transport.

    Transport level failures (connection refused, timeouts) are not wrapped,
    they are the httpx exception that was raised on the leg that failed.
    """

    MESSAGE = "Unknown WinRM HTTP transport error."

    def __init__(
        self,
        message: typing.Optional[str] = None,
    ):
        super().__init__(message or self.MESSAGE)

    @property
    def message(self) -> str:
        return self.args[0]

    def __str__(self):
        return self.message


class UnsupportedAuthSchemeError(WinRMHttpError):
    MESSAGE = "Domain account authentication is not supported on this platform"


class NTLMProtocolError(WinRMHttpError):
    MESSAGE = "The server did not follow the NTLM handshake."


class ChallengeMissingError(NTLMProtocolError):
    MESSAGE = "www-authenticate not found on response of negotiate request"


class MalformedChallengeError(NTLMProtocolError):
    MESSAGE = "Couldn't find a valid NTLM challenge in the WWW-Authenticate header"


class HandshakeStateError(NTLMProtocolError):
    MESSAGE = "Invalid NTLM handshake state transition."


class TooManyRedirectsError(WinRMHttpError):
    MESSAGE = "Exceeded the maximum number of redirects."

    def __init__(
        self,
        max_redirects: int,
        location: typing.Optional[str] = None,
    ):
        self.max_redirects = max_redirects
        self.location = location
        super().__init__(f"Exceeded the maximum of {max_redirects} redirect(s), last location: {location}")
