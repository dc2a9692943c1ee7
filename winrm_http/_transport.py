# -*- coding: utf-8 -*-
# Copyright: (c) 2021, Jordan Borean (@jborean93) <jborean93@gmail.com>
# MIT License (see LICENSE or https://opensource.org/licenses/MIT)

import enum
import logging
import typing

import httpx

from ._auth import (
    AuthContext,
    BasicAuth,
    ContextFactory,
    NTLMAuth,
    RedirectRequired,
    SpnegoNTLMContext,
)

from ._utils import (
    Callback,
    Completion,
    DEFAULT_USER_AGENT,
    DOMAIN_SEPARATOR,
    RequestDescriptor,
    SOAP_CONTENT_TYPE,
    TransportResult,
)

from .exceptions import (
    TooManyRedirectsError,
    UnsupportedAuthSchemeError,
    WinRMHttpError,
)

log = logging.getLogger(__name__)

TransportFactory = typing.Callable[[], typing.Union[httpx.BaseTransport, httpx.AsyncBaseTransport]]


class AuthScheme(enum.Enum):
    BASIC = "basic"
    NTLM = "ntlm"


def select_auth_scheme(
    username: typing.Optional[str],
    supports_domain_auth: bool = True,
) -> AuthScheme:
    """Pick the authentication scheme for a username.

    A ``DOMAIN\\user`` username selects NTLM, anything else uses Basic. A
    separator in the first position does not name a domain.

    Args:
        username: The username of the request.
        supports_domain_auth: Whether domain accounts can be used.

    Returns:
        AuthScheme: The scheme to use.
    """
    if (username or "").find(DOMAIN_SEPARATOR) > 0:
        if not supports_domain_auth:
            raise UnsupportedAuthSchemeError()

        return AuthScheme.NTLM

    return AuthScheme.BASIC


class _WinRMHttpBase:
    """Shared logic of the sync and async WinRM HTTP transports.

    Every logical call opens its own httpx client, and with it its own
    connection pool, that is closed when the call completes. The legs of an
    NTLM handshake and any redirect restart go through that one client.

    Args:
        supports_domain_auth: Whether ``DOMAIN\\user`` accounts can be used,
            when False such a call fails before anything is sent.
        user_agent: The User-Agent header value.
        max_redirects: How many times a redirect of the NTLM negotiate leg can
            restart the call.
        transport_factory: Creates the httpx transport for each call, the
            default is the httpx connection pool.
        context_factory: Creates the NTLM message context from the
            AuthContext and hostname, defaults to pyspnego.
    """

    def __init__(
        self,
        supports_domain_auth: bool = True,
        user_agent: str = DEFAULT_USER_AGENT,
        max_redirects: int = 5,
        transport_factory: typing.Optional[TransportFactory] = None,
        context_factory: typing.Optional[ContextFactory] = None,
    ):
        if max_redirects < 0:
            raise ValueError("max_redirects must be 0 or greater")

        self.supports_domain_auth = supports_domain_auth
        self.user_agent = user_agent
        self.max_redirects = max_redirects
        self._transport_factory = transport_factory
        self._context_factory = context_factory or SpnegoNTLMContext

    def _client_kwargs(self) -> typing.Dict[str, typing.Any]:
        # Accept-Encoding identity stops IIS hosted endpoints from compressing the response.
        return {
            "headers": {
                "Accept-Encoding": "identity",
                "User-Agent": self.user_agent,
            },
            "follow_redirects": False,
            "transport": self._transport_factory() if self._transport_factory else None,
        }

    def _build_request(
        self,
        client: typing.Union[httpx.Client, httpx.AsyncClient],
        request: RequestDescriptor,
    ) -> httpx.Request:
        headers = httpx.Headers(
            {
                "Content-Type": SOAP_CONTENT_TYPE,
                "User-Agent": self.user_agent,
            }
        )
        headers.update(request.headers)
        headers["Content-Length"] = str(len(request.body))

        return client.build_request(
            request.method,
            request.url,
            headers=headers,
            content=request.body,
            timeout=httpx.Timeout(request.timeout),
        )

    def _build_auth(
        self,
        request: RequestDescriptor,
    ) -> httpx.Auth:
        scheme = select_auth_scheme(request.username, self.supports_domain_auth)
        log.debug("Using %s authentication for %r", scheme.value, request)

        if scheme == AuthScheme.BASIC:
            return BasicAuth(request.username, request.password)

        auth_context = AuthContext.from_request(request)
        return NTLMAuth(self._context_factory(auth_context, request.host))

    def _redirect(
        self,
        request: RequestDescriptor,
        location: str,
        redirects: int,
    ) -> RequestDescriptor:
        if redirects >= self.max_redirects:
            raise TooManyRedirectsError(self.max_redirects, location)

        new_request = request.with_location(location)
        log.debug("Restarting call to %s after redirect %d to %s", request.url, redirects + 1, new_request.url)

        return new_request

    def _result(
        self,
        response: httpx.Response,
    ) -> TransportResult:
        body = response.content
        if 200 <= response.status_code <= 299:
            return TransportResult(None, body)

        log.debug("Request to %s failed with status %d", response.url, response.status_code)
        return TransportResult(response.status_code, body)

    def _failed(
        self,
        request: RequestDescriptor,
        err: Exception,
    ):
        log.warning("WinRM %s request to %s failed: %s", request.method, request.url, err)


class WinRMHttp(_WinRMHttpBase):
    """Send WinRM requests with Basic or NTLM authentication.

    Each verb method performs one logical call and returns the
    :class:`TransportResult`. When a callback is passed it is called exactly
    once with ``(error, body)`` before the method returns. Failures never
    raise, they are the error of the result.
    """

    def request(
        self,
        method: str,
        request: RequestDescriptor,
        callback: typing.Optional[Callback] = None,
    ) -> TransportResult:
        completion = Completion(callback)
        request = request.with_method(method)

        try:
            with httpx.Client(**self._client_kwargs()) as client:
                result = self._send(client, request)

        except (httpx.HTTPError, WinRMHttpError) as err:
            self._failed(request, err)
            result = TransportResult(err, b"")

        # The pool is closed before the caller sees the result.
        completion.resolve(*result)

        return completion.result

    def get(
        self,
        request: RequestDescriptor,
        callback: typing.Optional[Callback] = None,
    ) -> TransportResult:
        return self.request("GET", request, callback)

    def put(
        self,
        request: RequestDescriptor,
        callback: typing.Optional[Callback] = None,
    ) -> TransportResult:
        return self.request("PUT", request, callback)

    def patch(
        self,
        request: RequestDescriptor,
        callback: typing.Optional[Callback] = None,
    ) -> TransportResult:
        return self.request("PATCH", request, callback)

    def post(
        self,
        request: RequestDescriptor,
        callback: typing.Optional[Callback] = None,
    ) -> TransportResult:
        return self.request("POST", request, callback)

    def delete(
        self,
        request: RequestDescriptor,
        callback: typing.Optional[Callback] = None,
    ) -> TransportResult:
        return self.request("DELETE", request, callback)

    def options(
        self,
        request: RequestDescriptor,
        callback: typing.Optional[Callback] = None,
    ) -> TransportResult:
        return self.request("OPTIONS", request, callback)

    def _send(
        self,
        client: httpx.Client,
        request: RequestDescriptor,
    ) -> TransportResult:
        redirects = 0
        while True:
            auth = self._build_auth(request)
            http_request = self._build_request(client, request)

            try:
                response = client.send(http_request, auth=auth)
            except RedirectRequired as redirect:
                request = self._redirect(request, redirect.location, redirects)
                redirects += 1
                continue

            return self._result(response)


class AsyncWinRMHttp(_WinRMHttpBase):
    """The asyncio version of :class:`WinRMHttp`."""

    async def request(
        self,
        method: str,
        request: RequestDescriptor,
        callback: typing.Optional[Callback] = None,
    ) -> TransportResult:
        completion = Completion(callback)
        request = request.with_method(method)

        try:
            async with httpx.AsyncClient(**self._client_kwargs()) as client:
                result = await self._send(client, request)

        except (httpx.HTTPError, WinRMHttpError) as err:
            self._failed(request, err)
            result = TransportResult(err, b"")

        # The pool is closed before the caller sees the result.
        completion.resolve(*result)

        return completion.result

    async def get(
        self,
        request: RequestDescriptor,
        callback: typing.Optional[Callback] = None,
    ) -> TransportResult:
        return await self.request("GET", request, callback)

    async def put(
        self,
        request: RequestDescriptor,
        callback: typing.Optional[Callback] = None,
    ) -> TransportResult:
        return await self.request("PUT", request, callback)

    async def patch(
        self,
        request: RequestDescriptor,
        callback: typing.Optional[Callback] = None,
    ) -> TransportResult:
        return await self.request("PATCH", request, callback)

    async def post(
        self,
        request: RequestDescriptor,
        callback: typing.Optional[Callback] = None,
    ) -> TransportResult:
        return await self.request("POST", request, callback)

    async def delete(
        self,
        request: RequestDescriptor,
        callback: typing.Optional[Callback] = None,
    ) -> TransportResult:
        return await self.request("DELETE", request, callback)

    async def options(
        self,
        request: RequestDescriptor,
        callback: typing.Optional[Callback] = None,
    ) -> TransportResult:
        return await self.request("OPTIONS", request, callback)

    async def _send(
        self,
        client: httpx.AsyncClient,
        request: RequestDescriptor,
    ) -> TransportResult:
        redirects = 0
        while True:
            auth = self._build_auth(request)
            http_request = self._build_request(client, request)

            try:
                response = await client.send(http_request, auth=auth)
            except RedirectRequired as redirect:
                request = self._redirect(request, redirect.location, redirects)
                redirects += 1
                continue

            return self._result(response)
