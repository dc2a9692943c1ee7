# -*- coding: utf-8 -*-
# Copyright: (c) 2021, Jordan Borean (@jborean93) <jborean93@gmail.com>
# MIT License (see LICENSE or https://opensource.org/licenses/MIT)

import pytest

from winrm_http import (
    Completion,
    RequestDescriptor,
    TransportResult,
    split_username,
)


def test_split_username():
    assert split_username("CORP\\alice") == ("CORP", "alice")


def test_split_username_extra_separator():
    assert split_username("CORP\\alice\\ignored") == ("CORP", "alice")


def test_split_username_no_separator():
    with pytest.raises(ValueError, match="does not contain a domain separator"):
        split_username("alice")


def test_request_defaults():
    request = RequestDescriptor("server", body="café")

    assert request.port == 5985
    assert request.path == "/wsman"
    assert request.method == "POST"
    assert request.headers == {}
    assert request.body == "café".encode("utf-8")
    assert request.username == ""
    assert request.password == ""
    assert request.timeout is None
    assert str(request.url) == "http://server:5985/wsman"


def test_request_zero_timeout_is_unbounded():
    assert RequestDescriptor("server", timeout=0).timeout is None
    assert RequestDescriptor("server", timeout=2.5).timeout == 2.5


def test_request_ipv6_url():
    request = RequestDescriptor("::1", port=5986, scheme="HTTPS")
    assert str(request.url) == "https://[::1]:5986/wsman"


def test_request_headers_are_copied():
    headers = {"X-Header": "value"}
    request = RequestDescriptor("server", headers=headers)
    headers["X-Other"] = "value"

    assert request.headers == {"X-Header": "value"}


def test_request_with_absolute_location():
    request = RequestDescriptor("server", username="CORP\\alice", body=b"data")
    actual = request.with_location("https://other.corp.local/wsman/alt?PSVersion=5.1")

    assert actual.scheme == "https"
    assert actual.host == "other.corp.local"
    assert actual.port == 443
    assert actual.path == "/wsman/alt?PSVersion=5.1"
    assert actual.username == "CORP\\alice"
    assert actual.body == b"data"

    assert request.host == "server"
    assert request.port == 5985
    assert request.path == "/wsman"


def test_request_with_relative_location():
    request = RequestDescriptor("server", port=5985)
    actual = request.with_location("/wsman/redirected")

    assert str(actual.url) == "http://server:5985/wsman/redirected"


def test_request_with_method():
    request = RequestDescriptor("server")
    actual = request.with_method("delete")

    assert actual.method == "DELETE"
    assert request.method == "POST"


def test_completion_resolves_once(callback):
    completion = Completion(callback)
    assert not completion.done

    assert completion.resolve(None, b"first") is True
    assert completion.resolve(500, b"second") is False

    assert completion.done
    assert completion.result == TransportResult(None, b"first")
    assert callback.calls == [(None, b"first")]


def test_completion_without_callback():
    completion = Completion()
    completion.resolve(401, b"denied")

    error, body = completion.result
    assert error == 401
    assert body == b"denied"


def test_completion_result_before_resolve():
    with pytest.raises(RuntimeError, match="has not been resolved"):
        _ = Completion().result
