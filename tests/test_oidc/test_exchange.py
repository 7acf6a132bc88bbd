"""Tests for the authorization code exchange."""

from __future__ import annotations

from typing import Any
from urllib.parse import parse_qs

import httpx
import pytest

from konfigurator.exceptions import ExchangeError
from konfigurator.oidc.exchange import TokenExchangeClient

TOKEN_URL = "https://dex.example.com/token"
REDIRECT = "http://localhost:8000/oauth/callback"


def _exchanger(
    status: int = 200,
    body: Any = None,
    raw: bytes | None = None,
    requests: list[httpx.Request] | None = None,
) -> TokenExchangeClient:
    def handler(request: httpx.Request) -> httpx.Response:
        if requests is not None:
            requests.append(request)
        if raw is not None:
            return httpx.Response(status, content=raw)
        return httpx.Response(status, json=body)

    client = httpx.Client(transport=httpx.MockTransport(handler))
    return TokenExchangeClient(client, TOKEN_URL, "kubernetes", REDIRECT)


class TestTokenExchangeClient:
    def test_success_returns_id_token(self) -> None:
        requests: list[httpx.Request] = []
        exchanger = _exchanger(
            body={"access_token": "at", "id_token": "eyJ.id.token", "token_type": "bearer"},
            requests=requests,
        )

        token = exchanger.exchange("validcode")

        assert token.raw_value == "eyJ.id.token"
        assert len(requests) == 1
        request = requests[0]
        assert request.method == "POST"
        assert str(request.url) == TOKEN_URL
        form = parse_qs(request.content.decode())
        assert form == {
            "grant_type": ["authorization_code"],
            "code": ["validcode"],
            "redirect_uri": [REDIRECT],
            "client_id": ["kubernetes"],
        }

    def test_rejected_code(self) -> None:
        exchanger = _exchanger(status=400, body={"error": "invalid_grant"})
        with pytest.raises(ExchangeError, match="status 400"):
            exchanger.exchange("expired")

    def test_network_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out", request=request)

        client = httpx.Client(transport=httpx.MockTransport(handler))
        exchanger = TokenExchangeClient(client, TOKEN_URL, "kubernetes", REDIRECT)
        with pytest.raises(ExchangeError, match="timed out"):
            exchanger.exchange("code")

    def test_missing_id_token(self) -> None:
        exchanger = _exchanger(body={"access_token": "only-access"})
        with pytest.raises(ExchangeError, match="id_token"):
            exchanger.exchange("code")

    def test_non_string_id_token(self) -> None:
        with pytest.raises(ExchangeError, match="id_token"):
            _exchanger(body={"id_token": 42}).exchange("code")

    def test_non_json_body(self) -> None:
        with pytest.raises(ExchangeError, match="not valid JSON"):
            _exchanger(raw=b"oops").exchange("code")

    def test_empty_code_not_sent(self) -> None:
        requests: list[httpx.Request] = []
        exchanger = _exchanger(body={"id_token": "x"}, requests=requests)
        with pytest.raises(ExchangeError, match="No authorization code"):
            exchanger.exchange("")
        assert requests == []

    def test_no_retry_on_failure(self) -> None:
        requests: list[httpx.Request] = []
        exchanger = _exchanger(status=500, body={}, requests=requests)
        with pytest.raises(ExchangeError):
            exchanger.exchange("code")
        assert len(requests) == 1
