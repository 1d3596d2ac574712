from __future__ import annotations

import httpx
import pytest

from guildrelay.core.errors import (
    ProviderAuthError,
    ProviderError,
    ProviderGoneError,
    ProviderNotFoundError,
    TransientProviderError,
)
from guildrelay.services.http_service import provider_request, raise_for_provider_status


@pytest.fixture
def fake_http(monkeypatch):
    """Queue responses (or exceptions) returned by httpx.AsyncClient.request."""
    calls = []
    responses = []

    async def fake_request(self, method, url, **kwargs):
        calls.append((method, url, kwargs))
        result = responses.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    monkeypatch.setattr(httpx.AsyncClient, "request", fake_request)
    return calls, responses


@pytest.mark.parametrize(
    "status,error",
    [
        (401, ProviderAuthError),
        (403, ProviderAuthError),
        (404, ProviderNotFoundError),
        (410, ProviderGoneError),
        (429, TransientProviderError),
        (503, TransientProviderError),
        (422, ProviderError),
    ],
)
def test_status_mapping(status, error):
    with pytest.raises(error) as exc_info:
        raise_for_provider_status(
            "trello",
            httpx.Response(status),
            method="GET",
            url="https://api.trello.com/1/tokens/secret/webhooks?key=abc",
        )

    assert exc_info.value.status_code == status
    assert "key=abc" not in str(exc_info.value)


def test_success_status_passes():
    raise_for_provider_status("github", httpx.Response(204), method="DELETE", url="https://api.github.com")


@pytest.mark.asyncio
async def test_server_errors_are_retried(fake_http):
    calls, responses = fake_http
    responses.extend([httpx.Response(502), httpx.Response(200, json={"ok": True})])

    response = await provider_request("github", "GET", "https://api.github.com/orgs/acme/hooks", base_delay=0)

    assert response.json() == {"ok": True}
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_exhausted_retries_raise_transient(fake_http):
    calls, responses = fake_http
    responses.extend([httpx.Response(503)] * 3)

    with pytest.raises(TransientProviderError):
        await provider_request("github", "GET", "https://api.github.com", max_attempts=3, base_delay=0)
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_client_errors_are_not_retried(fake_http):
    calls, responses = fake_http
    responses.append(httpx.Response(401))

    with pytest.raises(ProviderAuthError):
        await provider_request("github", "GET", "https://api.github.com", base_delay=0)
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_network_errors_become_transient(fake_http):
    _, responses = fake_http
    responses.extend([httpx.ConnectError("refused")] * 2)

    with pytest.raises(TransientProviderError):
        await provider_request("trello", "GET", "https://api.trello.com/1", max_attempts=2, base_delay=0)
