"""Tests for HardcoverClient against an httpx.MockTransport (no network)."""
import json

import httpx
import pytest

from ibdb.errors import ExternalServiceError, InvalidRequestError
from ibdb.integrations.hardcover_client import HardcoverClient

API_URL = "https://hardcover.test/v1/graphql"

EDITION = {
    "id": 30405,
    "isbn_13": "9780547928227",
    "book": {
        "id": 377938,
        "title": "The Hobbit",
        "slug": "the-hobbit",
        "contributions": [
            {"author": {"id": 656983, "name": "J.R.R. Tolkien", "slug": "j-r-r-tolkien"}},
            {"author": {"id": 12, "name": "Christopher Tolkien", "slug": "christopher-tolkien"}},
        ],
    },
}


def _client(handler) -> HardcoverClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HardcoverClient(token="secret", api_url=API_URL, rate_limit=0, http_client=http)


async def test_lookup_returns_first_edition():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"data": {"editions": [EDITION, {"id": 1, "book": {}}]}})

    match = await _client(handler).lookup_external_id("The Hobbit", "J.R.R. Tolkien", "9780547928227")

    assert match.edition_id == "30405"
    assert match.book_id == "377938"
    assert match.book_slug == "the-hobbit"
    assert match.external_author_ids == ["656983", "12"]
    assert match.author_named("J.R.R. Tolkien").slug == "j-r-r-tolkien"
    assert match.author_named("Tolkien") is None

    request = requests[0]
    assert str(request.url) == API_URL
    assert request.headers["Authorization"] == "Bearer secret"
    body = json.loads(request.content)
    assert body["variables"] == {"title": "The Hobbit", "name": "J.R.R. Tolkien", "isbn": "9780547928227"}
    assert "editions" in body["query"]


async def test_lookup_omits_missing_variables():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured.update(json.loads(request.content)["variables"])
        return httpx.Response(200, json={"data": {"editions": []}})

    assert await _client(handler).lookup_external_id(isbn="9780547928227") is None
    assert captured == {"isbn": "9780547928227"}


async def test_lookup_requires_some_key():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    with pytest.raises(InvalidRequestError):
        await _client(handler).lookup_external_id()


async def test_http_error_status():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, text="slow down")

    with pytest.raises(ExternalServiceError) as exc_info:
        await _client(handler).lookup_external_id("The Hobbit")
    assert exc_info.value.status_code == 429


async def test_graphql_errors():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"errors": [{"message": "field 'editions' not found"}]})

    with pytest.raises(ExternalServiceError, match="field 'editions' not found"):
        await _client(handler).lookup_external_id("The Hobbit")


@pytest.mark.parametrize("payload", [
    {"data": None},
    {"data": {"editions": None}},
    {"data": {"editions": [{"id": 1}]}},
    ["not", "an", "object"],
])
async def test_malformed_payload(payload):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=payload)

    with pytest.raises(ExternalServiceError):
        await _client(handler).lookup_external_id("The Hobbit")


async def test_non_json_body():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>maintenance</html>")

    with pytest.raises(ExternalServiceError):
        await _client(handler).lookup_external_id("The Hobbit")


async def test_transport_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ExternalServiceError):
        await _client(handler).lookup_external_id("The Hobbit")


async def test_context_manager_closes_owned_client():
    client = HardcoverClient(token="t", api_url=API_URL, rate_limit=0)
    async with client:
        http = client.http_client
        assert not http.is_closed
    assert http.is_closed


async def test_requests_outside_context_manager_fail():
    client = HardcoverClient(token="t", api_url=API_URL, rate_limit=0)

    with pytest.raises(RuntimeError, match="async with"):
        await client.lookup_external_id("The Hobbit")

    async with client:
        pass
    with pytest.raises(RuntimeError):
        client.http_client
