"""
Async client for the Hardcover GraphQL catalog.

Only one query is needed: find editions by title, contributing author name
and ISBN-13, and read back the edition / book / author ids and slugs.

    async with HardcoverClient(token=settings.hardcover_token) as client:
        match = await client.lookup_external_id("The Hobbit", "J.R.R. Tolkien", "9780547928227")
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

from ibdb.config import settings
from ibdb.errors import ExternalServiceError, InvalidRequestError

logger = logging.getLogger(__name__)

EDITIONS_QUERY = """
query EditionLookup($title: String, $name: String, $isbn: String) {
    editions(
        where: {
            title: {_eq: $title},
            edition_format: {_is_null: false},
            contributions: {author: {name: {_eq: $name}}},
            isbn_13: {_eq: $isbn}
        }
    ) {
        id
        isbn_13
        book {
            id
            title
            slug
            contributions {
                author {
                    id
                    name
                    slug
                }
            }
        }
    }
}
"""


@dataclass
class HardcoverAuthor:
    id: str
    name: str
    slug: Optional[str] = None


@dataclass
class HardcoverMatch:
    """First edition returned for a lookup."""
    edition_id: str
    book_id: str
    book_slug: Optional[str] = None
    isbn_13: Optional[str] = None
    authors: list[HardcoverAuthor] = field(default_factory=list)

    @property
    def external_author_ids(self) -> list[str]:
        return [a.id for a in self.authors]

    def author_named(self, name: str) -> Optional[HardcoverAuthor]:
        """Contributor whose name equals ``name`` exactly."""
        for author in self.authors:
            if author.name == name:
                return author
        return None


class HardcoverClient:
    """Rate-limited Hardcover GraphQL client.

    Use as an async context manager, or pass a shared ``http_client`` (which
    the caller then owns and closes).  Outside either, requests raise
    RuntimeError.
    """

    def __init__(
        self,
        token: Optional[str] = None,
        api_url: Optional[str] = None,
        rate_limit: Optional[float] = None,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.token = token if token is not None else settings.hardcover_token
        self.api_url = api_url or settings.hardcover_api_url
        self.rate_limit = rate_limit if rate_limit is not None else settings.hardcover_rate_limit
        self.timeout = timeout if timeout is not None else settings.hardcover_timeout

        self._http_client = http_client
        self._owns_client = http_client is None

        self._last_request_time: Optional[float] = None
        self._request_lock = asyncio.Lock()

    async def __aenter__(self) -> "HardcoverClient":
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
            self._owns_client = True
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._owns_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    @property
    def http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            raise RuntimeError("HardcoverClient is not open; use it with \"async with\"")
        return self._http_client

    async def _rate_limit(self) -> None:
        if self.rate_limit <= 0:
            return

        async with self._request_lock:
            loop = asyncio.get_running_loop()
            if self._last_request_time is not None:
                elapsed = loop.time() - self._last_request_time
                min_interval = 1.0 / self.rate_limit
                if elapsed < min_interval:
                    await asyncio.sleep(min_interval - elapsed)
            self._last_request_time = loop.time()

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def query(self, query: str, variables: dict[str, Any]) -> dict:
        """POST one GraphQL query and return its ``data`` object."""
        await self._rate_limit()
        try:
            response = await self.http_client.post(
                self.api_url,
                json={"query": query, "variables": variables},
                headers=self._headers(),
            )
        except httpx.HTTPError as exc:
            raise ExternalServiceError(f"Hardcover request failed: {exc}") from exc

        if response.status_code >= 400:
            raise ExternalServiceError(
                f"Hardcover API request failed: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise ExternalServiceError(
                "Hardcover returned a non-JSON body", status_code=response.status_code
            ) from exc

        if not isinstance(payload, dict):
            raise ExternalServiceError("Hardcover returned an unexpected payload")
        if payload.get("errors"):
            messages = "; ".join(
                str(e.get("message", e)) if isinstance(e, dict) else str(e)
                for e in payload["errors"]
            )
            raise ExternalServiceError(f"Hardcover GraphQL errors: {messages}")

        data = payload.get("data")
        if not isinstance(data, dict):
            raise ExternalServiceError("Hardcover response has no data object")
        return data

    async def lookup_external_id(
        self,
        title: Optional[str] = None,
        author_name: Optional[str] = None,
        isbn: Optional[str] = None,
    ) -> Optional[HardcoverMatch]:
        """First matching edition, or None when Hardcover has no edition for the book."""
        variables = {
            key: value
            for key, value in (("title", title), ("name", author_name), ("isbn", isbn))
            if value
        }
        if not variables:
            raise InvalidRequestError("lookup_external_id needs at least one of title, author_name, isbn")

        data = await self.query(EDITIONS_QUERY, variables)
        editions = data.get("editions")
        if not isinstance(editions, list):
            raise ExternalServiceError("Hardcover response has no editions list")
        if not editions:
            logger.debug("No Hardcover edition for %r by %r (isbn %s)", title, author_name, isbn)
            return None

        return _parse_edition(editions[0])


def _parse_edition(edition: Any) -> HardcoverMatch:
    try:
        book = edition["book"]
        authors = [
            HardcoverAuthor(
                id=str(c["author"]["id"]),
                name=c["author"]["name"],
                slug=c["author"].get("slug"),
            )
            for c in book.get("contributions") or []
            if c.get("author")
        ]
        return HardcoverMatch(
            edition_id=str(edition["id"]),
            book_id=str(book["id"]),
            book_slug=book.get("slug"),
            isbn_13=edition.get("isbn_13"),
            authors=authors,
        )
    except (KeyError, TypeError, AttributeError) as exc:
        raise ExternalServiceError(f"Malformed Hardcover edition: {exc}") from exc
