"""Google Custom Search image lookup."""

from __future__ import annotations

import httpx

from airelay.adapters.upstream import get_json, raise_for_upstream
from airelay.core.errors import ConfigurationError, EmptyResponseError, MalformedResponseError
from airelay.core.models import ImageLink
from airelay.util.logger import logger


class GoogleImageSearchAdapter:
    name = "google_search"

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: str,
        cx: str,
        base_url: str = "https://www.googleapis.com/customsearch/v1",
    ) -> None:
        self._client = client
        self._api_key = api_key
        self.cx = cx
        self._base_url = base_url

    async def send(self, query: str) -> ImageLink:
        if not self._api_key or not self.cx:
            raise ConfigurationError("GOOGLE_SEARCH_API_KEY and GOOGLE_SEARCH_CX must be configured")
        params = {
            "key": self._api_key,
            "cx": self.cx,
            "q": query,
            "searchType": "image",
            "num": "1",
            "safe": "active",
        }
        logger.info("google image search query_chars=%d", len(query))
        status_code, body = await get_json(self._client, self._base_url, params=params)
        raise_for_upstream(self.name, status_code, body)
        if not isinstance(body, dict):
            raise MalformedResponseError("google search returned an unrecognized response", raw=body)
        items = body.get("items")
        if not isinstance(items, list) or not items:
            raise EmptyResponseError("No image found", f"no results for query: {query[:120]}")
        first = items[0] if isinstance(items[0], dict) else {}
        link = first.get("link")
        if not isinstance(link, str) or not link:
            raise MalformedResponseError("google search result has no link", raw=first)
        return ImageLink(url=link, title=str(first.get("title") or ""))
