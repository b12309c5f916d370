"""Optional external reading links via the Google Custom Search JSON API."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any

import httpx

logger = logging.getLogger(__name__)

SEARCH_URL = "https://www.googleapis.com/customsearch/v1"


@dataclass
class ExternalLink:
    title: str
    url: str
    note: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def build_note(title: str | None = None, topic_context: str | None = None) -> str:
    if topic_context:
        return f'Background reading related to the session topic "{topic_context}".'
    if title:
        return f'Background reading related to the session "{title}".'
    return "Background reading related to the session discussion."


class ExternalReadingSearch:
    """Search the web for background reading. Failures yield no links."""

    def __init__(
        self,
        api_key: str = "",
        cx: str = "",
        max_results: int = 5,
        timeout: float = 10.0,
        client: httpx.Client | None = None,
    ) -> None:
        self._api_key = api_key
        self._cx = cx
        self._max_results = max_results
        self._timeout = timeout
        self._client = client

    @property
    def enabled(self) -> bool:
        return bool(self._api_key and self._cx)

    def search(self, query: str, title: str | None = None, topic_context: str | None = None) -> list[ExternalLink]:
        if not self.enabled:
            return []
        params = {"key": self._api_key, "cx": self._cx, "q": query}
        try:
            if self._client is not None:
                response = self._client.get(SEARCH_URL, params=params, timeout=self._timeout)
            else:
                response = httpx.get(SEARCH_URL, params=params, timeout=self._timeout)
            response.raise_for_status()
            items = response.json().get("items") or []
        except (httpx.HTTPError, ValueError):
            logger.warning("External reading search failed for %r", query, exc_info=True)
            return []

        note = build_note(title, topic_context)
        links: list[ExternalLink] = []
        for item in items[: self._max_results]:
            if not isinstance(item, dict):
                continue
            link_title = str(item.get("title") or "").strip()
            url = str(item.get("link") or "").strip()
            if link_title and url:
                links.append(ExternalLink(title=link_title, url=url, note=note))
        return links
