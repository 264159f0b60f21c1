import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

import httpx

from ragcore.core.errors import SearchEngineError

logger = logging.getLogger(__name__)


@dataclass
class ESResponse:
    is_error: bool
    body: Optional[Dict[str, Any]]
    raw: str


class ESSearcher(Protocol):
    async def search(self, index: str, query: Dict[str, Any]) -> ESResponse: ...


class ElasticsearchClient:
    """Minimal Elasticsearch `_search` client over httpx."""

    def __init__(
        self,
        base_url: str,
        username: str = "",
        password: str = "",
        timeout: float = 30,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.auth = (username, password) if username else None
        self.timeout = timeout
        self._transport = transport

    async def search(self, index: str, query: Dict[str, Any]) -> ESResponse:
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, auth=self.auth, transport=self._transport
            ) as client:
                r = await client.post(f"{self.base_url}/{index}/_search", json=query)
        except httpx.HTTPError as e:
            raise SearchEngineError(f"search request to index {index} failed: {e}") from e

        raw = r.text
        try:
            body = r.json()
        except json.JSONDecodeError:
            body = None

        if r.is_error:
            logger.warning(
                "search engine returned an error",
                extra={"index": index, "status": r.status_code},
            )
        return ESResponse(is_error=r.is_error, body=body, raw=raw)
