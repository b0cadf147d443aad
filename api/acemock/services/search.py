"""
External Search Providers
Pluggable web search backends used to enrich prompts with missing answers.
Every provider degrades to an empty result list instead of raising.
"""
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from acemock.schemas import SearchEngine, SearchResult

logger = logging.getLogger(__name__)

MAX_RESULTS = 5
SEARCH_TIMEOUT = 30

SEARCH1_URL = "https://api.search1api.com/search"
SERPER_URL = "https://google.serper.dev/search"
TAVILY_URL = "https://api.tavily.com/search"


async def _post_json(
    url: str,
    payload: Dict[str, Any],
    headers: Dict[str, str],
    client: Optional[httpx.AsyncClient],
) -> httpx.Response:
    if client is not None:
        return await client.post(url, json=payload, headers=headers)
    async with httpx.AsyncClient(timeout=SEARCH_TIMEOUT) as owned_client:
        return await owned_client.post(url, json=payload, headers=headers)


async def _run_provider(
    provider: str,
    url: str,
    payload: Dict[str, Any],
    headers: Dict[str, str],
    client: Optional[httpx.AsyncClient],
    extract: Callable[[Dict[str, Any]], List[SearchResult]],
) -> List[SearchResult]:
    try:
        response = await _post_json(url, payload, headers, client)
        if not response.is_success:
            logger.warning("%s search failed with HTTP %s", provider, response.status_code)
            return []
        return extract(response.json())[:MAX_RESULTS]
    except (httpx.HTTPError, ValueError, TypeError, AttributeError) as e:
        logger.warning("%s search error: %s", provider, e)
        return []


async def search_baidu(
    query: str,
    api_key: str,
    client: Optional[httpx.AsyncClient] = None,
) -> List[SearchResult]:
    """Searches Baidu through the Search1 API."""
    if not api_key:
        logger.warning("Baidu (Search1) API key not configured")
        return []

    def extract(data: Dict[str, Any]) -> List[SearchResult]:
        items = data.get("organic") or data.get("results") or []
        return [
            SearchResult(
                title=item.get("title") or "",
                link=item.get("link") or "",
                snippet=item.get("snippet") or item.get("description") or "",
            )
            for item in items[:MAX_RESULTS]
        ]

    return await _run_provider(
        "Search1",
        SEARCH1_URL,
        {"query": query, "service": "baidu", "gl": "cn", "hl": "zh-cn"},
        {"Authorization": f"Bearer {api_key}"},
        client,
        extract,
    )


async def search_google_serper(
    query: str,
    api_key: str,
    client: Optional[httpx.AsyncClient] = None,
) -> List[SearchResult]:
    """Searches Google through Serper.dev."""
    if not api_key:
        logger.warning("Serper API key not configured")
        return []

    def extract(data: Dict[str, Any]) -> List[SearchResult]:
        return [
            SearchResult(
                title=item.get("title") or "",
                link=item.get("link") or "",
                snippet=item.get("snippet") or "",
            )
            for item in (data.get("organic") or [])[:MAX_RESULTS]
        ]

    return await _run_provider(
        "Serper",
        SERPER_URL,
        {"q": query, "gl": "cn", "hl": "zh-cn"},
        {"X-API-KEY": api_key},
        client,
        extract,
    )


async def search_tavily(
    query: str,
    api_key: str,
    client: Optional[httpx.AsyncClient] = None,
) -> List[SearchResult]:
    """Searches with the Tavily API."""
    if not api_key:
        logger.warning("Tavily API key not configured")
        return []

    def extract(data: Dict[str, Any]) -> List[SearchResult]:
        return [
            SearchResult(
                title=item.get("title") or "",
                link=item.get("url") or "",
                snippet=item.get("content") or "",
            )
            for item in (data.get("results") or [])[:MAX_RESULTS]
        ]

    return await _run_provider(
        "Tavily",
        TAVILY_URL,
        {
            "api_key": api_key,
            "query": query,
            "search_depth": "basic",
            "include_answer": False,
            "include_images": False,
            "include_raw_content": False,
            "max_results": MAX_RESULTS,
        },
        {},
        client,
        extract,
    )


PROVIDERS: Dict[SearchEngine, Callable[..., Awaitable[List[SearchResult]]]] = {
    SearchEngine.BAIDU_SEARCH1: search_baidu,
    SearchEngine.GOOGLE_SERPER: search_google_serper,
    SearchEngine.TAVILY: search_tavily,
}


async def search(
    engine: SearchEngine,
    query: str,
    api_key: str,
    client: Optional[httpx.AsyncClient] = None,
) -> List[SearchResult]:
    """Dispatches a query to an external provider (not ``google_native``)."""
    provider = PROVIDERS.get(engine)
    if provider is None:
        logger.warning("No external search provider for engine %s", engine.value)
        return []
    return await provider(query, api_key, client=client)


async def check_search_connection(
    engine: SearchEngine,
    api_key: str,
    client: Optional[httpx.AsyncClient] = None,
) -> bool:
    """Checks whether a provider accepts the key by issuing a tiny query."""
    if not api_key or engine not in PROVIDERS:
        return False

    if engine == SearchEngine.BAIDU_SEARCH1:
        url, payload, headers = SEARCH1_URL, {"query": "test", "service": "baidu"}, {"Authorization": f"Bearer {api_key}"}
    elif engine == SearchEngine.GOOGLE_SERPER:
        url, payload, headers = SERPER_URL, {"q": "test"}, {"X-API-KEY": api_key}
    else:
        url, payload, headers = TAVILY_URL, {"api_key": api_key, "query": "test", "max_results": 1}, {}

    try:
        response = await _post_json(url, payload, headers, client)
    except httpx.HTTPError as e:
        logger.warning("Connection test for %s failed: %s", engine.value, e)
        return False
    return response.is_success
