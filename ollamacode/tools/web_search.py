"""Web search tool powered by Brave Search API."""

import os
import re
from typing import Any

import httpx

from ollamacode import __version__
from ollamacode.actions import ActionOutcome, missing_argument_outcome
from ollamacode.config import WebSearchToolConfig
from ollamacode.logging import get_logger
from ollamacode.tools.registry import Tool

log = get_logger(__name__)


class WebSearchTool(Tool):
    """Search the web using Brave Search API."""

    name = "WebSearch"
    description = "Search the web and return ranked results with titles, links, and snippets."
    parameters = {
        "query": "Search query text (required)",
        "max_results": "Maximum results to return (max 20)",
    }

    def __init__(
        self,
        config: WebSearchToolConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.config = config or WebSearchToolConfig()
        self.client = client or httpx.AsyncClient(
            follow_redirects=True,
            headers={"User-Agent": f"ollamacode/{__version__} (WebSearch)"},
        )

    @staticmethod
    def _clean_text(value: str, max_chars: int = 500) -> str:
        """Normalize whitespace and bound output size."""
        cleaned = re.sub(r"\s+", " ", (value or "")).strip()
        if len(cleaned) <= max_chars:
            return cleaned
        return cleaned[:max_chars].rstrip() + "... [truncated]"

    def _resolve_count(self, raw: str | None) -> int:
        count = self.config.max_results
        if raw:
            try:
                count = int(float(raw))
            except ValueError:
                pass
        return min(max(count, 1), 20)

    async def execute(self, arguments: dict[str, str], **kwargs: Any) -> ActionOutcome:
        query = (arguments.get("query") or "").strip()
        if not query:
            return missing_argument_outcome("query", arguments)

        provider = (self.config.provider or "brave").strip().lower()
        if provider != "brave":
            return ActionOutcome.failure(f"Unsupported web search provider: {provider}")

        api_key = self.config.api_key.strip() or os.environ.get("BRAVE_API_KEY", "").strip()
        if not api_key:
            return ActionOutcome.failure(
                "Missing Brave API key. Set tools.web_search.api_key in config "
                "or BRAVE_API_KEY environment variable."
            )

        safe_value = (self.config.safesearch or "moderate").strip().lower()
        if safe_value not in {"off", "moderate", "strict"}:
            safe_value = "moderate"
        params = {
            "q": query,
            "count": self._resolve_count(arguments.get("max_results") or arguments.get("count")),
            "safesearch": safe_value,
        }
        headers = {
            "Accept": "application/json",
            "X-Subscription-Token": api_key,
        }

        try:
            response = await self.client.get(
                self.config.base_url,
                params=params,
                headers=headers,
                timeout=float(self.config.timeout),
            )
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            detail = f"HTTP {e.response.status_code}"
            body = (e.response.text or "").strip()
            if body:
                detail = f"{detail}: {self._clean_text(body, max_chars=300)}"
            log.error("Brave web search failed", query=query, error=detail)
            return ActionOutcome.failure(detail)
        except (httpx.HTTPError, ValueError) as e:
            log.error("Web search failed", query=query, error=str(e))
            return ActionOutcome.failure(str(e))

        web_block = payload.get("web", {}) if isinstance(payload, dict) else {}
        results = web_block.get("results", []) if isinstance(web_block, dict) else []
        if not isinstance(results, list):
            results = []

        lines = [f"[QUERY: {query}]", f"[RESULTS: {len(results)}]", ""]
        if not results:
            lines.append("No results found.")
        for idx, item in enumerate(results, start=1):
            if not isinstance(item, dict):
                continue
            title = self._clean_text(str(item.get("title", "") or "Untitled"), max_chars=180)
            link = str(item.get("url", "") or "").strip()
            desc = self._clean_text(str(item.get("description", "") or ""))
            lines.append(f"{idx}. {title}")
            lines.append(f"   URL: {link or '-'}")
            lines.append(f"   Snippet: {desc or '-'}")
            lines.append("")

        return ActionOutcome(succeeded=True, output="\n".join(lines).strip())

    async def close(self) -> None:
        """Close HTTP client."""
        await self.client.aclose()
