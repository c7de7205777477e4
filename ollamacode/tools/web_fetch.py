"""Web fetch tool for retrieving web page content."""

import re
from typing import Any
from urllib.parse import urljoin

from bs4 import BeautifulSoup
import httpx

from ollamacode import __version__
from ollamacode.actions import ActionOutcome, missing_argument_outcome
from ollamacode.logging import get_logger
from ollamacode.tools.registry import Tool

log = get_logger(__name__)


def extract_readable_text(html: str, base_url: str | None = None) -> str:
    """Extract human-readable text from raw HTML."""
    soup = BeautifulSoup(html, "html.parser")

    for tag in soup(["script", "style", "noscript", "template", "svg", "canvas"]):
        tag.decompose()

    # Keep link targets so follow-up turns can cite or fetch them.
    for anchor in soup.find_all("a"):
        href = (anchor.get("href") or "").strip()
        label = anchor.get_text(" ", strip=True)
        if not href:
            continue
        absolute = urljoin(base_url, href) if base_url else href
        anchor.replace_with(f"{label} ({absolute})" if label else absolute)

    title = ""
    if soup.title and soup.title.string:
        title = soup.title.string.strip()

    lines: list[str] = []
    for line in soup.get_text(separator="\n").splitlines():
        cleaned = re.sub(r"\s+", " ", line).strip()
        if cleaned:
            lines.append(cleaned)

    text = "\n".join(lines)
    if title and not text.startswith(title):
        return f"{title}\n\n{text}" if text else title
    return text


class WebFetchTool(Tool):
    """Fetch web page content."""

    name = "WebFetch"
    description = "Fetch a URL and return its readable text."
    parameters = {
        "url": "URL to fetch (required)",
    }

    def __init__(self, max_chars: int = 100000, client: httpx.AsyncClient | None = None):
        self.max_chars = max(1, int(max_chars))
        self.client = client or httpx.AsyncClient(
            timeout=30.0,
            follow_redirects=True,
            headers={"User-Agent": f"ollamacode/{__version__} (WebFetch)"},
        )

    async def execute(self, arguments: dict[str, str], **kwargs: Any) -> ActionOutcome:
        url = (arguments.get("url") or "").strip()
        if not url:
            return missing_argument_outcome("url", arguments)
        if not url.startswith(("http://", "https://")):
            return ActionOutcome.failure(f"Unsupported URL scheme: {url}")

        try:
            log.info("Fetching URL", url=url)
            response = await self.client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            log.error("HTTP fetch failed", url=url, error=str(e))
            return ActionOutcome.failure(f"HTTP error: {e}")

        content = extract_readable_text(response.text, base_url=url)
        if len(content) > self.max_chars:
            content = content[:self.max_chars] + "\n... [truncated]"

        output = f"[URL: {url}]\n[Status: {response.status_code}]\n\n{content}"
        return ActionOutcome(succeeded=True, output=output)

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()
