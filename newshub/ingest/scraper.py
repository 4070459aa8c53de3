"""Article body extraction using trafilatura."""

from __future__ import annotations

import logging

import httpx
import trafilatura

from newshub.retry import retry_async

logger = logging.getLogger(__name__)


async def extract_content(url: str, timeout: float = 15) -> str | None:
    """Extract main article text from a URL, or None if it can't be had."""
    try:
        html = await retry_async(_fetch_html, url, timeout, max_retries=2, base_delay=0.5)
    except httpx.HTTPError as exc:
        logger.debug("Fetch failed for %s: %s", url, exc)
        return None
    if not html:
        return None
    return trafilatura.extract(html, include_comments=False, include_tables=False)


async def _fetch_html(url: str, timeout: float) -> str:
    async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
        resp = await client.get(url)
        resp.raise_for_status()
        return resp.text
