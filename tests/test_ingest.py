"""Tests for raw article sources."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import httpx
import pytest

from newshub.ingest import SOURCES
from newshub.ingest.rss import MIN_SUMMARY_CHARS, RSSSource
from newshub.ingest.scraper import extract_content


class FakeEntry(dict):
    """Dict subclass that also supports attribute access (like feedparser)."""

    def __getattr__(self, key):
        try:
            return self[key]
        except KeyError:
            raise AttributeError(key)


def _feed(entries):
    return type("Feed", (), {"entries": [FakeEntry(e) for e in entries]})()


@pytest.fixture
def rss_config():
    return {
        "sources": {
            "rss": {
                "enabled": True,
                "feeds": {
                    "tech": [{"url": "https://example.com/tech.xml", "name": "Tech Feed"}],
                    "science": [{"url": "https://example.com/sci.xml"}],
                },
            }
        },
        "pipeline": {"max_items_per_feed": 2},
    }


async def _collect(source):
    return [raw async for raw in source.fetch()]


def test_rss_registered():
    assert SOURCES["rss"] is RSSSource


@pytest.mark.asyncio
@patch("newshub.ingest.rss.extract_content", new_callable=AsyncMock)
@patch("newshub.ingest.rss.feedparser")
async def test_rss_yields_raw_articles_per_topic(mock_fp, mock_extract, rss_config):
    long_summary = "Detailed coverage of the launch. " * 10
    mock_fp.parse.side_effect = [
        _feed([{"title": "Chip Launch", "link": "https://example.com/chip", "summary": long_summary}]),
        _feed([{"title": "Comet Seen", "link": "https://example.com/comet", "summary": long_summary}]),
    ]

    raws = await _collect(RSSSource(rss_config))

    assert [r.title for r in raws] == ["Chip Launch", "Comet Seen"]
    assert raws[0].source == "Tech Feed"
    assert raws[0].topic_hint == "tech"
    # Unnamed feeds fall back to the URL
    assert raws[1].source == "https://example.com/sci.xml"
    assert raws[1].topic_hint == "science"
    mock_extract.assert_not_called()


@pytest.mark.asyncio
@patch("newshub.ingest.rss.extract_content", new_callable=AsyncMock)
@patch("newshub.ingest.rss.feedparser")
async def test_rss_extracts_full_text_for_thin_summaries(mock_fp, mock_extract, rss_config):
    rss_config["sources"]["rss"]["feeds"] = {"tech": rss_config["sources"]["rss"]["feeds"]["tech"]}
    mock_fp.parse.return_value = _feed([
        {"title": "Short", "link": "https://example.com/short", "summary": "Too short."},
    ])
    mock_extract.return_value = "Extracted full article text. " * 20

    raws = await _collect(RSSSource(rss_config))

    assert len("Too short.") < MIN_SUMMARY_CHARS
    mock_extract.assert_awaited_once_with("https://example.com/short")
    assert raws[0].body.startswith("Extracted full article text.")


@pytest.mark.asyncio
@patch("newshub.ingest.rss.extract_content", new_callable=AsyncMock)
@patch("newshub.ingest.rss.feedparser")
async def test_rss_skips_entries_without_link_and_caps_items(mock_fp, mock_extract, rss_config):
    rss_config["sources"]["rss"]["feeds"] = {"tech": rss_config["sources"]["rss"]["feeds"]["tech"]}
    mock_extract.return_value = None
    mock_fp.parse.return_value = _feed([
        {"title": "No Link", "summary": "x"},
        {"title": "One", "link": "https://example.com/1", "summary": "x"},
        {"title": "Two", "link": "https://example.com/2", "summary": "x"},
    ])

    raws = await _collect(RSSSource(rss_config))

    # Cap applies to feed entries before filtering
    assert [r.title for r in raws] == ["One"]
    assert raws[0].body == "x"


@pytest.mark.asyncio
@patch("newshub.ingest.rss.extract_content", new_callable=AsyncMock)
@patch("newshub.ingest.rss.feedparser")
async def test_rss_feed_failure_moves_on(mock_fp, mock_extract, rss_config):
    long_summary = "y" * 300
    mock_fp.parse.side_effect = [
        OSError("network down"),
        _feed([{"title": "Comet Seen", "link": "https://example.com/comet", "summary": long_summary}]),
    ]

    raws = await _collect(RSSSource(rss_config))
    assert [r.title for r in raws] == ["Comet Seen"]


@pytest.mark.asyncio
@patch("newshub.ingest.scraper.trafilatura")
@patch("newshub.ingest.scraper._fetch_html", new_callable=AsyncMock)
async def test_extract_content_uses_trafilatura(mock_fetch, mock_traf):
    mock_fetch.return_value = "<html><p>Clean text</p></html>"
    mock_traf.extract.return_value = "Clean text"

    assert await extract_content("https://example.com/a") == "Clean text"
    mock_traf.extract.assert_called_once()


@pytest.mark.asyncio
@patch("newshub.ingest.scraper._fetch_html", new_callable=AsyncMock)
async def test_extract_content_http_error_returns_none(mock_fetch):
    mock_fetch.side_effect = httpx.HTTPStatusError(
        "not found", request=httpx.Request("GET", "https://x"), response=httpx.Response(404),
    )
    assert await extract_content("https://x") is None
