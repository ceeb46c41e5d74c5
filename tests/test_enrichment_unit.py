from __future__ import annotations

import json
from datetime import datetime, timezone

import httpx
import pytest
from tenacity import wait_none

from src.application.services.content_generation.enrichment import (
    SerperClient,
    VideoSearchOptions,
    authority_score,
    discover_references,
    extract_year,
    extract_youtube_video_id,
    parse_published_at,
    parse_view_count,
    search_youtube_video,
    source_name,
)

NOW = datetime(2025, 6, 1, tzinfo=timezone.utc)


async def _no_sleep(_: float) -> None:
    return None


def _client(handler) -> tuple[httpx.AsyncClient, SerperClient]:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return http, SerperClient(http=http, api_key="serper-key", max_retries=2, retry_wait=wait_none())


def test_extract_youtube_video_id():
    assert extract_youtube_video_id("https://www.youtube.com/watch?v=dQw4w9WgXcQ&t=1") == "dQw4w9WgXcQ"
    assert extract_youtube_video_id("https://youtu.be/dQw4w9WgXcQ") == "dQw4w9WgXcQ"
    assert extract_youtube_video_id("https://www.youtube.com/shorts/dQw4w9WgXcQ") == "dQw4w9WgXcQ"
    assert extract_youtube_video_id("https://vimeo.com/123") is None


def test_parse_view_count():
    assert parse_view_count("1.2M views") == 1_200_000
    assert parse_view_count("35K") == 35_000
    assert parse_view_count("12,345 views") == 12_345
    assert parse_view_count(None) == 0
    assert parse_view_count(900) == 900


def test_parse_published_at():
    assert parse_published_at("3 weeks ago", now=NOW) == datetime(2025, 5, 11, tzinfo=timezone.utc)
    assert parse_published_at("Mar 3, 2024", now=NOW) == datetime(2024, 3, 3, tzinfo=timezone.utc)
    assert parse_published_at("2023-01-02", now=NOW) == datetime(2023, 1, 2, tzinfo=timezone.utc)
    assert parse_published_at("someday", now=NOW) is None


def test_authority_and_source_names():
    assert authority_score("https://www.cdc.gov/coffee") == 95
    assert authority_score("https://stanford.edu/x") == 92
    assert authority_score("https://www.nature.com/articles/1") == 88
    assert authority_score("https://www.reuters.com/a") == 82
    assert authority_score("https://en.wikipedia.org/wiki/Coffee") == 72
    assert authority_score("https://random-blog.net/post") == 50
    assert authority_score("http://random-blog.net/post") == 30
    assert source_name("https://www.reuters.com/a") == "Reuters"
    assert source_name("https://www.coffee-lab.org/x") == "Coffee-Lab"


def test_extract_year_ignores_future_years():
    assert extract_year("Study 2019 updated 2023", max_year=2025) == "2023"
    assert extract_year("Forecast for 2031", max_year=2025) is None


@pytest.mark.asyncio
async def test_search_youtube_video_filters_scores_and_dedupes():
    queries: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        queries.append(body["q"])
        assert request.url.path == "/videos"
        assert request.headers["X-API-KEY"] == "serper-key"
        return httpx.Response(
            200,
            json={
                "videos": [
                    {"link": "https://www.youtube.com/watch?v=AAAAAAAAAAA", "title": "Cold brew coffee tutorial", "channel": "Brew", "views": "1.5M views", "date": "2 months ago"},
                    {"link": "https://www.youtube.com/watch?v=AAAAAAAAAAA", "title": "duplicate", "views": "2M"},
                    {"link": "https://www.youtube.com/watch?v=BBBBBBBBBBB", "title": "Unrelated vlog", "views": "20K", "date": "Jan 5, 2024"},
                    {"link": "https://www.youtube.com/watch?v=CCCCCCCCCCC", "title": "Cold brew coffee", "views": "900"},
                    {"link": "https://www.youtube.com/watch?v=DDDDDDDDDDD", "title": "Cold brew coffee old", "views": "5M", "date": "Jan 5, 2019"},
                    {"link": "https://vimeo.com/1", "title": "Cold brew coffee", "views": "1M"},
                ]
            },
        )

    http, client = _client(handler)
    async with http:
        result = await search_youtube_video(client, "cold brew coffee", now=lambda: NOW, sleep=_no_sleep)

    assert result.video is not None
    assert result.video.video_id == "AAAAAAAAAAA"
    assert result.video.embed_url == "https://www.youtube.com/embed/AAAAAAAAAAA"
    assert [v.video_id for v in result.alternatives] == ["BBBBBBBBBBB"]
    assert result.video.relevance_score > result.alternatives[0].relevance_score
    assert len(queries) == 3
    assert queries[0] == "cold brew coffee tutorial guide"


@pytest.mark.asyncio
async def test_search_youtube_video_survives_http_errors():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"message": "boom"})

    http, client = _client(handler)
    async with http:
        result = await search_youtube_video(client, "cold brew coffee", now=lambda: NOW, sleep=_no_sleep)

    assert result.video is None
    assert result.alternatives == ()


@pytest.mark.asyncio
async def test_transport_errors_are_retried_then_query_is_skipped():
    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        raise httpx.ConnectError("refused")

    http, client = _client(handler)
    async with http:
        result = await search_youtube_video(
            client, "cold brew coffee", VideoSearchOptions(), now=lambda: NOW, sleep=_no_sleep
        )

    assert result.video is None
    # 三个查询，每个重试 2 次
    assert calls["n"] == 6


@pytest.mark.asyncio
async def test_discover_references_ranks_and_excludes_social():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/search"
        return httpx.Response(
            200,
            json={
                "organic": [
                    {"link": "https://www.reuters.com/coffee", "title": "Coffee prices 2024", "snippet": "Report"},
                    {"link": "https://www.cdc.gov/caffeine", "title": "Caffeine facts", "snippet": "Updated 2023"},
                    {"link": "https://www.reddit.com/r/coffee", "title": "Reddit thread"},
                    {"link": "https://random-blog.net/post", "title": "My coffee"},
                    {"link": "https://www.cdc.gov/caffeine", "title": "Caffeine facts dup"},
                    {"link": "", "title": "no link"},
                ]
            },
        )

    http, client = _client(handler)
    async with http:
        refs = await discover_references(client, "coffee", now=lambda: NOW, sleep=_no_sleep)

    assert [r.url for r in refs] == ["https://www.cdc.gov/caffeine", "https://www.reuters.com/coffee"]
    assert refs[0].authority_score == 95
    assert refs[0].year == "2023"
    assert refs[1].source == "Reuters"
    assert refs[1].year == "2024"
