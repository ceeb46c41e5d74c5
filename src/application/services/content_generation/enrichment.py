"""辅助检索（Serper）：相关视频与权威参考文献。

两者都是尽力而为的增强：单个查询失败只跳过该查询，整体失败由调用方降级为“无增强”。
"""

from __future__ import annotations

import asyncio
import re
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable
from urllib.parse import urlsplit

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.application.services.content_generation.types import (
    Reference,
    VideoSearchResult,
    YouTubeVideo,
)
from src.shared.constants.generation import (
    REFERENCE_DISCOVERY_TIMEOUT_MS,
    REFERENCE_MIN_AUTHORITY,
    REFERENCE_TARGET_COUNT,
    VIDEO_GOOD_SCORE,
    VIDEO_MAX_AGE_DAYS,
    VIDEO_MIN_VIEWS,
    YOUTUBE_SEARCH_TIMEOUT_MS,
)
from src.shared.logging import get_logger, log_extra

log = get_logger(__name__)

Sleep = Callable[[float], Awaitable[Any]]
Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SerperClient:
    """Serper.dev 搜索客户端（视频 / 网页）。

    网络层错误按指数退避重试；非 2xx 响应视为该查询无结果。
    """

    def __init__(
        self,
        *,
        http: httpx.AsyncClient,
        api_key: str,
        base_url: str = "https://google.serper.dev",
        timeout_s: float = 20.0,
        max_retries: int = 2,
        retry_wait: Any | None = None,
    ):
        self._http = http
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout_s = timeout_s
        self._max_retries = max(1, int(max_retries))
        self._retry_wait = retry_wait or wait_exponential(multiplier=0.5, min=0.5, max=4)

    async def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any] | None:
        url = f"{self._base_url}/{path.lstrip('/')}"

        def _before_sleep(retry_state: Any) -> None:
            exc = retry_state.outcome.exception() if retry_state.outcome else None
            log.warning(
                "serper.retry",
                extra=log_extra(path=path, attempt=retry_state.attempt_number, error=str(exc)),
            )

        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(httpx.TransportError),
            stop=stop_after_attempt(self._max_retries),
            wait=self._retry_wait,
            reraise=True,
            before_sleep=_before_sleep,
        ):
            with attempt:
                resp = await self._http.post(
                    url,
                    headers={"X-API-KEY": self._api_key, "Content-Type": "application/json"},
                    json=payload,
                    timeout=self._timeout_s,
                )

        if resp.status_code < 200 or resp.status_code >= 300:
            log.warning("serper.http_error", extra=log_extra(path=path, status=resp.status_code))
            return None
        try:
            data = resp.json()
        except ValueError:
            log.warning("serper.bad_json", extra=log_extra(path=path))
            return None
        return data if isinstance(data, dict) else None

    async def search_videos(self, query: str, *, country: str = "us", language: str = "en", num: int = 10) -> list[dict[str, Any]] | None:
        data = await self._post("videos", {"q": query, "gl": country, "hl": language, "num": num})
        if data is None:
            return None
        return [v for v in (data.get("videos") or []) if isinstance(v, dict)]

    async def search_web(self, query: str, *, country: str = "us", language: str = "en", num: int = 10) -> list[dict[str, Any]] | None:
        data = await self._post("search", {"q": query, "gl": country, "hl": language, "num": num})
        if data is None:
            return None
        return [r for r in (data.get("organic") or []) if isinstance(r, dict)]


# ============== 视频 ==============

_YOUTUBE_ID_PATTERNS = (
    re.compile(r"(?:youtube\.com/watch\?v=|youtu\.be/|youtube\.com/embed/)([a-zA-Z0-9_-]{11})"),
    re.compile(r"youtube\.com/v/([a-zA-Z0-9_-]{11})"),
    re.compile(r"youtube\.com/shorts/([a-zA-Z0-9_-]{11})"),
)
_RELATIVE_DATE_RE = re.compile(r"(\d+)\s+(minute|hour|day|week|month|year)s?\s+ago", re.IGNORECASE)
_RELATIVE_UNITS_DAYS = {"minute": 0, "hour": 0, "day": 1, "week": 7, "month": 30, "year": 365}
_TUTORIAL_KEYWORDS = ("tutorial", "guide", "how to", "explained", "complete", "full")


@dataclass(frozen=True)
class VideoSearchOptions:
    min_views: int = VIDEO_MIN_VIEWS
    max_age_days: int | None = VIDEO_MAX_AGE_DAYS
    preferred_channels: tuple[str, ...] = ()
    exclude_channels: tuple[str, ...] = ()
    max_results: int = 10
    language: str = "en"
    country: str = "us"


def extract_youtube_video_id(url: str) -> str | None:
    if not url:
        return None
    for pattern in _YOUTUBE_ID_PATTERNS:
        m = pattern.search(url)
        if m:
            return m.group(1)
    return None


def parse_view_count(raw: Any) -> int:
    """解析 '1.2M' / '35K views' / '12,345' 形式的播放量。"""
    if raw is None or raw == "":
        return 0
    if isinstance(raw, (int, float)):
        return int(raw)
    s = str(raw).lower().replace(",", "")
    for suffix, mult in (("k", 1_000), ("m", 1_000_000), ("b", 1_000_000_000)):
        if re.search(rf"\d\s*{suffix}\b", s):
            num = re.sub(r"[^0-9.]", "", s)
            try:
                return round(float(num) * mult)
            except ValueError:
                return 0
    digits = re.sub(r"[^0-9]", "", s)
    return int(digits) if digits else 0


def parse_published_at(raw: Any, *, now: datetime) -> datetime | None:
    """解析发布时间（'Mar 3, 2024' / '2024-03-03' / '3 weeks ago'），无法识别返回 None。"""
    if not raw:
        return None
    s = str(raw).strip()
    m = _RELATIVE_DATE_RE.search(s)
    if m:
        days = int(m.group(1)) * _RELATIVE_UNITS_DAYS[m.group(2).lower()]
        return now - timedelta(days=days)
    for fmt in ("%b %d, %Y", "%B %d, %Y", "%Y-%m-%d", "%d %b %Y"):
        try:
            return datetime.strptime(s, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    return None


def video_relevance_score(
    video: dict[str, Any],
    topic: str,
    options: VideoSearchOptions,
    *,
    now: datetime,
) -> int:
    score = 50.0
    title = str(video.get("title") or "").lower()
    channel = str(video.get("channel") or "").lower()
    query_words = [w for w in topic.lower().split() if len(w) > 3]
    if query_words:
        matches = sum(1 for w in query_words if w in title)
        score += min(30.0, matches / len(query_words) * 30)

    views = parse_view_count(video.get("views"))
    for threshold, bonus in ((1_000_000, 15), (500_000, 12), (100_000, 10), (50_000, 7), (10_000, 5)):
        if views >= threshold:
            score += bonus
            break

    if any(c.lower() in channel for c in options.preferred_channels):
        score += 10
    if any(c.lower() in channel for c in options.exclude_channels):
        score -= 50
    if any(kw in title for kw in _TUTORIAL_KEYWORDS):
        score += 5

    published = parse_published_at(video.get("date"), now=now)
    if published is not None:
        age_days = (now - published).days
        if age_days < 365:
            score += 5
        if age_days < 180:
            score += 3

    return max(0, min(100, round(score)))


async def search_youtube_video(
    client: SerperClient,
    topic: str,
    options: VideoSearchOptions | None = None,
    *,
    now: Clock = _utcnow,
    sleep: Sleep = asyncio.sleep,
    query_delay_s: float = 0.2,
) -> VideoSearchResult:
    """多查询检索视频，按相关度打分去重，返回最佳视频与至多 3 个备选。"""
    opt = options or VideoSearchOptions()
    started = time.perf_counter()
    current = now()
    queries = [
        f"{topic} tutorial guide",
        f"{topic} explained",
        f"{topic} complete guide {current.year}",
    ]

    found: dict[str, YouTubeVideo] = {}
    for qi, query in enumerate(queries):
        try:
            videos = await client.search_videos(
                query, country=opt.country, language=opt.language, num=opt.max_results
            )
        except httpx.HTTPError as e:
            log.warning("enrichment.video.query_failed", extra=log_extra(query=query[:60], error=str(e)))
            videos = None
        for v in videos or []:
            link = str(v.get("link") or "")
            if "youtube.com" not in link and "youtu.be" not in link:
                continue
            video_id = extract_youtube_video_id(link)
            if not video_id or video_id in found:
                continue
            views = parse_view_count(v.get("views"))
            if views < opt.min_views:
                continue
            published = parse_published_at(v.get("date"), now=current)
            if opt.max_age_days and published is not None and (current - published).days > opt.max_age_days:
                continue
            found[video_id] = YouTubeVideo(
                video_id=video_id,
                title=str(v.get("title") or "Video"),
                channel=str(v.get("channel") or "Unknown Channel"),
                channel_url=v.get("channelUrl"),
                views=views,
                duration=v.get("duration"),
                thumbnail_url=str(v.get("imageUrl") or f"https://img.youtube.com/vi/{video_id}/hqdefault.jpg"),
                embed_url=f"https://www.youtube.com/embed/{video_id}",
                published_at=v.get("date"),
                description=v.get("snippet"),
                relevance_score=video_relevance_score(v, topic, opt, now=current),
            )

        if sum(1 for x in found.values() if x.relevance_score >= VIDEO_GOOD_SCORE) >= 3:
            break
        if qi < len(queries) - 1 and query_delay_s > 0:
            await sleep(query_delay_s)

    ranked = sorted(found.values(), key=lambda x: x.relevance_score, reverse=True)
    elapsed_ms = round((time.perf_counter() - started) * 1000, 1)
    if not ranked:
        log.info("enrichment.video.none", extra=log_extra(topic=topic[:60]))
        return VideoSearchResult(video=None, alternatives=(), search_query=topic, search_time_ms=elapsed_ms)

    best = ranked[0]
    log.info(
        "enrichment.video.found",
        extra=log_extra(video_id=best.video_id, score=best.relevance_score, candidates=len(ranked)),
    )
    return VideoSearchResult(
        video=best,
        alternatives=tuple(ranked[1:4]),
        search_query=topic,
        search_time_ms=elapsed_ms,
    )


# ============== 参考文献 ==============

AUTHORITY_DOMAINS: tuple[tuple[int, tuple[str, ...]], ...] = (
    (95, (".gov", ".gov.uk", ".gov.au", ".gc.ca", ".europa.eu")),
    (92, (".edu", ".ac.uk", ".edu.au")),
    (88, ("nature.com", "science.org", "pubmed.gov", "ncbi.nlm.nih.gov", "mayoclinic.org", "nih.gov", "cdc.gov", "who.int")),
    (82, ("reuters.com", "bbc.com", "nytimes.com", "washingtonpost.com", "theguardian.com", "wsj.com", "bloomberg.com", "forbes.com")),
    (75, ("techcrunch.com", "wired.com", "arstechnica.com", "theverge.com", "hbr.org", "mckinsey.com")),
    (72, ("wikipedia.org", "britannica.com", "investopedia.com", "statista.com", "pewresearch.org")),
)

SKIP_DOMAINS = (
    "facebook.com", "twitter.com", "instagram.com", "tiktok.com", "youtube.com",
    "pinterest.com", "reddit.com", "quora.com", "linkedin.com", "medium.com",
)

SOURCE_NAMES = {
    "nytimes.com": "The New York Times",
    "washingtonpost.com": "The Washington Post",
    "theguardian.com": "The Guardian",
    "bbc.com": "BBC",
    "reuters.com": "Reuters",
    "bloomberg.com": "Bloomberg",
    "forbes.com": "Forbes",
    "wsj.com": "Wall Street Journal",
    "mayoclinic.org": "Mayo Clinic",
    "nature.com": "Nature",
    "hbr.org": "Harvard Business Review",
    "pewresearch.org": "Pew Research Center",
    "statista.com": "Statista",
    "wikipedia.org": "Wikipedia",
    "britannica.com": "Encyclopaedia Britannica",
    "investopedia.com": "Investopedia",
    "techcrunch.com": "TechCrunch",
    "wired.com": "WIRED",
    "nih.gov": "National Institutes of Health",
    "cdc.gov": "CDC",
    "who.int": "World Health Organization",
    "ncbi.nlm.nih.gov": "PubMed/NCBI",
}

_YEAR_RE = re.compile(r"\b(20[0-9]{2})\b")


@dataclass(frozen=True)
class ReferenceOptions:
    target_count: int = REFERENCE_TARGET_COUNT
    min_authority_score: int = REFERENCE_MIN_AUTHORITY
    include_news: bool = True
    include_academic: bool = True
    country: str = "us"
    language: str = "en"
    skip_domains: tuple[str, ...] = field(default=SKIP_DOMAINS)


def authority_score(url: str) -> int:
    u = (url or "").lower()
    host = urlsplit(u).hostname or ""
    for score, domains in AUTHORITY_DOMAINS:
        for d in domains:
            if d.startswith("."):
                if host.endswith(d) or f"{d}/" in u:
                    return score
            elif host == d or host.endswith(f".{d}"):
                return score
    return 50 if u.startswith("https://") else 30


def source_name(url: str) -> str:
    host = urlsplit(url).hostname or ""
    if host.startswith("www."):
        host = host[4:]
    if not host:
        return "Source"
    if host in SOURCE_NAMES:
        return SOURCE_NAMES[host]
    stem = host.split(".")[:-1] or [host]
    return " ".join(stem).title()


def extract_year(text: str, *, max_year: int) -> str | None:
    years = [int(y) for y in _YEAR_RE.findall(text or "") if int(y) <= max_year]
    return str(max(years)) if years else None


async def discover_references(
    client: SerperClient,
    topic: str,
    options: ReferenceOptions | None = None,
    *,
    now: Clock = _utcnow,
    sleep: Sleep = asyncio.sleep,
    query_delay_s: float = 0.3,
) -> list[Reference]:
    """多查询检索网页，按域名权威度打分、排除社交站点、去重后取前 N。"""
    opt = options or ReferenceOptions()
    current_year = now().year
    queries = [f"{topic} research study statistics", f"{topic} expert guide official"]
    if opt.include_academic:
        queries.append(f"{topic} site:edu OR site:gov")
    if opt.include_news:
        queries.append(f"{topic} news {current_year}")

    seen: set[str] = set()
    refs: list[Reference] = []
    for qi, query in enumerate(queries):
        try:
            results = await client.search_web(query, country=opt.country, language=opt.language)
        except httpx.HTTPError as e:
            log.warning("enrichment.references.query_failed", extra=log_extra(query=query[:60], error=str(e)))
            results = None
        for r in results or []:
            link = str(r.get("link") or "")
            title = str(r.get("title") or "")
            if not link or not title:
                continue
            if any(d in link.lower() for d in opt.skip_domains):
                continue
            score = authority_score(link)
            if score < opt.min_authority_score or link in seen:
                continue
            seen.add(link)
            snippet = r.get("snippet")
            host = urlsplit(link).hostname or ""
            refs.append(
                Reference(
                    url=link,
                    title=title,
                    source=source_name(link),
                    snippet=snippet,
                    year=extract_year(f"{title} {snippet or ''}", max_year=current_year),
                    authority_score=score,
                    favicon=f"https://www.google.com/s2/favicons?domain={host}&sz=32",
                )
            )
        if qi < len(queries) - 1 and query_delay_s > 0:
            await sleep(query_delay_s)

    refs.sort(key=lambda x: x.authority_score, reverse=True)
    top = refs[: opt.target_count]
    log.info(
        "enrichment.references.found",
        extra=log_extra(count=len(top), sources=[x.source for x in top[:5]]),
    )
    return top


class SerperEnrichment:
    """分阶段流水线使用的增强来源：在各自的超时内完成视频与文献检索。"""

    def __init__(
        self,
        client: SerperClient,
        *,
        video_options: VideoSearchOptions | None = None,
        reference_options: ReferenceOptions | None = None,
        sleep: Sleep = asyncio.sleep,
        query_delay_s: float | None = None,
    ):
        self._client = client
        self._video_options = video_options or VideoSearchOptions()
        self._reference_options = reference_options or ReferenceOptions()
        self._sleep = sleep
        self._query_delay_s = query_delay_s

    def _delay_kwargs(self) -> dict[str, Any]:
        if self._query_delay_s is None:
            return {}
        return {"query_delay_s": self._query_delay_s}

    async def find_video(self, topic: str) -> YouTubeVideo | None:
        result = await asyncio.wait_for(
            search_youtube_video(
                self._client,
                topic,
                self._video_options,
                sleep=self._sleep,
                **self._delay_kwargs(),
            ),
            timeout=YOUTUBE_SEARCH_TIMEOUT_MS / 1000.0,
        )
        return result.video

    async def find_references(self, topic: str) -> list[Reference]:
        return await asyncio.wait_for(
            discover_references(
                self._client,
                topic,
                self._reference_options,
                sleep=self._sleep,
                **self._delay_kwargs(),
            ),
            timeout=REFERENCE_DISCOVERY_TIMEOUT_MS / 1000.0,
        )
