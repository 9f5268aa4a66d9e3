"""Scraper for the portal's human-readable patent detail pages."""

import re
from typing import List, Optional
from urllib.parse import quote

import httpx
import structlog

from ..config import Settings
from ..errors import InvalidResponseError, InvalidURLError
from ..models.patent import PatentDetail
from ..utils.html_extractor import (
    ExtractionRule,
    clean_html,
    dedupe_preserving_order,
    extract_list_items,
    extract_match,
    extract_matches,
)
from ..utils.observability import trace_span
from ..utils.transport import PortalTransport

logger = structlog.get_logger(__name__)

YOUTUBE_WATCH_URL = "https://www.youtube.com/watch?v={}"
YOUTUBE_THUMBNAIL_URL = "https://img.youtube.com/vi/{}/hqdefault.jpg"

TITLE_PATTERN = r"<h1[^>]*>([^<]+)</h1>"
DESCRIPTION_PATTERN = r"<div class=\"description\"[^>]*>(.*?)</div>\s*</div>"
BENEFITS_PATTERN = r"<div class=\"benefits\">(.*?)</div>\s*</div>"
APPLICATIONS_PATTERN = r"<div class=\"applications\">(.*?)</div>\s*</div>"
RELATED_PATTERN = r"<div class=\"related\">(.*?)</div>"
RELATED_LINK_PATTERN = r"href=\"/patent/([^\"]+)\""
PATENT_NUMBER_PATTERN = r">([0-9,D][0-9,]+)</a>"
MIN_PATENT_NUMBER_LENGTH = 6

# The site embeds video in several unrelated ways and no single pattern
# finds them all, so every rule runs and the results are merged.
VIDEO_RULES = [
    ExtractionRule("media_file_src", r"src=[\"']([^\"']+\.(?:mp4|m4v|mov|webm))[\"']"),
    ExtractionRule("video_source_tag", r"<source[^>]+src=[\"']([^\"']+)[\"'][^>]*type=[\"']video/"),
    ExtractionRule("s3_mp4", r"[\"'](https://[^\"']*s3[^\"']*amazonaws\.com[^\"']+\.mp4)[\"']"),
    ExtractionRule(
        "youtube_embed",
        r"src=[\"']https?://(?:www\.)?youtube\.com/embed/([^\"'?]+)",
        transform=YOUTUBE_WATCH_URL.format,
    ),
    ExtractionRule("youtube_watch", r"href=[\"'](https?://(?:www\.)?youtube\.com/watch\?v=[^\"'&]+)[\"']"),
    ExtractionRule("youtube_short", r"href=[\"'](https?://youtu\.be/[^\"'?]+)[\"']"),
    ExtractionRule("mp4_link", r"href=[\"']([^\"']+\.mp4)[\"']"),
]


def image_rule(origin: str) -> ExtractionRule:
    """Rule matching full-size images under the portal's media path."""
    return ExtractionRule("images", rf"src=\"({re.escape(origin)}/t2media/tops/img/[^\"]+)\"")


def absolute_url(url: str, origin: str) -> str:
    """Resolve a site-relative URL against the portal origin."""
    if url.startswith("/"):
        return f"{origin}{url}"
    if not url.startswith("http"):
        return f"{origin}/{url}"
    return url


def normalize_video_urls(urls: List[str], origin: str) -> List[str]:
    """Trim, drop blanks, make absolute and dedupe keeping first occurrences."""
    cleaned = [url.strip() for url in urls]
    return dedupe_preserving_order([absolute_url(url, origin) for url in cleaned if url])


def extract_videos(html: str, origin: str) -> List[str]:
    """Collect video URLs from every video rule."""
    found = []
    for rule in VIDEO_RULES:
        found.extend(rule.apply(html))
    return normalize_video_urls(found, origin)


def extract_patent_numbers(html: str) -> List[str]:
    numbers = (value.replace(",", "") for value in extract_matches(html, PATENT_NUMBER_PATTERN))
    return [number for number in numbers if len(number) >= MIN_PATENT_NUMBER_LENGTH]


def is_youtube_url(url: str) -> bool:
    return "youtube.com" in url or "youtu.be" in url


def youtube_video_id(url: str) -> Optional[str]:
    """Pull the video id out of a YouTube watch or short link."""
    if "youtube.com/watch?v=" in url:
        return url.split("v=")[-1].split("&")[0] or None
    if "youtu.be/" in url:
        return url.split("youtu.be/")[-1].split("?")[0] or None
    return None


def video_thumbnail_url(url: str) -> Optional[str]:
    """Thumbnail image for a YouTube video URL, None for other videos."""
    video_id = youtube_video_id(url)
    if video_id is None:
        return None
    return YOUTUBE_THUMBNAIL_URL.format(video_id)


def parse_patent_detail(html: str, case_number: str, origin: str) -> PatentDetail:
    """Assemble a detail record from a page.

    Every field is best-effort: a missing or broken section leaves that
    field empty and the rest of the record intact.
    """
    title = clean_html(extract_match(html, TITLE_PATTERN)) or case_number
    description = clean_html(extract_match(html, DESCRIPTION_PATTERN))
    benefits = extract_list_items(extract_match(html, BENEFITS_PATTERN))
    applications = extract_list_items(extract_match(html, APPLICATIONS_PATTERN))
    images = dedupe_preserving_order(image_rule(origin).apply(html))
    videos = extract_videos(html, origin)
    patent_numbers = extract_patent_numbers(html)
    related = extract_matches(extract_match(html, RELATED_PATTERN), RELATED_LINK_PATTERN)

    return PatentDetail(
        id=case_number,
        case_number=case_number,
        title=title,
        full_description=description,
        benefits=benefits,
        applications=applications,
        images=images,
        videos=videos,
        patent_numbers=patent_numbers,
        related_technologies=related,
    )


class DetailScraper:
    """Fetches and parses patent detail pages."""

    def __init__(self, transport: PortalTransport, settings: Optional[Settings] = None):
        self.transport = transport
        self.settings = settings or transport.settings

    def build_url(self, case_number: str) -> httpx.URL:
        case_number = (case_number or "").strip()
        if not case_number:
            raise InvalidURLError()
        try:
            return httpx.URL(f"{self.settings.portal_origin}/patent/{quote(case_number, safe='')}")
        except (httpx.InvalidURL, ValueError, TypeError) as e:
            raise InvalidURLError() from e

    @trace_span("portal.fetch_detail")
    async def fetch_detail(self, case_number: str) -> PatentDetail:
        """Fetch a detail page and parse it into a PatentDetail."""
        url = self.build_url(case_number)
        response = await self.transport.get(url, endpoint="detail")

        if response.status_code != 200:
            logger.warning("Detail page returned error status",
                           case_number=case_number, status=response.status_code)
            raise InvalidResponseError(f"Invalid response from server: {response.status_code}")

        try:
            html = response.content.decode("utf-8")
        except UnicodeDecodeError as e:
            logger.error("Detail page is not valid UTF-8", case_number=case_number)
            raise InvalidResponseError() from e

        detail = parse_patent_detail(html, case_number.strip(), self.settings.portal_origin)
        logger.info("Patent detail scraped",
                    case_number=detail.case_number,
                    benefits=len(detail.benefits),
                    images=len(detail.images),
                    videos=len(detail.videos))
        return detail
