# scraping.py
import logging
import re
from dataclasses import dataclass
from pathlib import Path

import httpx

from models import Command, WorkFailed, register_command

logger = logging.getLogger(__name__)

IMDB_BASE_URL = "https://www.imdb.com"
GENRES_URL = "https://www.imdb.com/feature/genre/"
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; cmdqueue/0.1)"

GENRE_LINK_RE = re.compile(r'href="(https://www\.imdb\.com/search/title\?genres=.*?)"')
MOVIE_LINK_RE = re.compile(r'href="(/title/[^"/]+)/')
NEXT_PAGE_RE = re.compile(r"Next &#187;</a>")
MOVIE_TITLE_RE = re.compile(r'<h1 itemprop="name" class="">(.*?)</h1>', re.DOTALL)


class PageFetcher:
    """Fetches page text for a locator: http(s) URLs over the network,
    anything else from the local filesystem."""

    def __init__(self, timeout_seconds=DEFAULT_TIMEOUT_SECONDS, transport=None):
        self._client = httpx.Client(
            timeout=httpx.Timeout(timeout_seconds, connect=10.0),
            headers={"User-Agent": DEFAULT_USER_AGENT},
            transport=transport,
            follow_redirects=True,
        )

    def fetch(self, locator):
        if locator.startswith(("http://", "https://")):
            return self._fetch_url(locator)
        try:
            return Path(locator).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise WorkFailed(f"failed to read {locator}: {e}") from e

    def _fetch_url(self, url):
        try:
            response = self._client.get(url)
        except httpx.HTTPError as e:
            raise WorkFailed(f"failed to download {url}: {e}") from e
        if not response.is_success:
            raise WorkFailed(f"failed to download {url}: HTTP {response.status_code}")
        return response.text

    def close(self):
        self._client.close()


_fetcher = None


def get_fetcher():
    global _fetcher
    if _fetcher is None:
        _fetcher = PageFetcher()
    return _fetcher


def set_fetcher(fetcher):
    """Install ``fetcher``, closing the one it replaces."""
    global _fetcher
    if _fetcher is not None and _fetcher is not fetcher:
        _fetcher.close()
    _fetcher = fetcher


def _unique(items):
    return list(dict.fromkeys(items))


@dataclass
class WebScrapingCommand(Command):
    url: str

    def locator(self):
        return self.url

    def download(self):
        html = get_fetcher().fetch(self.locator())
        logger.info("WebScrapingCommand: Downloaded %s", self.locator())
        return html

    def execute(self):
        return self.parse(self.download())

    def parse(self, html):
        raise NotImplementedError


@register_command("scrape_genres")
@dataclass
class GenresScrapingCommand(WebScrapingCommand):
    url: str = GENRES_URL

    def parse(self, html):
        genres = _unique(GENRE_LINK_RE.findall(html))
        logger.info("GenresScrapingCommand: Discovered %d genres.", len(genres))
        return [GenrePageScrapingCommand(genre) for genre in genres]


@register_command("scrape_genre_page")
@dataclass
class GenrePageScrapingCommand(WebScrapingCommand):
    page: int = 1

    def locator(self):
        # Local listings are paginated through a "{page}" placeholder
        if "{page}" in self.url:
            return self.url.replace("{page}", str(self.page))
        if not self.url.startswith(("http://", "https://")):
            return self.url
        separator = "&" if "?" in self.url else "?"
        return f"{self.url}{separator}page={self.page}"

    def parse(self, html):
        movies = _unique(MOVIE_LINK_RE.findall(html))
        logger.info("GenrePageScrapingCommand: Discovered %d movies on page %d.", len(movies), self.page)
        follow_ups = [MovieScrapingCommand(f"{IMDB_BASE_URL}{path}/") for path in movies]
        if NEXT_PAGE_RE.search(html):
            follow_ups.append(GenrePageScrapingCommand(self.url, page=self.page + 1))
        return follow_ups


@register_command("scrape_movie")
@dataclass
class MovieScrapingCommand(WebScrapingCommand):
    def parse(self, html):
        match = MOVIE_TITLE_RE.search(html)
        if match is None:
            logger.warning("MovieScrapingCommand: No title found at %s.", self.url)
        else:
            logger.info("MovieScrapingCommand: Parsed movie %s.", match.group(1).strip())
        return []
