"""
List the archived DIVI daily reports.

The archive is a paginated HTML table (id="table-document") of CSV download
links; each page links to the next with <a title="Weiter">.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date
from urllib.parse import urljoin, urlparse

import httpx
from loguru import logger
from lxml import html

from common.config import Config
from common.errors import FetchError, ParseError

_LINK_DATE = re.compile(r"(\d{4})-(\d{2})-(\d{2})(?:-(\d{2})-(\d{2}))?")


@dataclass(frozen=True)
class ArchiveEntry:
    date: date
    url: str
    time: tuple = (0, 0)


def fetch_page(client: httpx.Client, url: str) -> str:
    try:
        r = client.get(url)
        r.raise_for_status()
    except httpx.HTTPStatusError as e:
        raise FetchError(url, f"HTTP {e.response.status_code}", status=e.response.status_code) from e
    except httpx.HTTPError as e:
        raise FetchError(url, str(e) or type(e).__name__) from e
    return r.text


def entry_from_link(url: str) -> ArchiveEntry | None:
    m = _LINK_DATE.search(urlparse(url).path)
    if not m:
        return None
    y, mo, d, hh, mm = m.groups()
    try:
        day = date(int(y), int(mo), int(d))
    except ValueError:
        return None
    return ArchiveEntry(day, url, (int(hh or 0), int(mm or 0)))


def parse_archive_page(text: str, page_url: str) -> tuple[list[str], str | None]:
    """Return (document links, next page link) of one archive page."""
    doc = html.fromstring(text) if text.strip() else None
    tables = doc.xpath('//*[@id="table-document"]') if doc is not None else []
    if not tables:
        raise ParseError(page_url, "can't find table-document")

    urls = []
    for a in tables[0].xpath(".//a[@href]"):
        url = urljoin(page_url, a.get("href"))
        logger.debug(f"Found URL: {url}")
        urls.append(url)

    next_url = None
    nxt = doc.xpath('//a[@title="Weiter"][@href]')
    if nxt:
        next_url = urljoin(page_url, nxt[0].get("href"))
        logger.debug(f"Next page: {next_url}")
    return urls, next_url


def list_available_dates(client: httpx.Client, config: Config) -> list[ArchiveEntry]:
    """All archived reports, oldest first, one entry per date."""
    by_date: dict[date, ArchiveEntry] = {}
    seen_pages = set()
    page_url = config.archive_url

    while page_url and page_url not in seen_pages:
        seen_pages.add(page_url)
        logger.info(f"Listing {page_url}")
        urls, page_url = parse_archive_page(fetch_page(client, page_url), page_url)
        for url in urls:
            entry = entry_from_link(url)
            if entry is None:
                logger.debug(f"No date in {url}, ignoring")
                continue
            known = by_date.get(entry.date)
            if known is None or entry.time > known.time:
                by_date[entry.date] = entry

    if not by_date:
        raise ParseError(config.archive_url, "no dated report links found")
    return [by_date[d] for d in sorted(by_date)]


def list_archived_dates(client: httpx.Client, config: Config) -> list[date]:
    return [e.date for e in list_available_dates(client, config)]
