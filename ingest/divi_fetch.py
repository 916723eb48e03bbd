from __future__ import annotations

import csv
import io
from dataclasses import dataclass, field
from datetime import date
from typing import Mapping

import httpx
from loguru import logger

from common.errors import FetchError, NotFound

GONE = (404, 410)


@dataclass
class FetchedReport:
    date: date
    url: str
    rows: list[list[str]] = field(default_factory=list)


def decode(body: bytes) -> str:
    try:
        return body.decode("utf-8-sig")
    except UnicodeDecodeError:
        return body.decode("cp1252", errors="replace")


def fetch_url(client: httpx.Client, url: str, day: date) -> FetchedReport:
    """One GET, no retries. 404/410 and empty bodies mean there is no report."""
    logger.debug(f"GET {url}")
    try:
        r = client.get(url)
    except httpx.HTTPError as e:
        raise FetchError(url, str(e) or type(e).__name__) from e
    if r.status_code in GONE:
        raise NotFound(day, url)
    if not r.is_success:
        raise FetchError(url, f"HTTP {r.status_code}", status=r.status_code)

    text = decode(r.content)
    if not text.strip():
        raise NotFound(day, url)
    try:
        rows = list(csv.reader(io.StringIO(text, newline="")))
    except csv.Error as e:
        raise FetchError(url, f"unreadable CSV: {e}") from e
    return FetchedReport(day, url, rows)


def fetch(client: httpx.Client, day: date, index: Mapping[date, str]) -> FetchedReport:
    """Fetch the CSV published for `day`; `index` maps dates to download links."""
    url = index.get(day)
    if url is None:
        raise NotFound(day)
    return fetch_url(client, url, day)
