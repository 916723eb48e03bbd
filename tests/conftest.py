"""Fixtures: a fake DIVI site served through httpx.MockTransport."""
from __future__ import annotations

from pathlib import Path

import httpx
import pytest
from loguru import logger

from common.config import Config

BASE = "https://divi.test"
ARCHIVE = f"{BASE}/divi-intensivregister-tagesreport-archiv-csv"
PAGE_2 = f"{ARCHIVE}?start=20"

CSV_NEW = (
    "bundesland,gemeindeschluessel,anzahl_meldebereiche,faelle_covid_aktuell,"
    "faelle_covid_aktuell_beatmet,anzahl_standorte,betten_frei,betten_belegt,daten_stand\n"
    "1,01001,2,0,0,2,43,82,{stamp}\n"
    "9,09162,31,212,134,20,325,1410,{stamp}\n"
)

# early exports: pandas index column, "kreis" instead of "gemeindeschluessel",
# float beds, no daten_stand
CSV_OLD = (
    ",bundesland,kreis,anzahl_meldebereiche,faelle_covid_aktuell,faelle_covid_aktuell_beatmet,"
    "anzahl_standorte,betten_frei,betten_belegt\n"
    "0,1,1001,2,0,0,2,43.0,82.0\n"
    "1,9,9162,31,212,134,20,325.0,1410.0\n"
)


def doc_link(day: str, hhmm: str = "09-15", doc_id: int = 1) -> str:
    return f'<tr><td><a href="/divi-intensivregister-{day}-{hhmm}/viewdocument/{doc_id}">CSV {day}</a></td></tr>'


def archive_page(links, next_href=None) -> str:
    nxt = f'<a title="Weiter" href="{next_href}">Weiter</a>' if next_href else ""
    return f'<html><body><table id="table-document">{"".join(links)}</table>{nxt}</body></html>'


def csv_url(day: str, hhmm: str = "09-15", doc_id: int = 1) -> str:
    return f"{BASE}/divi-intensivregister-{day}-{hhmm}/viewdocument/{doc_id}"


class FakeDivi:
    """Routes GETs to canned responses and remembers what was requested."""

    def __init__(self):
        self.routes: dict[str, object] = {}
        self.requests: list[str] = []

    def add(self, url: str, body="", status: int = 200):
        self.routes[url] = (status, body)

    def fail(self, url: str, exc: Exception):
        self.routes[url] = exc

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requests.append(url)
        route = self.routes.get(url)
        if route is None:
            return httpx.Response(404, text="not found")
        if isinstance(route, Exception):
            raise route
        status, body = route
        if isinstance(body, bytes):
            return httpx.Response(status, content=body)
        return httpx.Response(status, text=body)

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self.handler))

    def archive(self, days, **kw):
        """Single-page archive with one report per day."""
        self.add(ARCHIVE, archive_page([doc_link(d, doc_id=i) for i, d in enumerate(days)]))
        for i, d in enumerate(days):
            self.add(csv_url(d, doc_id=i), CSV_NEW.format(stamp=f"{d} 09:15:00"), **kw)


@pytest.fixture
def divi() -> FakeDivi:
    return FakeDivi()


@pytest.fixture
def client(divi):
    with divi.client() as c:
        yield c


@pytest.fixture
def config(tmp_path: Path) -> Config:
    return Config(base_url=BASE, today_url=f"{BASE}/today.csv", data_dir=tmp_path / "data")


@pytest.fixture
def log_records():
    records = []
    handler_id = logger.add(lambda m: records.append(m.record), level="DEBUG")
    yield records
    logger.remove(handler_id)
