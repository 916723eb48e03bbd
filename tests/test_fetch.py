from datetime import date

import httpx
import pytest

from common.errors import FetchError, NotFound
from conftest import CSV_NEW, csv_url
from ingest.divi_fetch import decode, fetch, fetch_url

DAY = date(2020, 4, 25)


def test_fetch_rows(divi, client):
    url = csv_url("2020-04-25")
    divi.add(url, CSV_NEW.format(stamp="2020-04-25 09:15:00"))
    report = fetch(client, DAY, {DAY: url})
    assert report.url == url
    assert report.rows[0][0] == "bundesland"
    assert len(report.rows) == 3


def test_date_not_in_index(client):
    with pytest.raises(NotFound) as exc:
        fetch(client, DAY, {})
    assert exc.value.date == DAY


@pytest.mark.parametrize("status", [404, 410])
def test_gone_is_not_found(divi, client, status):
    url = csv_url("2020-04-25")
    divi.add(url, "", status=status)
    with pytest.raises(NotFound):
        fetch(client, DAY, {DAY: url})


def test_empty_body_is_not_found(divi, client):
    url = csv_url("2020-04-25")
    divi.add(url, "  \n")
    with pytest.raises(NotFound):
        fetch_url(client, url, DAY)


def test_server_error_is_fetch_error(divi, client):
    url = csv_url("2020-04-25")
    divi.add(url, "boom", status=500)
    with pytest.raises(FetchError) as exc:
        fetch(client, DAY, {DAY: url})
    assert exc.value.status == 500
    assert not isinstance(exc.value, NotFound)


def test_timeout_is_fetch_error_and_not_retried(divi, client):
    url = csv_url("2020-04-25")
    divi.fail(url, httpx.ReadTimeout("timed out"))
    with pytest.raises(FetchError):
        fetch(client, DAY, {DAY: url})
    assert divi.requests == [url]


def test_decode_bom_and_latin():
    assert decode("\ufeffbundesland".encode("utf-8")) == "bundesland"
    assert decode("Kreis München".encode("cp1252")) == "Kreis München"


def test_quoted_fields(divi, client):
    url = csv_url("2020-04-25")
    divi.add(url, 'a,b\n"1,234",x\n'.encode("utf-8"))
    assert fetch_url(client, url, DAY).rows == [["a", "b"], ["1,234", "x"]]


def test_unparseable_csv_is_fetch_error(divi, client):
    url = csv_url("2020-04-25")
    divi.add(url, 'a,"' + "x" * 200000)
    with pytest.raises(FetchError, match="unreadable CSV"):
        fetch_url(client, url, DAY)
