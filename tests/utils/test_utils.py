# tests/utils/test_utils.py

from datetime import datetime, timedelta, timezone

import httpx
import pytest

from costverify.utils.date_utils import ensure_utc, from_unix, parse_iso_date, to_unix
from costverify.utils.http_client import get_async_http_client


def test_parse_iso_date_handles_z_suffix():
    assert parse_iso_date("2024-01-01T00:00:00Z") == datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert parse_iso_date("not a date") is None
    assert parse_iso_date("") is None


def test_ensure_utc():
    naive = datetime(2024, 1, 1, 12)
    assert ensure_utc(naive).tzinfo == timezone.utc
    cet = datetime(2024, 1, 1, 13, tzinfo=timezone(timedelta(hours=1)))
    assert ensure_utc(cet) == datetime(2024, 1, 1, 12, tzinfo=timezone.utc)
    with pytest.raises(ValueError):
        ensure_utc("garbage")


def test_unix_round_trip_drops_sub_seconds():
    assert from_unix(1700000000.9) == from_unix(1700000000)
    assert to_unix(from_unix(1700000000)) == 1700000000


@pytest.mark.asyncio
async def test_http_client_defaults():
    client = get_async_http_client(bearer_token="tok")
    try:
        assert isinstance(client, httpx.AsyncClient)
        assert client.headers["User-Agent"] == "costverify"
        assert client.headers["Authorization"] == "Bearer tok"
        assert client.timeout.connect == 5.0
        assert client.follow_redirects is True
    finally:
        await client.aclose()
