"""Tests for the geocoding client and the address geocoding cache."""

import uuid
from unittest.mock import MagicMock, patch

import pytest
import requests

from geocoding import (
    GeocoderClient, AddressGeocoder, GeocodeStatus, GeocoderConnectionError,
    GeocoderResponseError, format_address
)

ADDRESS = {
    'line_one': '1 Main St', 'line_two': 'Apt 2', 'city': 'Springfield',
    'state': 'IL', 'zip_code': '62701'
}


def response_with(payload):
    response = MagicMock()
    response.json.return_value = payload
    response.raise_for_status.return_value = None
    return response


@pytest.fixture
def client():
    return GeocoderClient(url='http://geocoder.test/search', user_agent='tests', timeout=1)


def test_format_address():
    assert format_address(ADDRESS) == "1 Main St Apt 2, Springfield, IL 62701"
    assert format_address({**ADDRESS, 'line_two': None}) == "1 Main St, Springfield, IL 62701"


def test_geocode_match(client):
    with patch.object(client.session, 'get', return_value=response_with([{'lat': '39.78', 'lon': '-89.65'}])) as get:
        assert client.geocode("1 Main St") == (39.78, -89.65)

    _, kwargs = get.call_args
    assert kwargs['params'] == {'q': '1 Main St', 'format': 'json', 'limit': 1}
    assert kwargs['timeout'] == 1


def test_geocode_no_match(client):
    with patch.object(client.session, 'get', return_value=response_with([])):
        assert client.geocode("nowhere") is None


def test_geocode_timeout(client):
    with patch.object(client.session, 'get', side_effect=requests.exceptions.Timeout()):
        with pytest.raises(GeocoderConnectionError):
            client.geocode("1 Main St")


def test_geocode_bad_payload(client):
    with patch.object(client.session, 'get', return_value=response_with({'error': 'nope'})):
        with pytest.raises(GeocoderResponseError):
            client.geocode("1 Main St")
    with patch.object(client.session, 'get', return_value=response_with([{'lat': '91', 'lon': '0'}])):
        with pytest.raises(GeocoderResponseError):
            client.geocode("1 Main St")


def address_row(status, lat=None, lon=None):
    return {
        'id': uuid.uuid4(), **ADDRESS,
        'geocoded_lat': lat, 'geocoded_lon': lon, 'geocode_status': status
    }


@pytest.mark.asyncio
async def test_resolved_address_is_not_geocoded_again(pool, conn):
    geocoding_client = MagicMock()
    conn.queue('fetchrow', address_row('resolved', 1.0, 2.0))
    geocoder = AddressGeocoder(pool, geocoding_client)
    address_id = uuid.uuid4()

    assert await geocoder.coordinates(address_id) == (1.0, 2.0)
    assert await geocoder.coordinates(address_id) == (1.0, 2.0)

    geocoding_client.geocode.assert_not_called()
    assert len(conn.calls) == 1


@pytest.mark.asyncio
async def test_pending_address_is_resolved_and_stored(pool, conn):
    geocoding_client = MagicMock()
    geocoding_client.geocode.return_value = (39.78, -89.65)
    conn.queue('fetchrow', address_row('pending'))
    geocoder = AddressGeocoder(pool, geocoding_client)
    address_id = uuid.uuid4()

    assert await geocoder.ensure_geocoded(address_id) is True

    geocoding_client.geocode.assert_called_once_with("1 Main St Apt 2, Springfield, IL 62701")
    _, _, args = conn.calls[-1]
    assert args == (address_id, 39.78, -89.65, GeocodeStatus.RESOLVED.value)
    # Cached from now on
    assert await geocoder.coordinates(address_id) == (39.78, -89.65)
    assert len(conn.calls) == 2


@pytest.mark.asyncio
async def test_no_match_is_stored_as_failed(pool, conn):
    geocoding_client = MagicMock()
    geocoding_client.geocode.return_value = None
    conn.queue('fetchrow', address_row('pending'))
    geocoder = AddressGeocoder(pool, geocoding_client)
    address_id = uuid.uuid4()

    assert await geocoder.ensure_geocoded(address_id) is False

    _, _, args = conn.calls[-1]
    assert args == (address_id, GeocodeStatus.FAILED.value)


@pytest.mark.asyncio
async def test_failed_address_is_not_retried(pool, conn):
    geocoding_client = MagicMock()
    conn.queue('fetchrow', address_row('failed'))

    assert await AddressGeocoder(pool, geocoding_client).coordinates(uuid.uuid4()) is None
    geocoding_client.geocode.assert_not_called()


@pytest.mark.asyncio
async def test_unreachable_geocoder_is_retried_later(pool, conn):
    geocoding_client = MagicMock()
    geocoding_client.geocode.side_effect = [GeocoderConnectionError("down"), (1.0, 2.0)]
    conn.queue('fetchrow', address_row('pending'), address_row('pending'))
    geocoder = AddressGeocoder(pool, geocoding_client)
    address_id = uuid.uuid4()

    assert await geocoder.coordinates(address_id) is None
    assert conn.queries('execute') == []

    assert await geocoder.coordinates(address_id) == (1.0, 2.0)
    assert geocoding_client.geocode.call_count == 2


@pytest.mark.asyncio
async def test_missing_address(pool, conn):
    conn.queue('fetchrow', None)
    assert await AddressGeocoder(pool, MagicMock()).coordinates(uuid.uuid4()) is None


@pytest.mark.asyncio
async def test_geocode_pending_counts_resolved(pool, conn):
    geocoding_client = MagicMock()
    geocoding_client.geocode.side_effect = [(1.0, 2.0), None]
    conn.queue('fetchrow', address_row('pending'), address_row('pending'))

    resolved = await AddressGeocoder(pool, geocoding_client).geocode_pending([uuid.uuid4(), uuid.uuid4()])
    assert resolved == 1
