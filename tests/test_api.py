"""Tests for the HTTP and WebSocket routes."""

import asyncio
import uuid
from datetime import datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest
from fastapi import WebSocketDisconnect
from fastapi.testclient import TestClient

from api import create_app
from api.inbox import inbox_websocket
from api.dependencies import (
    get_listing_manager, get_message_manager, get_tool_manager, get_upload_store
)
from auth import get_current_user, get_optional_user, AuthError
from listings import ListingManager, ListingActiveError
from messages import MessageBus, MessageManager
from tools import ToolHasActiveListingsError, ToolLookupNotFoundError

from conftest import FakePool

USER_A = {'id': uuid.uuid4(), 'first_name': 'Ada', 'last_name': 'A', 'active': True, 'address_id': None}
USER_B = {'id': uuid.uuid4(), 'first_name': 'Bo', 'last_name': 'B', 'active': True, 'address_id': None}


class StubListings:
    def __init__(self):
        self.search_calls = []

    async def search_listings(self, **kwargs):
        self.search_calls.append(kwargs)
        return []

    async def delete_listing(self, listing_id, user_id):
        raise ListingActiveError("Pause the listing before deleting it")

    async def get_tool_listings(self, tool_id):
        return [{'id': str(uuid.uuid4()), 'tool_id': str(tool_id), 'active': False}]

    async def get_user_listings(self, owner_id):
        return []


class StubTools:
    async def delete_tool(self, tool_id, user_id):
        raise ToolHasActiveListingsError("Tool has 1 active listing(s); deactivate them first")

    async def get_tool(self, tool_id):
        return {'id': tool_id, 'owner_id': USER_B['id']}


@pytest.fixture
def app():
    app = create_app(manage_db=False)
    app.dependency_overrides[get_current_user] = lambda: USER_A
    app.dependency_overrides[get_optional_user] = lambda: USER_A
    return app


@pytest.fixture
def client(app):
    with TestClient(app) as client:
        yield client


def test_root(client):
    assert client.get("/").json()['status'] == "running"


def test_bus_belongs_to_app(app):
    other = create_app(manage_db=False)
    with TestClient(app), TestClient(other):
        assert app.state.message_bus is not other.state.message_bus


def test_unknown_lookup_kind(client):
    response = client.get("/api/search/widget")
    assert response.status_code == 404
    assert response.json() == {"error": "Not found", "results": None}


def test_lookup_search(app, client):
    conn = FakePool().conn
    rows = [{'id': str(uuid.uuid4()), 'name': 'Bosch'}, {'id': str(uuid.uuid4()), 'name': 'DeWalt'}]
    conn.queue('fetch', rows)
    app.dependency_overrides[get_listing_manager] = lambda: ListingManager(FakePool(conn), geocoder=object())

    response = client.get("/api/search/maker", params={'q': 'De'})

    assert response.status_code == 200
    assert response.json() == {"results": rows}


def test_search_requires_lat_and_lon_together(app, client):
    app.dependency_overrides[get_listing_manager] = StubListings
    response = client.get("/api/listings/search", params={'lat': 10})
    assert response.status_code == 422


def test_search_rejects_bad_radius(app, client):
    app.dependency_overrides[get_listing_manager] = StubListings
    response = client.get("/api/listings/search", params={'lat': 0, 'lon': 0, 'radius': -1})
    assert response.status_code == 422


def test_search_passes_parameters(app, client):
    stub = StubListings()
    app.dependency_overrides[get_listing_manager] = lambda: stub

    response = client.get(
        "/api/listings/search",
        params={'query': 'drill', 'lat': 0, 'lon': 0, 'radius': 6372, 'page': 2, 'per_page': 10}
    )

    assert response.status_code == 200
    assert response.json()['listings'] == []
    call = stub.search_calls[0]
    assert call['query'] == 'drill'
    assert (call['origin_lat'], call['origin_lon'], call['radius_km']) == (0, 0, 6372)
    assert (call['limit'], call['offset']) == (10, 10)
    assert call['user'] == USER_A


def test_delete_active_listing_conflict(app, client):
    app.dependency_overrides[get_listing_manager] = StubListings
    response = client.delete(f"/api/listings/{uuid.uuid4()}")
    assert response.status_code == 409


def test_delete_tool_with_active_listings_conflict(app, client):
    app.dependency_overrides[get_tool_manager] = StubTools
    response = client.delete(f"/api/tools/{uuid.uuid4()}")
    assert response.status_code == 409


def test_edit_someone_elses_tool_forbidden(app, client):
    app.dependency_overrides[get_tool_manager] = StubTools
    response = client.patch(f"/api/tools/{uuid.uuid4()}", data={'name': 'Mine now'})
    assert response.status_code == 403


def test_login_required(app):
    app.dependency_overrides.pop(get_current_user)
    app.dependency_overrides[get_optional_user] = lambda: None
    with TestClient(app) as client:
        assert client.get("/inbox").status_code == 401


def test_send_failure_is_sanitized(app, client):
    class BrokenMessages:
        async def send_message(self, sender_id, recipient_id, content):
            raise RuntimeError("connection to 10.0.0.5 failed: password=hunter2")

    app.dependency_overrides[get_message_manager] = BrokenMessages
    response = client.post(f"/inbox/{USER_B['id']}/send", json={'content': 'hello'})

    assert response.status_code == 500
    assert response.json() == {"status": "failure", "error": "Message could not be sent", "message": None}
    assert "hunter2" not in response.text


def test_send_blank_message_rejected(client):
    response = client.post(f"/inbox/{USER_B['id']}/send", json={'content': ''})
    assert response.status_code == 422


def test_live_delivery(app, client):
    """A sends to B while B is connected: B's socket receives the message."""
    conn = FakePool().conn
    app.dependency_overrides[get_message_manager] = (
        lambda: MessageManager(FakePool(conn), bus=app.state.message_bus)
    )
    message_row = {
        'id': uuid.uuid4(), 'sender_id': USER_A['id'], 'recipient_id': USER_B['id'],
        'content': 'Is the ladder free?', 'created_at': datetime(2024, 5, 1, 12)
    }
    conn.queue('fetchval', 1)
    conn.queue('fetchrow', message_row)

    with patch('api.inbox.auth_manager.verify_session', AsyncMock(return_value=USER_B['id'])):
        with client.websocket_connect("/inbox/ws") as websocket:
            websocket.send_json({'token': 'session-token'})
            assert websocket.receive_json()['type'] == 'connection_status'
            assert app.state.message_bus.subscriber_count(USER_B['id']) == 1

            response = client.post(f"/inbox/{USER_B['id']}/send", json={'content': 'Is the ladder free?'})
            assert response.status_code == 201

            event = websocket.receive_json()
            assert event['type'] == 'user_message'
            assert event['data']['recipient_id'] == str(USER_B['id'])
            assert event['data']['content'] == 'Is the ladder free?'


def test_websocket_rejects_bad_token(client):
    with patch('api.inbox.auth_manager.verify_session', AsyncMock(side_effect=AuthError("bad"))):
        with client.websocket_connect("/inbox/ws") as websocket:
            websocket.send_json({'token': 'nope'})
            with pytest.raises(WebSocketDisconnect) as exc_info:
                websocket.receive_json()
            assert exc_info.value.code == 4001


def test_websocket_rejects_non_json_first_frame(client):
    with client.websocket_connect("/inbox/ws") as websocket:
        websocket.send_text("hello")
        with pytest.raises(WebSocketDisconnect) as exc_info:
            websocket.receive_json()
        assert exc_info.value.code == 4001


def test_register_rejects_overlong_password(client):
    response = client.post("/user/new", json={
        'first_name': 'Ada', 'last_name': 'A', 'email': 'ada@example.com',
        'password': 'x' * 100,
        'address': {'line_one': '1 Main St', 'city': 'Springfield', 'state': 'IL', 'zip_code': '62701'}
    })
    assert response.status_code == 422


def test_unknown_user_listings_and_tools(app, client):
    app.dependency_overrides[get_listing_manager] = StubListings
    with patch('api.auth.manager.get_user', AsyncMock(return_value=None)):
        assert client.get(f"/user/{uuid.uuid4()}/listings").status_code == 404
        assert client.get(f"/user/{uuid.uuid4()}/tools").status_code == 404


def test_known_user_listings(app, client):
    app.dependency_overrides[get_listing_manager] = StubListings
    with patch('api.auth.manager.get_user', AsyncMock(return_value=USER_B)):
        response = client.get(f"/user/{USER_B['id']}/listings")
    assert response.status_code == 200
    assert response.json() == {"listings": []}


def test_owner_sees_tool_listings(app, client):
    class OwnTools(StubTools):
        async def get_tool(self, tool_id):
            return {'id': str(tool_id), 'owner_id': USER_A['id']}

    app.dependency_overrides[get_tool_manager] = OwnTools
    app.dependency_overrides[get_listing_manager] = StubListings
    tool_id = uuid.uuid4()

    response = client.get(f"/api/tools/{tool_id}")

    assert response.status_code == 200
    assert [listing['tool_id'] for listing in response.json()['listings']] == [str(tool_id)]


def test_others_do_not_see_tool_listings(app, client):
    app.dependency_overrides[get_tool_manager] = StubTools
    app.dependency_overrides[get_listing_manager] = StubListings

    response = client.get(f"/api/tools/{uuid.uuid4()}")

    assert response.status_code == 200
    assert 'listings' not in response.json()


def test_create_tool_with_unknown_category(app, client):
    class RecordingStore:
        def __init__(self):
            self.saved = []

        async def save(self, upload, user_id):
            self.saved.append(upload.filename)
            return {'id': uuid.uuid4()}

    class MissingCategoryTools(StubTools):
        async def check_lookups(self, tool_category_id=None, tool_maker_id=None):
            raise ToolLookupNotFoundError(f"Tool category {tool_category_id} not found")

    store = RecordingStore()
    app.dependency_overrides[get_tool_manager] = MissingCategoryTools
    app.dependency_overrides[get_upload_store] = lambda: store

    response = client.post(
        "/api/tools",
        data={'name': 'Drill Press', 'tool_category_id': str(uuid.uuid4())},
        files={'manual': ('manual.pdf', b'%PDF-1.4', 'application/pdf')}
    )

    assert response.status_code == 400
    assert store.saved == []


class ClosingWebSocket:
    """Authenticates with a token frame, then the client goes away."""

    def __init__(self, bus):
        self.cookies = {}
        self.app = SimpleNamespace(state=SimpleNamespace(message_bus=bus))
        self.sent = []

    async def accept(self):
        pass

    async def receive_json(self):
        return {'token': 'session-token'}

    async def receive_text(self):
        raise WebSocketDisconnect(code=1000)

    async def send_json(self, data):
        self.sent.append(data)


@pytest.mark.asyncio
async def test_websocket_cleans_up_after_disconnect():
    bus = MessageBus()
    websocket = ClosingWebSocket(bus)

    with patch('api.inbox.auth_manager.verify_session', AsyncMock(return_value=USER_B['id'])):
        await inbox_websocket(websocket)

    assert websocket.sent[0]['type'] == 'connection_status'
    assert bus.subscriber_count() == 0
    assert [task for task in asyncio.all_tasks() if task is not asyncio.current_task()] == []
