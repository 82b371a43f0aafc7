"""Shared fixtures: an in-memory stand-in for an asyncpg pool."""

from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from uuid import uuid4

import pytest

from messages import UserMessage


class FakeConnection:
    """Replays queued results and records every query.

    Results are queued per method name (fetch, fetchrow, fetchval, execute)
    and consumed in order. A queued exception is raised instead of returned.
    """

    def __init__(self):
        self.results = {'fetch': [], 'fetchrow': [], 'fetchval': [], 'execute': []}
        self.calls = []

    def queue(self, method, *results):
        self.results[method].extend(results)
        return self

    def _next(self, method, query, args):
        self.calls.append((method, query, args))
        if self.results[method]:
            result = self.results[method].pop(0)
        else:
            result = {'fetch': [], 'execute': 'OK'}.get(method)
        if isinstance(result, Exception):
            raise result
        return result

    async def fetch(self, query, *args):
        return self._next('fetch', query, args)

    async def fetchrow(self, query, *args):
        return self._next('fetchrow', query, args)

    async def fetchval(self, query, *args):
        return self._next('fetchval', query, args)

    async def execute(self, query, *args):
        return self._next('execute', query, args)

    @asynccontextmanager
    async def transaction(self):
        yield

    def queries(self, method=None):
        return [query for m, query, _ in self.calls if method is None or m == method]


class FakePool:
    """Hands out the same FakeConnection on every acquire."""

    def __init__(self, conn=None):
        self.conn = conn or FakeConnection()

    @asynccontextmanager
    async def acquire(self):
        yield self.conn


@pytest.fixture
def conn():
    return FakeConnection()


@pytest.fixture
def pool(conn):
    return FakePool(conn)


def make_message(sender_id, recipient_id, content="hi", minutes=0):
    return UserMessage(
        id=uuid4(),
        sender_id=sender_id,
        recipient_id=recipient_id,
        content=content,
        created_at=datetime(2024, 1, 1) + timedelta(minutes=minutes)
    )


@pytest.fixture
def message_factory():
    return make_message
