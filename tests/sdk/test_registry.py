"""Tests for the transaction session registry."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from hrana_sdk.exceptions import ConnectionError
from hrana_sdk.registry import SessionRegistry, TransactionSession


class TestSessionRegistry:
    """Tests for SessionRegistry."""

    @pytest.mark.asyncio
    async def test_creates_once_and_reuses(self) -> None:
        registry: SessionRegistry[TransactionSession] = SessionRegistry()
        factory = AsyncMock(side_effect=lambda: TransactionSession(tx_id=1))

        first = await registry.get_or_create(1, factory)
        second = await registry.get_or_create(1, factory)

        assert first is second
        assert factory.await_count == 1
        assert 1 in registry
        assert registry.ids() == [1]

    @pytest.mark.asyncio
    async def test_concurrent_creation_publishes_one_session(self) -> None:
        registry: SessionRegistry[TransactionSession] = SessionRegistry()
        built: list[TransactionSession] = []

        async def factory() -> TransactionSession:
            session = TransactionSession(tx_id=1)
            built.append(session)
            await asyncio.sleep(0.01)
            return session

        discard = AsyncMock()
        first, second = await asyncio.gather(
            registry.get_or_create(1, factory, discard),
            registry.get_or_create(1, factory, discard),
        )

        assert first is second
        assert len(built) == 2
        loser = next(s for s in built if s is not first)
        assert loser.closed
        discard.assert_awaited_once_with(loser)
        assert registry.get(1) is first
        assert len(registry) == 1

    @pytest.mark.asyncio
    async def test_factory_failure_leaves_nothing(self) -> None:
        registry: SessionRegistry[TransactionSession] = SessionRegistry()
        factory = AsyncMock(side_effect=ConnectionError("open failed"))

        with pytest.raises(ConnectionError):
            await registry.get_or_create(1, factory)

        assert 1 not in registry
        assert not registry.is_orphaned(1)

    @pytest.mark.asyncio
    async def test_distinct_ids_do_not_share_sessions(self) -> None:
        registry: SessionRegistry[TransactionSession] = SessionRegistry()

        a = await registry.get_or_create(1, AsyncMock(return_value=TransactionSession(tx_id=1)))
        b = await registry.get_or_create(2, AsyncMock(return_value=TransactionSession(tx_id=2)))

        assert a is not b
        assert sorted(registry.ids()) == [1, 2]

    @pytest.mark.asyncio
    async def test_remove_is_idempotent(self) -> None:
        registry: SessionRegistry[TransactionSession] = SessionRegistry()
        session = await registry.get_or_create(1, AsyncMock(return_value=TransactionSession(tx_id=1)))

        assert registry.remove(1) is session
        assert session.closed
        assert registry.remove(1) is None
        assert registry.remove(99) is None
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_remove_leaves_newer_session_alone(self) -> None:
        registry: SessionRegistry[TransactionSession] = SessionRegistry()
        stale = TransactionSession(tx_id=1)
        current = await registry.get_or_create(1, AsyncMock(return_value=TransactionSession(tx_id=1)))

        assert registry.remove(1, stale) is None
        assert registry.get(1) is current

    @pytest.mark.asyncio
    async def test_orphaned_id_refuses_new_session(self) -> None:
        registry: SessionRegistry[TransactionSession] = SessionRegistry()
        session = await registry.get_or_create(1, AsyncMock(return_value=TransactionSession(tx_id=1)))

        assert registry.orphan(1, session) is session
        assert session.closed
        assert registry.is_orphaned(1)

        factory = AsyncMock()
        with pytest.raises(ConnectionError, match="lost its session"):
            await registry.get_or_create(1, factory)
        factory.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_remove_clears_orphan_mark(self) -> None:
        registry: SessionRegistry[TransactionSession] = SessionRegistry()
        registry.orphan(1)
        assert registry.is_orphaned(1)

        registry.remove(1)

        assert not registry.is_orphaned(1)
        fresh = await registry.get_or_create(1, AsyncMock(return_value=TransactionSession(tx_id=1)))
        assert registry.get(1) is fresh

    @pytest.mark.asyncio
    async def test_orphaned_while_opening(self) -> None:
        registry: SessionRegistry[TransactionSession] = SessionRegistry()
        created = TransactionSession(tx_id=1)

        async def factory() -> TransactionSession:
            registry.orphan(1)
            return created

        discard = AsyncMock()
        with pytest.raises(ConnectionError):
            await registry.get_or_create(1, factory, discard)

        assert created.closed
        discard.assert_awaited_once_with(created)
        assert 1 not in registry

    @pytest.mark.asyncio
    async def test_orphan_all_and_drain(self) -> None:
        registry: SessionRegistry[TransactionSession] = SessionRegistry()
        a = await registry.get_or_create(1, AsyncMock(return_value=TransactionSession(tx_id=1)))
        b = await registry.get_or_create(2, AsyncMock(return_value=TransactionSession(tx_id=2)))

        dropped = registry.orphan_all()

        assert set(map(id, dropped)) == {id(a), id(b)}
        assert len(registry) == 0
        assert registry.is_orphaned(1) and registry.is_orphaned(2)

        assert registry.drain() == []
        assert not registry.is_orphaned(1)

    def test_orphan_logs_warning(self, caplog: pytest.LogCaptureFixture) -> None:
        registry: SessionRegistry[TransactionSession] = SessionRegistry()
        with caplog.at_level("WARNING", logger="hrana_sdk.registry"):
            registry.orphan(5)
        assert "Transaction 5 lost its session" in caplog.text
