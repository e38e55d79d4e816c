"""Tests for worker process entry points: exit codes and signal handling."""
import asyncio
import signal

import httpx
import pytest

from backend.connector import ServiceClient
from config.settings import DatabaseConfig
from database.session import Database
from database.store import SyncStatsStore
from job_queue.lifecycle import (
    EXIT_OK, EXIT_STARTUP_FAILED,
    install_signal_handlers, remove_signal_handlers,
    run_email_worker, run_sync_worker,
)
from job_queue.message_queue import InMemoryMessageQueue, QueueError, Queues
from tests.conftest import RecordingChannel, UnreachableQueue


class TestEmailWorkerEntryPoint:
    @pytest.mark.asyncio
    async def test_unreachable_broker_exits_1(self, settings):
        code = await run_email_worker(settings, queue=UnreachableQueue(), channel=RecordingChannel())
        assert code == EXIT_STARTUP_FAILED

    @pytest.mark.asyncio
    async def test_stop_event_exits_0_and_closes_queue(self, settings):
        queue = InMemoryMessageQueue()
        stop = asyncio.Event()
        stop.set()

        code = await run_email_worker(settings, queue=queue, channel=RecordingChannel(), stop_event=stop)

        assert code == EXIT_OK
        with pytest.raises(QueueError):
            await queue.push(Queues.EMAIL, b"x")

    @pytest.mark.asyncio
    async def test_processes_until_stopped(self, settings, sample_envelope):
        stop = asyncio.Event()
        channel = RecordingChannel(stop_after=1, stop_event=stop)

        class PreloadedQueue(InMemoryMessageQueue):
            async def connect(self):
                await super().connect()
                await self.push(settings.queue.name, sample_envelope.encode())

        code = await asyncio.wait_for(
            run_email_worker(settings, queue=PreloadedQueue(), channel=channel, stop_event=stop),
            timeout=5,
        )

        assert code == EXIT_OK
        assert channel.delivered == [sample_envelope]


class TestSignalHandlers:
    @pytest.mark.asyncio
    async def test_sigterm_sets_stop_event(self):
        stop = asyncio.Event()
        installed = install_signal_handlers(stop)
        if signal.SIGTERM not in installed:
            pytest.skip("event loop signal handlers unavailable")
        try:
            signal.raise_signal(signal.SIGTERM)
            await asyncio.wait_for(stop.wait(), timeout=2)
        finally:
            remove_signal_handlers(installed)
        assert stop.is_set()

    @pytest.mark.asyncio
    async def test_both_signals_installed(self):
        installed = install_signal_handlers(asyncio.Event())
        try:
            if installed:
                assert set(installed) == {signal.SIGINT, signal.SIGTERM}
        finally:
            remove_signal_handlers(installed)


class TestSyncWorkerEntryPoint:
    @pytest.mark.asyncio
    async def test_unreachable_database_exits_1(self, settings, tmp_path):
        settings.database = DatabaseConfig(url=f"sqlite:///{tmp_path / 'missing' / 'dir' / 'x.db'}")
        code = await run_sync_worker(settings)
        assert code == EXIT_STARTUP_FAILED

    @pytest.mark.asyncio
    async def test_runs_one_cycle_and_exits_0(self, settings):
        stop = asyncio.Event()

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/api/users":
                return httpx.Response(200, json=[{"id": 1}, {"id": 2}])
            stop.set()
            return httpx.Response(200, json=[{"id": 1}])

        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        client = ServiceClient(client=http)

        code = await asyncio.wait_for(
            run_sync_worker(settings, client=client, stop_event=stop),
            timeout=5,
        )
        await http.aclose()

        assert code == EXIT_OK
        db = Database(settings.database)
        await db.connect()
        try:
            rows = await SyncStatsStore(db).list_recent()
        finally:
            await db.close()
        by_name = {r["service_name"]: r for r in rows}
        assert by_name["users"]["record_count"] == 2
        assert by_name["products"]["record_count"] == 1
        assert by_name["orders"]["record_count"] == 0
        assert {r["status"] for r in rows} == {"success"}
