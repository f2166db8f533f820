"""Tests for the background maintenance jobs."""

from datetime import datetime, timedelta

import pytest

from clipmind.errors import ProtocolError
from clipmind.maintenance import JOB_CATALOG_REFRESH, JOB_MEMORY_SWEEP, MaintenanceScheduler
from clipmind.memory.models import Memory, MemoryType
from clipmind.tools import ToolCatalog
from clipmind.utils.config import MCPConfig, MemoryConfig

from conftest import FakeToolClient, VIDEO_TOOLS, build_memory

MCP = MCPConfig(server_url="http://tools.test/mcp", timeout_seconds=5.0, catalog_refresh_minutes=10)


def _memory_config(sweep_minutes: int = 15) -> MemoryConfig:
    return MemoryConfig(
        short_term_max_items=1000,
        short_term_ttl_hours=24.0,
        working_max_size=100,
        compression_threshold=3,
        vector_store_dir=None,
        sweep_interval_minutes=sweep_minutes,
    )


def _seed(memory, session_id: str, count: int, created_at=None):
    # Written straight to the short-term tier so the store-time trigger stays out of the way
    for i in range(count):
        memory.short_term.set(Memory(
            session_id=session_id,
            content=f"turn {i}",
            id=f"{session_id}-{i}",
            created_at=created_at or datetime.now(),
        ))


class TestMaintenanceJobs:

    @pytest.mark.asyncio
    async def test_sweep_compresses_sessions_at_threshold(self):
        memory = build_memory(compression_threshold=3)
        _seed(memory, "busy", 3)
        _seed(memory, "quiet", 1)
        maintenance = MaintenanceScheduler(memory, ToolCatalog(None), MCP, _memory_config())

        assert await maintenance.sweep_memory() == 1

        [digest] = memory.long_term.get_by_session("busy")
        assert digest.type == MemoryType.COMPRESSED
        assert memory.long_term.get_by_session("quiet") == []

    @pytest.mark.asyncio
    async def test_unchanged_session_is_not_compressed_twice(self):
        memory = build_memory(compression_threshold=3)
        _seed(memory, "busy", 3)
        maintenance = MaintenanceScheduler(memory, ToolCatalog(None), MCP, _memory_config())

        await maintenance.sweep_memory()
        assert await maintenance.sweep_memory() == 0

        memory.short_term.set(Memory(session_id="busy", content="new turn", id="busy-new", created_at=datetime.now()))
        assert await maintenance.sweep_memory() == 1

    @pytest.mark.asyncio
    async def test_sweep_drops_expired_entries(self):
        memory = build_memory(ttl=timedelta(minutes=1))
        _seed(memory, "old", 2, created_at=datetime.now() - timedelta(minutes=5))
        maintenance = MaintenanceScheduler(memory, ToolCatalog(None), MCP, _memory_config())

        await maintenance.sweep_memory()

        assert memory.sessions() == []

    @pytest.mark.asyncio
    async def test_refresh_catalog(self):
        catalog = ToolCatalog(FakeToolClient(tools=VIDEO_TOOLS))
        maintenance = MaintenanceScheduler(build_memory(), catalog, MCP, _memory_config())

        assert await maintenance.refresh_catalog() == 3

    @pytest.mark.asyncio
    async def test_refresh_failure_is_swallowed(self):
        catalog = ToolCatalog(FakeToolClient(discover_error=ProtocolError("down")))
        maintenance = MaintenanceScheduler(build_memory(), catalog, MCP, _memory_config())

        assert await maintenance.refresh_catalog() == -1


class TestScheduling:

    @pytest.mark.asyncio
    async def test_start_registers_jobs(self):
        catalog = ToolCatalog(FakeToolClient(tools=VIDEO_TOOLS))
        maintenance = MaintenanceScheduler(build_memory(), catalog, MCP, _memory_config())

        maintenance.start()
        try:
            assert sorted(maintenance.job_ids) == sorted([JOB_CATALOG_REFRESH, JOB_MEMORY_SWEEP])
        finally:
            maintenance.stop()

    @pytest.mark.asyncio
    async def test_disabled_jobs_are_not_registered(self):
        mcp = MCPConfig(server_url=None, timeout_seconds=5.0, catalog_refresh_minutes=10)
        maintenance = MaintenanceScheduler(build_memory(), ToolCatalog(None), mcp, _memory_config(0))

        maintenance.start()
        try:
            assert maintenance.job_ids == []
        finally:
            maintenance.stop()
