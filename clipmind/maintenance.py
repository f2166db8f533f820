"""
Background Maintenance
======================

Periodic housekeeping jobs, run by APScheduler on the event loop:

- Catalog refresh: rediscovers the remote tools so new or removed tools
  show up without a restart
- Memory sweep: drops expired short-term entries from every session
- Session compression: folds sessions that grew past the compression
  threshold into long-term digests

Jobs never raise into the scheduler; a failed run is logged and the next
interval tries again.
"""

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from clipmind.errors import MemoryPersistError, ProtocolError
from clipmind.memory import MemoryManager
from clipmind.tools import ToolCatalog
from clipmind.utils.config import MCPConfig, MemoryConfig
from clipmind.utils.logger import Logger

logger = Logger("Maintenance")

JOB_CATALOG_REFRESH = "catalog_refresh"
JOB_MEMORY_SWEEP = "memory_sweep"


class MaintenanceScheduler:
    """
    Owns the scheduler and the housekeeping jobs.

    Example:
        maintenance = MaintenanceScheduler(memory, catalog, config.mcp, config.memory)
        maintenance.start()
        ...
        maintenance.stop()
    """

    def __init__(
        self,
        memory: MemoryManager,
        catalog: ToolCatalog,
        mcp_config: MCPConfig,
        memory_config: MemoryConfig,
    ):
        self.memory = memory
        self.catalog = catalog
        self.mcp_config = mcp_config
        self.memory_config = memory_config
        self.scheduler = AsyncIOScheduler()
        # Newest memory id per session at its last scheduled compression
        self._compressed_marks: dict[str, str] = {}

    def _schedule_jobs(self) -> None:
        refresh_minutes = self.mcp_config.catalog_refresh_minutes
        if refresh_minutes > 0 and self.catalog.client is not None:
            self.scheduler.add_job(
                self.refresh_catalog,
                trigger=IntervalTrigger(minutes=refresh_minutes),
                id=JOB_CATALOG_REFRESH,
                replace_existing=True,
            )
            logger.debug(f"Catalog refresh every {refresh_minutes} minutes")

        sweep_minutes = self.memory_config.sweep_interval_minutes
        if sweep_minutes > 0:
            self.scheduler.add_job(
                self.sweep_memory,
                trigger=IntervalTrigger(minutes=sweep_minutes),
                id=JOB_MEMORY_SWEEP,
                replace_existing=True,
            )
            logger.debug(f"Memory sweep every {sweep_minutes} minutes")

    def start(self) -> None:
        """Start the scheduler."""
        if not self.scheduler.running:
            self._schedule_jobs()
            self.scheduler.start()
            logger.info("Maintenance scheduler started")

    def stop(self) -> None:
        """Stop the scheduler."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Maintenance scheduler stopped")

    @property
    def job_ids(self) -> list[str]:
        return [job.id for job in self.scheduler.get_jobs()]

    # ==========================================================================
    # Jobs
    # ==========================================================================

    async def refresh_catalog(self) -> int:
        """Returns the number of tools discovered, or -1 if discovery failed."""
        try:
            tools = await self.catalog.refresh()
        except ProtocolError as e:
            logger.warning(f"Scheduled catalog refresh failed: {e}")
            return -1
        return len(tools)

    async def sweep_memory(self) -> int:
        """
        Sweep expired entries, then compress sessions at the threshold.

        Returns:
            Number of sessions compressed
        """
        self.memory.sweep()

        compressed = 0
        for session_id in self.memory.sessions():
            history = self.memory.get_session_history(session_id, limit=1)
            if not history or self._compressed_marks.get(session_id) == history[-1].id:
                continue
            try:
                if await self.memory.compress(session_id) is not None:
                    self._compressed_marks[session_id] = history[-1].id
                    compressed += 1
            except MemoryPersistError as e:
                logger.warning(f"Scheduled compression failed for {session_id}: {e}")

        if compressed:
            logger.info(f"Compressed {compressed} sessions")
        return compressed
