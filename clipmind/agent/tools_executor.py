"""
Tool Executor
=============

Runs the tools chosen by the ToolSelector.

The executor:
1. Invokes each selected tool through the ToolCatalog
2. Bounds every call with its own timeout
3. Records start/end time and either the raw result or the error
4. Keeps going when a tool fails, so one broken tool never hides the
   others' data

Results always come back in selection order, whether the tools ran one
after another (the default) or concurrently up to `concurrency` at a time.
"""

import asyncio
from datetime import datetime

from clipmind.agent.state import ToolExecutionResult, ToolSelection
from clipmind.errors import ToolInvocationError
from clipmind.tools import ToolCatalog
from clipmind.utils.logger import Logger

logger = Logger("ToolExecutor")


class ToolExecutor:
    """
    Executes tool selections against the remote catalog.

    Example:
        executor = ToolExecutor(catalog, timeout=30, concurrency=1)

        results = await executor.execute(state.selected_tools)
        for result in results:
            print(result.tool_name, result.duration_ms, result.error)
    """

    def __init__(self, catalog: ToolCatalog, timeout: float = 30.0, concurrency: int = 1):
        """
        Args:
            catalog: Tool catalog used to invoke tools
            timeout: Seconds allowed per tool call
            concurrency: Max tools in flight; 1 runs them sequentially
        """
        self.catalog = catalog
        self.timeout = timeout
        self.concurrency = max(concurrency, 1)

    async def execute_one(self, selection: ToolSelection) -> ToolExecutionResult:
        """Run one tool. Failures are recorded, never raised."""
        result = ToolExecutionResult(tool_name=selection.name, params=selection.params)
        logger.info(f"Executing tool: {selection.name}", {"params": selection.params})

        try:
            result.raw_result = await asyncio.wait_for(
                self.catalog.invoke(selection.name, selection.params),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            result.error = f"Tool '{selection.name}' timed out after {self.timeout}s"
        except ToolInvocationError as e:
            result.error = str(e)
        finally:
            result.end_time = datetime.now()

        if result.error:
            logger.warning(f"Tool {selection.name} failed: {result.error}")
        else:
            logger.debug(f"Tool {selection.name} succeeded in {result.duration_ms}ms")

        return result

    async def execute(self, selections: list[ToolSelection]) -> list[ToolExecutionResult]:
        """
        Run every selection.

        Returns:
            One result per selection, in selection order
        """
        if self.concurrency == 1:
            results = []
            for selection in selections:
                results.append(await self.execute_one(selection))
            return results

        semaphore = asyncio.Semaphore(self.concurrency)

        async def bounded(selection: ToolSelection) -> ToolExecutionResult:
            async with semaphore:
                return await self.execute_one(selection)

        return list(await asyncio.gather(*(bounded(s) for s in selections)))
