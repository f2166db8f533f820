"""
ClipMind - Main Entry Point
===========================

This is the main entry point. It:
1. Loads configuration
2. Builds the components (LLM, memory, tool catalog, orchestrator)
3. Starts the maintenance scheduler
4. Serves Slack when its tokens are configured, otherwise a console chat

Run with:
    python -m clipmind.main

Or after installing:
    clipmind
"""

import asyncio
import signal
import sys
import uuid
from dataclasses import dataclass

from clipmind.agent import LLMClient, Orchestrator
from clipmind.errors import ServiceUnavailableError
from clipmind.maintenance import MaintenanceScheduler
from clipmind.memory import MemoryManager
from clipmind.memory.embeddings import EmbeddingGenerator
from clipmind.tools import ToolCatalog
from clipmind.tools.mcp_client import MCPClient
from clipmind.utils.config import Config, get_config
from clipmind.utils.logger import Logger

main_logger = Logger("Main")


@dataclass
class Components:
    """Everything `main` wires together, kept for shutdown."""
    orchestrator: Orchestrator
    maintenance: MaintenanceScheduler
    mcp_client: MCPClient | None


def build_components(config: Config) -> Components:
    llm = LLMClient(
        api_key=config.llm.api_key,
        model=config.llm.model,
        base_url=config.llm.base_url,
    )
    embedder = EmbeddingGenerator(
        api_key=config.llm.api_key,
        model=config.llm.embedding_model,
        base_url=config.llm.base_url,
    )
    memory = MemoryManager.from_config(config, embedder)

    mcp_client = None
    if config.mcp.server_url:
        mcp_client = MCPClient(config.mcp.server_url, timeout=config.mcp.timeout_seconds)
    else:
        main_logger.warning("MCP_SERVER_URL not set, running without tools")
    catalog = ToolCatalog(mcp_client, invoke_timeout=config.mcp.timeout_seconds)

    orchestrator = Orchestrator(llm, memory, catalog, config.pipeline)
    maintenance = MaintenanceScheduler(memory, catalog, config.mcp, config.memory)

    return Components(orchestrator, maintenance, mcp_client)


async def main():
    """
    Main async entry point.

    Initializes all components and serves until interrupted.
    """
    main_logger.info("Starting ClipMind...")

    try:
        main_logger.info("Loading configuration...")
        config = get_config()
        components = build_components(config)
    except Exception as e:
        main_logger.error("Failed to start ClipMind", e)
        sys.exit(1)

    components.maintenance.start()

    try:
        if config.slack.enabled:
            await _serve_slack(config, components)
        else:
            main_logger.info("Slack not configured, starting console chat")
            await _serve_console(components.orchestrator)
    except KeyboardInterrupt:
        main_logger.info("Received interrupt signal")
    finally:
        await _shutdown(components)


async def _serve_slack(config: Config, components: Components) -> None:
    from clipmind.slack import create_slack_app, create_socket_handler, register_handlers

    main_logger.info("Creating Slack app...")
    app = create_slack_app(config.slack)
    register_handlers(app, components.orchestrator)
    handler = create_socket_handler(app, config.slack)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, lambda: asyncio.create_task(handler.close_async()))

    main_logger.info("ClipMind is running on Slack! Press Ctrl+C to stop.")
    await handler.start_async()


async def _serve_console(orchestrator: Orchestrator) -> None:
    """Line-by-line chat on stdin/stdout, one session per run."""
    session_id = str(uuid.uuid4())
    print("ClipMind console. Type 'exit' to quit.")

    while True:
        line = await asyncio.to_thread(sys.stdin.readline)
        if not line:
            break
        message = line.strip()
        if message in ("exit", "quit"):
            break
        if not message:
            continue

        try:
            async for chunk in orchestrator.execute_stream("console", message, session_id):
                print(chunk, end="", flush=True)
        except ServiceUnavailableError as e:
            main_logger.warning(f"Service unavailable: {e}")
            print("Sorry, the assistant is temporarily unavailable.", end="")
        print()


async def _shutdown(components: Components) -> None:
    main_logger.info("Shutting down...")

    components.maintenance.stop()
    if components.mcp_client is not None:
        await components.mcp_client.close()

    main_logger.info("Shutdown complete")


def run():
    """
    Synchronous entry point.

    This is called when running with the `clipmind` command.
    """
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
