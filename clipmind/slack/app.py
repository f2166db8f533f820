"""
Slack Bolt App
==============

Optional chat front-end for ClipMind.

The app connects through Socket Mode, so no public URL is needed; it is
only started when both SLACK_BOT_TOKEN and SLACK_APP_TOKEN are set.
"""

from slack_bolt.adapter.socket_mode.async_handler import AsyncSocketModeHandler
from slack_bolt.async_app import AsyncApp

from clipmind.utils.config import SlackConfig
from clipmind.utils.logger import Logger

logger = Logger("SlackApp")


def create_slack_app(config: SlackConfig) -> AsyncApp:
    """
    Create the Bolt app.

    Raises:
        ValueError: If the Slack tokens are not configured
    """
    if not config.enabled:
        raise ValueError("SLACK_BOT_TOKEN and SLACK_APP_TOKEN are required for Slack")

    app = AsyncApp(
        token=config.bot_token,
        signing_secret=config.signing_secret,
    )

    logger.info("Slack Bolt app created")
    return app


def create_socket_handler(app: AsyncApp, config: SlackConfig) -> AsyncSocketModeHandler:
    """Socket Mode handler that feeds Slack events into `app`."""
    handler = AsyncSocketModeHandler(app=app, app_token=config.app_token)
    logger.info("Socket Mode handler created")
    return handler
