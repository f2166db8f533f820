"""
Slack Integration
=================

Optional Slack front-end:
- Bolt app and Socket Mode handler
- Event handlers (mentions, DMs, /clipmind command)
"""

from clipmind.slack.app import create_slack_app, create_socket_handler
from clipmind.slack.handlers import register_handlers

__all__ = ["create_slack_app", "create_socket_handler", "register_handlers"]
