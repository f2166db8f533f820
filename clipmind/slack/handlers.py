"""
Slack Event Handlers
====================

Routes Slack events to the Orchestrator.

Event Types:
- app_mention: Someone mentions @ClipMind in a channel
- message.im: Direct messages to the bot
- /clipmind: Slash command for help, status, history and clearing

Sessions:
    A channel thread is one session (`<channel>:<thread_ts>`); a DM
    conversation outside threads is one session (`<channel>`). The same
    ids are used by `/clipmind history` and `/clipmind clear`.

Error Handling:
    ServiceUnavailableError gets a polite "try again later"; anything
    else is logged and answered with a generic apology.
"""

import re
from typing import TYPE_CHECKING

from slack_bolt.async_app import AsyncAck, AsyncApp, AsyncSay
from slack_sdk.errors import SlackApiError
from slack_sdk.web.async_client import AsyncWebClient

from clipmind.errors import ServiceUnavailableError
from clipmind.utils.logger import Logger

if TYPE_CHECKING:
    from clipmind.agent import Orchestrator

logger = Logger("Handlers")

MENTION_PATTERN = re.compile(r"<@[A-Z0-9]+>")

UNAVAILABLE_TEXT = "Sorry, the assistant is temporarily unavailable. Please try again later."
ERROR_TEXT = "Sorry, I encountered an error processing your request."

HELP_TEXT = """*ClipMind* - Your video creator assistant

*Commands:*
- `/clipmind help` - Show this help message
- `/clipmind status` - Check bot status
- `/clipmind history` - Show the latest turns of this conversation
- `/clipmind clear` - Forget this conversation

*Examples:*
- "分析视频 BV1234567890"
- "Recommend some videos about home cooking"
- "Write this week's channel report"
"""


def session_id_for(channel_id: str, thread_ts: str | None = None) -> str:
    """Session id of a Slack conversation."""
    if thread_ts:
        return f"{channel_id}:{thread_ts}"
    return channel_id


def strip_mentions(text: str) -> str:
    return MENTION_PATTERN.sub("", text).strip()


async def answer(orchestrator: "Orchestrator", user_id: str, text: str, session_id: str) -> str:
    """Run the pipeline and turn failures into a user-facing message."""
    try:
        output = await orchestrator.execute(user_id, text, session_id=session_id)
    except ServiceUnavailableError as e:
        logger.warning(f"Service unavailable for {session_id}: {e}")
        return UNAVAILABLE_TEXT
    except Exception as e:
        logger.error(f"Error answering {session_id}", e)
        return ERROR_TEXT
    return output.reply


def format_history(orchestrator: "Orchestrator", session_id: str, limit: int = 10) -> str:
    entries = orchestrator.get_history(session_id, limit)
    if not entries:
        return "No conversation history yet."

    lines = ["*Recent conversation:*"]
    for entry in entries:
        content = entry.content if len(entry.content) <= 200 else entry.content[:200] + "..."
        lines.append(f"- *{entry.role}*: {content}")
    return "\n".join(lines)


def format_status(orchestrator: "Orchestrator") -> str:
    return f"""*Bot Status*
- Status: Online
- Tools available: {len(orchestrator.catalog.list_names())}
- Model: {orchestrator.llm.model}
- Active sessions: {len(orchestrator.memory.sessions())}"""


def register_handlers(app: AsyncApp, orchestrator: "Orchestrator") -> None:
    """
    Register all event handlers with the Slack app.

    Args:
        app: The Bolt app instance
        orchestrator: Pipeline that answers every message
    """

    async def handle_mention(event: dict, say: AsyncSay) -> None:
        user_id = event.get("user")
        channel_id = event.get("channel")
        thread_ts = event.get("thread_ts") or event.get("ts")
        text = strip_mentions(event.get("text", ""))

        if not text:
            await say(
                text="Hi! Ask me to analyze a video, e.g. `分析视频 BV1234567890`.",
                thread_ts=thread_ts,
            )
            return

        logger.info(f"Mention from {user_id} in {channel_id}: {text[:50]}...")
        reply = await answer(orchestrator, user_id, text, session_id_for(channel_id, thread_ts))
        await say(text=reply, thread_ts=thread_ts)

    async def handle_message(event: dict, say: AsyncSay, client: AsyncWebClient) -> None:
        # DMs only; bot messages and edits/deletes are ignored
        if event.get("channel_type") != "im":
            return
        if event.get("bot_id") or event.get("subtype"):
            return

        text = event.get("text", "").strip()
        if not text:
            return

        user_id = event.get("user")
        channel_id = event.get("channel")
        thread_ts = event.get("thread_ts")

        logger.info(f"DM from {user_id}: {text[:50]}...")
        try:
            await client.conversations_mark(channel=channel_id, ts=event.get("ts"))
        except SlackApiError as e:
            # Needs the im:write scope
            logger.debug(f"Could not mark DM read: {e.response.get('error')}")

        reply = await answer(orchestrator, user_id, text, session_id_for(channel_id, thread_ts))
        if thread_ts:
            await say(text=reply, thread_ts=thread_ts)
        else:
            await say(text=reply)

    async def handle_command(ack: AsyncAck, command: dict, say: AsyncSay) -> None:
        # Slack wants the ack within 3 seconds
        await ack()

        text = command.get("text", "").strip().lower()
        session_id = session_id_for(command.get("channel_id", ""))

        if text == "help" or not text:
            await say(text=HELP_TEXT)
        elif text == "status":
            await say(text=format_status(orchestrator))
        elif text == "history":
            await say(text=format_history(orchestrator, session_id))
        elif text == "clear":
            orchestrator.clear_session(session_id)
            await say(text="Conversation history cleared! Starting fresh.")
        else:
            await say(text=f"Unknown command: `{text}`. Try `/clipmind help`")

    app.event("app_mention")(handle_mention)
    app.event("message")(handle_message)
    app.command("/clipmind")(handle_command)

    logger.info("Registered Slack event handlers")
