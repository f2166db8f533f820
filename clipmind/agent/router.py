"""
Router
======

Maps an intent type to the pipeline branch that handles it.

    knowledge        knowledge questions, grounded by tools, knowledge prompt
    tool_augmented   everything that needs platform data from tools
    general_chat     small talk, answered directly by the LLM

The table is total: any intent without an entry goes to general_chat.
"""

from clipmind.agent.intent import IntentType

BRANCH_KNOWLEDGE = "knowledge"
BRANCH_TOOL_AUGMENTED = "tool_augmented"
BRANCH_GENERAL_CHAT = "general_chat"

ROUTES: dict[IntentType, str] = {
    IntentType.KNOWLEDGE_QA: BRANCH_KNOWLEDGE,
    IntentType.KNOWLEDGE_BASE: BRANCH_KNOWLEDGE,
    IntentType.VIDEO_ANALYSIS: BRANCH_TOOL_AUGMENTED,
    IntentType.CONTENT_CREATION: BRANCH_TOOL_AUGMENTED,
    IntentType.WEEKLY_REPORT: BRANCH_TOOL_AUGMENTED,
    IntentType.TOPIC_ANALYSIS: BRANCH_TOOL_AUGMENTED,
    IntentType.DANMAKU_ANALYSIS: BRANCH_TOOL_AUGMENTED,
    IntentType.COMPETITOR_ANALYSIS: BRANCH_TOOL_AUGMENTED,
    IntentType.TREND_TRACKING: BRANCH_TOOL_AUGMENTED,
    IntentType.RECOMMENDATION: BRANCH_TOOL_AUGMENTED,
    IntentType.USER_PROFILE: BRANCH_TOOL_AUGMENTED,
    IntentType.GENERAL_CHAT: BRANCH_GENERAL_CHAT,
}


def route(intent_type: IntentType | str) -> str:
    """Branch name for an intent type (or its string label)."""
    if not isinstance(intent_type, IntentType):
        intent_type = IntentType.parse(intent_type)
    return ROUTES.get(intent_type, BRANCH_GENERAL_CHAT)


def uses_tools(branch: str) -> bool:
    return branch in (BRANCH_KNOWLEDGE, BRANCH_TOOL_AUGMENTED)
