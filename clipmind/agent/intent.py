"""
Intent Recognition
==================

Classifies a user utterance into one of twelve intent types.

Recognition runs in two layers:

    LLM classifier ──ok, confidence >= 0.7──► Intent
         │
         ├─ failed / timed out / bad JSON ──► rule-based Intent
         │
         └─ confidence < 0.7 ──► rule-based Intent, if it is more confident

The rule-based classifier is a keyword table checked in priority order.
Its confidences are fixed: 0.8 for the specific categories, 0.7 for
knowledge questions, 0.5 for the general-chat default.

Entities:
    Video identifiers (BV ids, falling back to long numeric ids) and URLs
    are extracted from the raw utterance and attached to every Intent,
    whichever layer produced it.
"""

import asyncio
import json
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from clipmind.errors import ClassificationError, LLMError
from clipmind.utils.logger import Logger

logger = Logger("Intent")


class IntentType(str, Enum):
    VIDEO_ANALYSIS = "video_analysis"
    RECOMMENDATION = "recommendation"
    KNOWLEDGE_QA = "knowledge_qa"
    WEEKLY_REPORT = "weekly_report"
    TOPIC_ANALYSIS = "topic_analysis"
    KNOWLEDGE_BASE = "knowledge_base"
    CONTENT_CREATION = "content_creation"
    USER_PROFILE = "user_profile"
    DANMAKU_ANALYSIS = "danmaku_analysis"
    TREND_TRACKING = "trend_tracking"
    COMPETITOR_ANALYSIS = "competitor_analysis"
    GENERAL_CHAT = "general_chat"

    @classmethod
    def parse(cls, value: Any) -> "IntentType":
        """Map a label to a type; anything unknown becomes GENERAL_CHAT."""
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.GENERAL_CHAT


@dataclass
class Entity:
    """A span of the utterance with a recognized meaning."""
    type: str
    value: str
    start: int
    end: int


@dataclass
class Intent:
    type: IntentType
    confidence: float
    raw_query: str
    entities: list[Entity] = field(default_factory=list)
    source: str = "llm"

    def entity(self, entity_type: str) -> str | None:
        """Value of the first entity of a type, if any."""
        for entity in self.entities:
            if entity.type == entity_type:
                return entity.value
        return None

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "confidence": self.confidence,
            "raw_query": self.raw_query,
            "entities": [vars(e) for e in self.entities],
            "source": self.source,
        }


# ==============================================================================
# Entity extraction
# ==============================================================================

BV_PATTERN = re.compile(r"[Bb][Vv][A-Za-z0-9]{10}")
NUMERIC_ID_PATTERN = re.compile(r"\d{8,}")
URL_PATTERN = re.compile(r"https?://\S+")


def extract_video_id(text: str) -> str | None:
    """
    Find a video identifier in free text.

    A BV id wins and is normalized to an upper-case "BV" prefix; otherwise
    the first run of 8 or more digits is used.

    Example:
        extract_video_id("analyze bv1234567890 please")  # "BV1234567890"
        extract_video_id("av id 170001234")              # "170001234"
    """
    match = BV_PATTERN.search(text)
    if match:
        return "BV" + match.group(0)[2:]

    match = NUMERIC_ID_PATTERN.search(text)
    if match:
        return match.group(0)

    return None


def extract_entities(text: str) -> list[Entity]:
    entities = []

    match = BV_PATTERN.search(text)
    if match:
        entities.append(Entity(
            type="video_id",
            value="BV" + match.group(0)[2:],
            start=match.start(),
            end=match.end(),
        ))
    else:
        match = NUMERIC_ID_PATTERN.search(text)
        if match:
            entities.append(Entity("video_id", match.group(0), match.start(), match.end()))

    for match in URL_PATTERN.finditer(text):
        entities.append(Entity("url", match.group(0), match.start(), match.end()))

    return entities


# ==============================================================================
# Rule-based classification
# ==============================================================================

# Checked top to bottom; the first category with a matching keyword wins
KEYWORD_RULES: list[tuple[IntentType, float, tuple[str, ...]]] = [
    (IntentType.VIDEO_ANALYSIS, 0.8, (
        "分析视频", "视频分析", "这个视频", "视频内容", "视频讲了", "视频总结",
        "analyze video", "analyse video", "analyze this video", "video analysis",
        "this video", "video summary",
    )),
    (IntentType.RECOMMENDATION, 0.8, (
        "推荐", "类似", "相似", "想看", "找一找",
        "recommend", "similar", "suggest some",
    )),
    (IntentType.WEEKLY_REPORT, 0.8, (
        "周报", "这周", "本周数据", "数据分析", "我的数据",
        "weekly report", "this week", "my data", "my stats",
    )),
    (IntentType.TOPIC_ANALYSIS, 0.8, (
        "选题", "主题", "这个题材", "内容方向",
        "topic", "content direction",
    )),
    (IntentType.KNOWLEDGE_QA, 0.7, (
        "什么是", "怎么", "如何", "为什么", "介绍一下",
        "what is", "how to", "how do", "why ", "explain",
    )),
]

DEFAULT_RULE_CONFIDENCE = 0.5


def rule_based_classify(query: str) -> Intent:
    """Keyword classification over the lower-cased utterance."""
    lowered = query.lower()
    entities = extract_entities(query)

    for intent_type, confidence, keywords in KEYWORD_RULES:
        if any(keyword in lowered for keyword in keywords):
            return Intent(intent_type, confidence, query, entities, source="rules")

    return Intent(IntentType.GENERAL_CHAT, DEFAULT_RULE_CONFIDENCE, query, entities, source="rules")


# ==============================================================================
# LLM classification
# ==============================================================================

SYSTEM_PROMPT = (
    "You are the intent classifier of a video-platform creator assistant. "
    "Answer with JSON only."
)

CLASSIFY_PROMPT = """Classify the user's message into exactly one intent type.

User message: "{query}"

Intent types:
1. video_analysis - analyze a specific video ("analyze this video", "what is this video about")
2. recommendation - recommend videos ("recommend similar videos")
3. knowledge_qa - general knowledge questions ("what is X", "how do I X")
4. weekly_report - the creator's weekly data ("show my weekly report", "how did this week go")
5. topic_analysis - evaluate a content topic ("is this topic good")
6. knowledge_base - manage or search the knowledge base ("search my documents")
7. content_creation - write titles, scripts or copy ("write a title for me")
8. user_profile - the user's interests and preferences ("what am I interested in")
9. danmaku_analysis - analyze bullet comments and audience reaction
10. trend_tracking - current hot topics and trends
11. competitor_analysis - compare against other channels
12. general_chat - greetings, thanks, small talk

Return JSON in this format:
{{"type": "<intent type>", "confidence": 0.95}}"""


def extract_json_object(text: str) -> dict:
    """
    Parse the outermost {...} in an LLM reply.

    Models often wrap JSON in prose or ```json fences.

    Raises:
        ValueError: If no object can be parsed
    """
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        raise ValueError("no JSON object in model output")

    parsed = json.loads(text[start:end + 1])
    if not isinstance(parsed, dict):
        raise ValueError("model output is not a JSON object")
    return parsed


class IntentClassifier:
    """
    LLM intent classifier with a keyword fallback.

    Example:
        classifier = IntentClassifier(llm, timeout=10)
        intent = await classifier.recognize("分析视频 BV1234567890")
        intent.type        # IntentType.VIDEO_ANALYSIS
        intent.entity("video_id")  # "BV1234567890"
    """

    def __init__(self, llm, timeout: float = 10.0, confidence_threshold: float = 0.7):
        """
        Args:
            llm: LLMClient (anything with `async generate(messages, timeout)`)
            timeout: Seconds allowed for the LLM call
            confidence_threshold: Below this, the keyword result may override
        """
        self.llm = llm
        self.timeout = timeout
        self.confidence_threshold = confidence_threshold

    async def recognize(self, query: str) -> Intent:
        """Classify an utterance. Never raises for LLM problems."""
        try:
            intent = await self._classify_with_llm(query)
        except ClassificationError as e:
            logger.warning(f"LLM classification unavailable, using keyword rules: {e}")
            return rule_based_classify(query)

        if intent.confidence < self.confidence_threshold:
            rule_intent = rule_based_classify(query)
            if rule_intent.confidence > intent.confidence:
                logger.debug(
                    f"Keyword rules override low-confidence LLM intent "
                    f"{intent.type.value} ({intent.confidence:.2f})"
                )
                return rule_intent

        return intent

    async def _classify_with_llm(self, query: str) -> Intent:
        """
        Raises:
            ClassificationError: LLM failure, timeout, or unusable output
        """
        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": CLASSIFY_PROMPT.format(query=query)},
        ]

        try:
            response = await asyncio.wait_for(
                self.llm.generate(messages, timeout=self.timeout),
                timeout=self.timeout,
            )
        except (LLMError, asyncio.TimeoutError) as e:
            raise ClassificationError(str(e) or type(e).__name__) from e

        try:
            parsed = extract_json_object(response)
            confidence = float(parsed.get("confidence", 0.0))
        except (ValueError, TypeError) as e:
            raise ClassificationError(f"unparsable classification: {e}") from e

        return Intent(
            type=IntentType.parse(parsed.get("type")),
            confidence=min(max(confidence, 0.0), 1.0),
            raw_query=query,
            entities=extract_entities(query),
            source="llm",
        )
