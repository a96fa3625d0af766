"""LLM-backed judgments about what is worth remembering."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Sequence

from groq import AsyncGroq

from .errors import ClassificationError
from .models import CacheEntry, Category, ExtractedFact, ImportanceJudgment

logger = logging.getLogger(__name__)

BATCH_SEPARATOR = "|"

IMPORTANCE_PROMPT = """Decide whether the current message contains information worth storing right away.

Important:
- Tasks, todos, reminders
- Deadlines, appointments, scheduled events
- Facts about the user (birthday, preferences, relationships)
- Decisions or commitments
- Anything the user explicitly asks to remember

Not important:
- Small talk and greetings
- Jokes, memes, sarcasm
- Hypothetical discussions
- General knowledge questions

Return ONLY valid JSON:
{"important": <bool>, "reason": "<short reason>", "category": "fact|event|todo|reminder|none"}"""

EXTRACTION_PROMPT = """Extract the facts stated in the current message, using the context to resolve references.

Rules:
1. Only information that is EXPLICITLY stated
2. Do not infer, assume or invent plausible facts
3. Skip jokes, sarcasm and hypotheticals
4. When in doubt, leave it out

Categories:
- "fact": time-irrelevant (preferences, attributes, relationships)
- "event": something that happened or happens on a specific date
- "todo": a task to complete
- "reminder": a future notification

Return ONLY valid JSON:
{"facts": [{"text": "<fact>", "category": "<category>", "confidence": <0..1>}]}
If there is nothing to extract, return {"facts": []}"""

BATCH_PROMPT = f"""Extract the important information from these conversations.

Rules:
1. Only information that is EXPLICITLY stated
2. Do not infer or assume
3. Skip jokes and sarcasm
4. Every chunk must be self-contained and factual
5. Separate unrelated topics with {BATCH_SEPARATOR}

Output only the memory chunks separated by {BATCH_SEPARATOR}."""

CATEGORIZE_PROMPT = """Split the information into time-relevant and time-irrelevant items.

Time-relevant: events on specific dates, scheduled events, deadlines, time-based patterns.
Time-irrelevant: preferences, likes and dislikes, personality, relationships, skills, interests.

Return ONLY valid JSON:
{"time_relevant": [{"text": "<item>", "date": "<date>", "type": "event|todo|pattern"}],
 "time_irrelevant": [{"text": "<item>"}]}"""

REFORMULATE_PROMPT = (
    "Rewrite the query so it works well for searching stored memories. "
    "Keep it concise. Return only the rewritten query, nothing else."
)


@dataclass
class CategorizedMemories:
    """Information split by whether time matters for it."""

    time_relevant: list[dict[str, str]] = field(default_factory=list)
    time_irrelevant: list[dict[str, str]] = field(default_factory=list)


def format_context(entries: Sequence[CacheEntry]) -> str:
    """Render cached turns as 'author: content' lines."""
    return "\n".join(f"{e.turn.author}: {e.content}" for e in entries)


def parse_batch_chunks(raw: str, min_length: int = 20) -> list[str]:
    """Split a batch extraction into memory chunks.

    Chunks are separated by '|', trimmed, and dropped as noise when
    shorter than ``min_length`` characters.
    """
    chunks = (chunk.strip() for chunk in (raw or "").split(BATCH_SEPARATOR))
    return [chunk for chunk in chunks if len(chunk) >= min_length]


def parse_json_response(content: str) -> dict[str, Any]:
    """Parse a JSON object out of an LLM response.

    The LLM might wrap it in a markdown code block.

    Raises:
        ValueError: If there is no JSON object in the response.
    """
    json_str = content.strip()
    if json_str.startswith("```"):
        lines = [line for line in json_str.split("\n") if not line.startswith("```")]
        json_str = "\n".join(lines)

    data = json.loads(json_str)
    if not isinstance(data, dict):
        raise ValueError("Response is not a JSON object")
    return data


class MemoryClassifier:
    """Classifies and extracts memories from conversation text using an LLM.

    Every method except ``extract_batch`` is fail-soft: on any error it
    logs a warning and returns a neutral answer (not important, nothing
    extracted, the raw query).
    """

    def __init__(
        self,
        llm_client: AsyncGroq,
        model: str = "llama-3.1-70b-versatile",
    ) -> None:
        """Initialize the classifier.

        Args:
            llm_client: The Groq client for LLM calls.
            model: The model to use.
        """
        self.client = llm_client
        self.model = model

    async def _complete(
        self,
        system: str,
        user: str,
        temperature: float,
        json_mode: bool = False,
        max_tokens: int | None = None,
    ) -> str:
        kwargs: dict[str, Any] = {}
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        if max_tokens is not None:
            kwargs["max_tokens"] = max_tokens

        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            temperature=temperature,
            **kwargs,
        )
        return response.choices[0].message.content or ""

    async def detect_importance(
        self, text: str, context: Sequence[CacheEntry]
    ) -> ImportanceJudgment:
        """Judge whether a message should be stored immediately.

        Args:
            text: The current message.
            context: Recent turns preceding it.

        Returns:
            The judgment; not important on any error.
        """
        try:
            content = await self._complete(
                IMPORTANCE_PROMPT,
                f"Context:\n{format_context(context)}\n\nCurrent message:\n{text}",
                temperature=0.2,
                json_mode=True,
            )
            data = parse_json_response(content)
            return ImportanceJudgment(
                important=bool(data.get("important", False)),
                category=Category.parse(data.get("category")),
                reason=str(data.get("reason", "")),
            )
        except Exception as e:
            logger.warning(f"Importance detection failed: {e}")
            return ImportanceJudgment(important=False, category=Category.NONE, reason="error")

    async def extract_facts(
        self, text: str, context: Sequence[CacheEntry]
    ) -> list[ExtractedFact]:
        """Extract categorized facts from a message.

        Args:
            text: The current message.
            context: Recent turns preceding it.

        Returns:
            Extracted facts, empty if none found or on error.
        """
        try:
            content = await self._complete(
                EXTRACTION_PROMPT,
                f"Context:\n{format_context(context)}\n\nCurrent message:\n{text}",
                temperature=0.1,
                json_mode=True,
            )
            data = parse_json_response(content)
        except Exception as e:
            logger.warning(f"Fact extraction failed: {e}")
            return []

        items = data.get("facts")
        if not isinstance(items, list):
            logger.warning("Invalid response structure: missing 'facts' list")
            return []

        facts = []
        for item in items:
            if not isinstance(item, dict) or not str(item.get("text", "")).strip():
                logger.warning(f"Skipping invalid fact item: {item}")
                continue
            try:
                confidence = float(item.get("confidence", 0.0))
            except (TypeError, ValueError):
                confidence = 0.0
            facts.append(
                ExtractedFact(
                    text=str(item["text"]).strip(),
                    category=Category.parse(item.get("category")),
                    confidence=confidence,
                )
            )
        return facts

    async def extract_batch(self, text: str) -> str:
        """Summarize a batch of conversation into '|'-separated memory chunks.

        Args:
            text: The concatenated conversation.

        Returns:
            The raw delimited response.

        Raises:
            ClassificationError: If the LLM call fails.
        """
        try:
            content = await self._complete(
                BATCH_PROMPT, text, temperature=0.1, max_tokens=2000
            )
        except Exception as e:
            raise ClassificationError(f"Batch extraction failed: {e}") from e
        return content.strip()

    async def categorize_memories(self, text: str) -> CategorizedMemories:
        """Split text into time-relevant and time-irrelevant items.

        Not used by the memory pipeline, which routes items through
        ``extract_facts``; kept as collaborator API for callers that want a
        coarse split. Returns empty lists on failure.
        """
        try:
            content = await self._complete(
                CATEGORIZE_PROMPT, text, temperature=0.1, json_mode=True
            )
            data = parse_json_response(content)
        except Exception as e:
            logger.warning(f"Memory categorization failed: {e}")
            return CategorizedMemories()

        def _items(key: str) -> list[dict[str, str]]:
            raw = data.get(key)
            if not isinstance(raw, list):
                return []
            return [
                {k: str(v) for k, v in item.items()}
                for item in raw
                if isinstance(item, dict) and item.get("text")
            ]

        return CategorizedMemories(
            time_relevant=_items("time_relevant"),
            time_irrelevant=_items("time_irrelevant"),
        )

    async def reformulate_query(self, query: str, context: Sequence[CacheEntry]) -> str:
        """Rewrite a query for memory search using recent context.

        Without context, or on error, the query is returned unchanged.
        """
        if not context:
            return query

        try:
            content = await self._complete(
                REFORMULATE_PROMPT,
                f"Context:\n{format_context(context)}\n\nQuery: {query}",
                temperature=0.3,
                max_tokens=100,
            )
        except Exception as e:
            logger.warning(f"Query reformulation failed: {e}")
            return query

        return content.strip() or query
