"""AI client that assembles a build's history and asks the LLM for an analysis."""

import json
import re
import uuid
from datetime import datetime, timezone

from ..logging_config import get_logger
from ..models import AnalysisRouting, StoredMessage
from ..storage import IConversationStore
from ..temporal import parse_timestamp
from .llm_provider import ILLMProvider

logger = get_logger(__name__)

DEFAULT_HISTORY_LIMIT = 100

_LEADING_FENCE = re.compile(r"^\s*```(?:json)?\s*", re.IGNORECASE)
_TRAILING_FENCE = re.compile(r"\s*```(?:json)?\s*$", re.IGNORECASE)


def clean_json_string(raw: str) -> str:
    """Strip Markdown code fences and keep the outermost JSON object."""
    cleaned = _TRAILING_FENCE.sub("", _LEADING_FENCE.sub("", raw)).strip()
    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start != -1 and end != -1 and start < end:
        cleaned = cleaned[start : end + 1]
    return cleaned


def event_time(message: StoredMessage) -> datetime:
    """The event's own timestamp, falling back to when it was stored."""
    try:
        content = json.loads(message.content)
    except ValueError:
        return message.created_at
    if isinstance(content, dict) and isinstance(content.get("timestamp"), str):
        parsed = parse_timestamp(content["timestamp"])
        if parsed is not None:
            return parsed
    return message.created_at


def order_chronologically(messages: list[StoredMessage]) -> list[StoredMessage]:
    """Sort by event timestamp; arrival order breaks ties."""
    indexed = list(enumerate(messages))
    indexed.sort(key=lambda item: (event_time(item[1]), item[1].sequence or 0, item[0]))
    return [message for _, message in indexed]


def build_turns(messages: list[StoredMessage]) -> list[dict]:
    """
    Convert stored messages into alternating LLM conversation turns.

    Consecutive messages of the same role are merged into one turn and any
    assistant turns before the first user turn are dropped.
    """
    turns: list[dict] = []
    for message in messages:
        if not turns and message.role != "user":
            continue
        if turns and turns[-1]["role"] == message.role:
            turns[-1]["content"] += "\n\n" + message.content
        else:
            turns.append({"role": message.role, "content": message.content})
    return turns


class AnalysisClient:
    """Routes an analysis prompt through the job's conversation history."""

    def __init__(
        self,
        llm_provider: ILLMProvider,
        store: IConversationStore,
        system_prompt: str | None = None,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        max_tokens: int = 4096,
    ):
        self._llm = llm_provider
        self._store = store
        self._system_prompt = system_prompt
        self._history_limit = history_limit
        self._max_tokens = max_tokens

    async def analyze(self, prompt: str, routing: AnalysisRouting) -> str:
        """Return analysis text for the prompt, using routing to pull history."""
        # 1. History of the job, in event order rather than arrival order
        history = await self._store.get_messages(
            routing.job_name, limit=self._history_limit
        )
        history = order_chronologically(history)
        logger.debug(
            "Fetched %s messages for %s#%s",
            len(history),
            routing.job_name,
            routing.build_number,
        )

        # 2. The request itself becomes part of the conversation
        request = StoredMessage(
            id=str(uuid.uuid4()),
            conversation_id=routing.job_name,
            build_number=routing.build_number,
            role="user",
            content=prompt,
            created_at=datetime.now(timezone.utc),
            metadata={"kind": "analysis_request"},
        )
        await self._store.append(routing.job_name, request)

        # 3. Ask the model
        response_text = await self._llm.complete(
            messages=build_turns([*history, request]),
            system=self._system_prompt,
            max_tokens=self._max_tokens,
        )

        # 4. Keep the answer next to the build's events
        await self._store.append(
            routing.job_name,
            StoredMessage(
                id=str(uuid.uuid4()),
                conversation_id=routing.job_name,
                build_number=routing.build_number,
                role="assistant",
                content=clean_json_string(response_text),
                created_at=datetime.now(timezone.utc),
                metadata={"kind": "analysis"},
            ),
        )

        return response_text
