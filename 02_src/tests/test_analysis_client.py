"""Tests for AnalysisClient."""

import json
from datetime import datetime, timedelta, timezone

from ci_anomaly.llm import AnalysisClient, build_turns, clean_json_string, order_chronologically
from ci_anomaly.models import AnalysisRouting, StoredMessage

ROUTING = AnalysisRouting("payments-service", 42)
STORED_AT = datetime(2025, 3, 14, 12, 0, tzinfo=timezone.utc)


def stored(
    content: str,
    role: str = "user",
    sequence: int = 0,
    created_at: datetime = STORED_AT,
) -> StoredMessage:
    return StoredMessage(
        id="",
        conversation_id="payments-service",
        build_number=42,
        role=role,
        content=content,
        created_at=created_at,
        sequence=sequence,
    )


def event_json(timestamp: str, event_type: str = "build_log_data") -> str:
    return json.dumps({"type": event_type, "timestamp": timestamp, "job_name": "payments-service"})


class TestCleanJsonString:
    """Tests for clean_json_string()."""

    def test_strips_json_fence(self):
        """Test that a ```json fence is removed."""
        assert clean_json_string('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_strips_bare_fence(self):
        """Test that a plain ``` fence is removed."""
        assert clean_json_string('```\n{"a": 1}\n```') == '{"a": 1}'

    def test_keeps_outermost_object(self):
        """Test that prose around the object is dropped."""
        assert clean_json_string('Result: {"a": {"b": 2}} done') == '{"a": {"b": 2}}'

    def test_text_without_object_is_trimmed_only(self):
        """Test that non-object text is returned as-is."""
        assert clean_json_string("  no json here ") == "no json here"


class TestOrdering:
    """Tests for chronological ordering of history."""

    def test_orders_by_event_timestamp(self):
        """Test that events are sorted by their own timestamp, not arrival."""
        late = stored(event_json("2025-03-14T11:59:50Z"), sequence=1)
        early = stored(event_json("2025-03-14T11:59:40Z"), sequence=2)

        assert order_chronologically([late, early]) == [early, late]

    def test_mixed_offsets_compare_as_instants(self):
        """Test that offset timestamps are compared in absolute time."""
        utc = stored(event_json("2025-03-14T11:59:50Z"), sequence=1)
        local = stored(event_json("2025-03-14T14:59:45+03:00"), sequence=2)

        assert order_chronologically([utc, local]) == [local, utc]

    def test_arrival_order_breaks_ties(self):
        """Test that equal timestamps keep arrival order."""
        first = stored(event_json("2025-03-14T11:59:50Z"), sequence=1)
        second = stored(event_json("2025-03-14T11:59:50Z"), sequence=2)

        assert order_chronologically([second, first]) == [first, second]

    def test_messages_without_timestamp_use_store_time(self):
        """Test that prompts and analyses fall back to created_at."""
        analysis = stored(
            '{"summary": "ok"}',
            role="assistant",
            sequence=1,
            created_at=STORED_AT - timedelta(hours=1),
        )
        event = stored(event_json("2025-03-14T11:59:50Z"), sequence=2)

        assert order_chronologically([event, analysis]) == [analysis, event]

    def test_non_json_content_uses_store_time(self):
        """Test that plain text content does not break ordering."""
        text = stored("free text", sequence=1, created_at=STORED_AT - timedelta(minutes=5))
        event = stored(event_json("2025-03-14T11:59:50Z"), sequence=2)

        assert order_chronologically([event, text]) == [text, event]


class TestBuildTurns:
    """Tests for build_turns()."""

    def test_merges_consecutive_roles(self):
        """Test that same-role neighbours are merged into one turn."""
        turns = build_turns(
            [stored("a"), stored("b"), stored("c", role="assistant"), stored("d")]
        )

        assert turns == [
            {"role": "user", "content": "a\n\nb"},
            {"role": "assistant", "content": "c"},
            {"role": "user", "content": "d"},
        ]

    def test_drops_leading_assistant_turns(self):
        """Test that the conversation always starts with a user turn."""
        turns = build_turns([stored("old analysis", role="assistant"), stored("event")])

        assert turns == [{"role": "user", "content": "event"}]

    def test_empty_history(self):
        """Test that no messages produce no turns."""
        assert build_turns([]) == []


class TestAnalysisClientAnalyze:
    """Tests for AnalysisClient.analyze()."""

    async def test_returns_raw_response(self, storage, mock_llm):
        """Test that the LLM text is returned unchanged."""
        mock_llm.complete.return_value = '```json\n{"summary": "ok"}\n```'
        client = AnalysisClient(mock_llm, storage, system_prompt="system")

        result = await client.analyze("analyse build 42", ROUTING)

        assert result == '```json\n{"summary": "ok"}\n```'

    async def test_sends_history_and_prompt(self, storage, mock_llm):
        """Test that stored events precede the prompt in one user turn."""
        await storage.append("payments-service", stored(event_json("2025-03-14T11:59:50Z")))
        client = AnalysisClient(mock_llm, storage, system_prompt="system")

        await client.analyze("analyse build 42", ROUTING)

        kwargs = mock_llm.complete.await_args.kwargs
        assert kwargs["system"] == "system"
        assert len(kwargs["messages"]) == 1
        content = kwargs["messages"][0]["content"]
        assert content.startswith('{"type": "build_log_data"')
        assert content.endswith("analyse build 42")

    async def test_persists_prompt_and_cleaned_response(self, storage, mock_llm):
        """Test that the request and the cleaned answer join the job's log."""
        mock_llm.complete.return_value = 'Sure! ```json\n{"summary": "ok"}\n```'
        client = AnalysisClient(mock_llm, storage)

        await client.analyze("analyse build 42", ROUTING)

        messages = await storage.get_messages("payments-service")
        assert [m.role for m in messages] == ["user", "assistant"]
        assert messages[0].content == "analyse build 42"
        assert messages[0].event_type is None
        assert messages[0].metadata["build_number"] == 42
        assert messages[1].content == '{"summary": "ok"}'

    async def test_history_is_limited(self, storage, mock_llm):
        """Test that only the newest history_limit messages are sent."""
        for i in range(5):
            await storage.append(
                "payments-service",
                stored(f"event {i}", sequence=0, created_at=STORED_AT + timedelta(seconds=i)),
            )
        client = AnalysisClient(mock_llm, storage, history_limit=2)

        await client.analyze("prompt", ROUTING)

        content = mock_llm.complete.await_args.kwargs["messages"][0]["content"]
        assert content == "event 3\n\nevent 4\n\nprompt"

    async def test_previous_analysis_becomes_assistant_turn(self, storage, mock_llm):
        """Test that an earlier analysis is replayed as an assistant turn."""
        client = AnalysisClient(mock_llm, storage)
        await client.analyze("first", ROUTING)
        await client.analyze("second", AnalysisRouting("payments-service", 43))

        roles = [t["role"] for t in mock_llm.complete.await_args.kwargs["messages"]]
        assert roles == ["user", "assistant", "user"]
