"""Tests for structured-output parsing and usage reporting."""

import pytest
from pydantic import BaseModel

from dialogue_engine.core.exceptions import LLMResponseParseError
from dialogue_engine.llm.structured import generate_structured, parse_json_object
from tests.helpers import scripted_client


class _Answer(BaseModel):
    question: str


class TestParseJsonObject:
    def test_plain_object(self):
        assert parse_json_object('{"question": "Come va?"}') == {"question": "Come va?"}

    def test_code_fences(self):
        assert parse_json_object('```json\n{"a": 1}\n```') == {"a": 1}

    def test_prose_and_trailing_comma(self):
        assert parse_json_object('Here it is: {"a": 1,} hope it helps') == {"a": 1}

    def test_no_object(self):
        with pytest.raises(LLMResponseParseError):
            parse_json_object("I cannot help with that")

    def test_array_is_rejected(self):
        with pytest.raises(LLMResponseParseError):
            parse_json_object("[1, 2]")


class TestGenerateStructured:
    async def test_returns_validated_output_and_reports_usage(self):
        client = scripted_client({"question": "Come va?"}, model="gpt-4o-mini")
        events = []

        output, response = await generate_structured(
            client, "Ask something", _Answer, source="generate_question",
            usage_collector=events.append,
        )

        assert output.question == "Come va?"
        assert response.model == "gpt-4o-mini"
        assert len(events) == 1
        assert events[0].source == "generate_question"
        assert events[0].usage == {"input_tokens": 100, "output_tokens": 20, "total_tokens": 120}
        prompt = client.complete.call_args.kwargs["prompt"]
        assert prompt.startswith("Ask something")
        assert '"question": ...' in prompt

    async def test_usage_reported_even_when_shape_is_wrong(self):
        client = scripted_client({"text": "Come va?"})
        events = []

        with pytest.raises(LLMResponseParseError):
            await generate_structured(
                client, "Ask", _Answer, source="generate_question",
                usage_collector=events.append,
            )

        assert len(events) == 1
