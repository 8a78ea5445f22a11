"""Integration tests for API endpoints."""

from datetime import datetime, timedelta, timezone

import pytest
from httpx import ASGITransport, AsyncClient

from dialogue_engine.api.dependencies import get_engine_builder
from dialogue_engine.core.config import EngineConfig, settings
from dialogue_engine.domain.models.phase import Phase
from dialogue_engine.domain.models.quality import (
    QualityTurnMetadata,
    QualityTurnRecord,
    TurnQuality,
)
from dialogue_engine.main import app, validate_routing
from dialogue_engine.services.question_service import QuestionService
from dialogue_engine.services.token_usage_service import (
    TokenUsageService,
    get_token_usage_service,
)
from dialogue_engine.services.turn_service import DialogueEngine
from tests.helpers import scripted_client


@pytest.fixture
def usage_service():
    return TokenUsageService()


@pytest.fixture
def override_engine(usage_service):
    """Route turns through a scripted engine; returns a setter for the script."""
    scripts = {}

    def build(usage_collector=None):
        return DialogueEngine(
            QuestionService(scripts["client"], usage_collector=usage_collector),
            config=EngineConfig(),
        )

    def use(*payloads):
        scripts["client"] = scripted_client(*payloads)
        return scripts["client"]

    app.dependency_overrides[get_engine_builder] = lambda: build
    app.dependency_overrides[get_token_usage_service] = lambda: usage_service
    yield use
    app.dependency_overrides.clear()


@pytest.fixture
async def client(test_db):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as http:
        yield http


def _turn_body(state, plan, transcript=()):
    return {
        "state": state.model_dump(mode="json"),
        "plan": plan.model_dump(mode="json"),
        "transcript": [m.model_dump(mode="json") for m in transcript],
    }


class TestSystemEndpoints:
    async def test_root(self, client):
        response = await client.get("/")

        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "Interview Dialogue Engine"
        assert data["status"] == "running"
        assert "X-Request-ID" in response.headers

    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["components"]["database"]["status"] == "healthy"

    async def test_liveness_and_readiness(self, client):
        assert (await client.get("/health/live")).json() == {"status": "alive"}
        ready = await client.get("/health/ready")
        assert ready.status_code == 200
        assert ready.json() == {"status": "ready"}


class TestTurnEndpoint:
    async def test_produces_and_persists_turn(
        self, client, override_engine, italian_plan, new_state, quality_repo, usage_service
    ):
        override_engine({"question": "Come inserite oggi un nuovo fornitore?"})

        response = await client.post("/turns", json=_turn_body(new_state, italian_plan))

        assert response.status_code == 200
        data = response.json()
        assert data["assistant_text"] == "Come inserite oggi un nuovo fornitore?"
        assert data["new_phase"] == "EXPLORE"
        assert data["is_completed"] is False
        assert data["state"]["turn_count"] == 1
        assert data["quality"]["quality"]["passed"] is True
        assert data["usage"]["test-model"]["generate_question"]["calls"] == 1

        stored = await quality_repo.list_for_conversation("conv-1")
        assert len(stored) == 1
        assert stored[0].bot_id == "bot-a"
        assert stored[0].phase == "EXPLORE"
        assert stored[0].metadata.quality.score == 100

    async def test_completed_turn_clears_usage(
        self, client, override_engine, italian_plan, new_state, usage_service
    ):
        override_engine()
        state = new_state.model_copy(
            update={"phase": Phase.DATA_COLLECTION_CONSENT, "turn_count": 4}
        )
        body = _turn_body(state, italian_plan)
        body["transcript"] = [
            {"role": "assistant", "text": "Posso chiederti un contatto?"},
            {"role": "user", "text": "no grazie"},
        ]

        response = await client.post("/turns", json=body)

        data = response.json()
        assert data["is_completed"] is True
        assert data["new_phase"] == "COMPLETE_WITHOUT_DATA"
        assert data["quality"]["quality"]["eligible"] is False
        assert usage_service.get_conversation_usage("conv-1") is None

    async def test_completed_conversation_conflicts(
        self, client, override_engine, italian_plan, new_state
    ):
        override_engine()
        state = new_state.model_copy(update={"phase": Phase.FINAL_GOODBYE, "turn_count": 9})

        response = await client.post("/turns", json=_turn_body(state, italian_plan))

        assert response.status_code == 409
        assert response.json()["error"]["type"] == "SessionCompletedError"

    async def test_plan_without_topics_is_rejected(self, client, override_engine, new_state):
        override_engine()
        body = {
            "state": new_state.model_dump(mode="json"),
            "plan": {"language": "it", "topics": []},
            "transcript": [],
        }

        response = await client.post("/turns", json=body)

        assert response.status_code == 422

    async def test_state_outside_plan_is_bad_request(
        self, client, override_engine, english_plan, new_state
    ):
        override_engine()
        state = new_state.model_copy(
            update={"phase": Phase.DEEPEN, "topic_index": 3, "turn_count": 4}
        )

        response = await client.post("/turns", json=_turn_body(state, english_plan))

        assert response.status_code == 400
        assert response.json()["error"]["type"] == "InvalidPlanError"


class TestFieldValidationEndpoint:
    async def test_accepts_value(self, client):
        response = await client.post(
            "/fields/validate",
            json={
                "field_name": "email",
                "extracted_value": "mario@rossi.it",
                "confidence": "high",
                "attempt_number": 1,
            },
        )

        data = response.json()
        assert response.status_code == 200
        assert data["accepted"] is True
        assert data["strategy"] == "move_on"

    async def test_skips_after_last_attempt(self, client):
        response = await client.post(
            "/fields/validate",
            json={
                "field_name": "phone",
                "extracted_value": None,
                "confidence": "none",
                "attempt_number": 2,
                "language": "en",
            },
        )

        data = response.json()
        assert data["accepted"] is False
        assert data["should_skip"] is True
        assert data["strategy"] == "skip_field"


class TestQualityEndpoint:
    async def test_summary_over_stored_turns(self, client, quality_repo):
        now = datetime.now(timezone.utc)
        for i, passed in enumerate([True, True, False]):
            await quality_repo.save(
                QualityTurnRecord(
                    id=f"t{i}",
                    conversation_id="conv-1",
                    bot_id="bot-a",
                    created_at=now - timedelta(minutes=i + 1),
                    metadata=QualityTurnMetadata(
                        bot_id="bot-a",
                        quality=TurnQuality(
                            eligible=True,
                            evaluated=True,
                            passed=passed,
                            score=100 if passed else 50,
                        ),
                    ),
                )
            )

        response = await client.get("/quality/summary", params={"window_hours": 1})

        assert response.status_code == 200
        data = response.json()
        assert data["window_hours"] == 1
        assert data["current"]["evaluated_turns"] == 3
        assert data["current"]["pass_rate"] == pytest.approx(2 / 3)
        assert data["previous"]["assistant_turns"] == 0
        assert [a["id"] for a in data["alerts"]] == ["sample-too-small"]

    async def test_bot_filter(self, client, quality_repo):
        response = await client.get("/quality/summary", params={"bot_id": "bot-z"})

        assert response.json()["current"]["assistant_turns"] == 0


class TestStartupChecks:
    def test_routing_requires_a_key_per_task(self, monkeypatch):
        for provider in ("anthropic", "openai", "kimi", "deepseek"):
            monkeypatch.setattr(settings, f"{provider}_api_key", None)

        with pytest.raises(RuntimeError, match="question_generation"):
            validate_routing()

    def test_one_key_per_chain_is_enough(self, monkeypatch):
        for provider in ("anthropic", "kimi", "deepseek"):
            monkeypatch.setattr(settings, f"{provider}_api_key", None)
        monkeypatch.setattr(settings, "openai_api_key", "sk-test")

        validate_routing()
