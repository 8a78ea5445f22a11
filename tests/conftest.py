"""
Shared test fixtures.

LLM access is always replaced by AsyncMock clients returning scripted
JSON bodies; nothing here talks to a provider.
"""

import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest

from dialogue_engine.domain.models.conversation import ConversationState
from dialogue_engine.domain.models.plan import CandidateField, InterviewPlan, Topic
from dialogue_engine.persistence.database import init_database
from dialogue_engine.persistence.repositories.quality_turn_repo import QualityTurnRepository


@pytest.fixture
async def test_db():
    """Create and initialize test database."""
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = Path(tmpdir) / "test.db"
        await init_database(db_path)

        from dialogue_engine.core import config

        original_path = config.settings.database_path
        config.settings.database_path = db_path

        with patch("dialogue_engine.persistence.database.settings", config.settings):
            yield db_path

        config.settings.database_path = original_path


@pytest.fixture
async def quality_repo(test_db):
    """Quality turn repository on the test database."""
    return QualityTurnRepository(str(test_db))


@pytest.fixture
def italian_plan():
    """Two-topic Italian plan with email/phone collection."""
    return InterviewPlan(
        language="it",
        max_duration_minutes=10,
        topics=[
            Topic(
                label="Onboarding Fornitori",
                cue="il modo in cui inserite nuovi fornitori",
                sub_goals=["tempi", "ostacoli"],
                max_turns=2,
            ),
            Topic(
                label="Strumenti Digitali",
                cue="gli strumenti digitali che usate ogni giorno",
                max_turns=2,
            ),
        ],
        candidate_fields=[
            CandidateField(name="email"),
            CandidateField(name="phone", required=False),
        ],
        extension_preview_hints=["i ritardi nei pagamenti"],
    )


@pytest.fixture
def english_plan():
    """Single-topic English plan without data collection."""
    return InterviewPlan(
        language="en",
        max_duration_minutes=5,
        topics=[
            Topic(
                label="Team Rituals",
                cue="the routines your team follows each week",
                max_turns=2,
            )
        ],
        data_collection_enabled=False,
    )


@pytest.fixture
def new_state():
    """Fresh conversation state."""
    return ConversationState(
        conversation_id="conv-1", bot_id="bot-a", organization_id="org-1"
    )
