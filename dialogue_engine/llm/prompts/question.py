"""
Prompts for topic question generation.

The prompt embeds the topic's natural cue (never the internal label for
user-facing wording), the current sub-goal, the respondent's last message
and the previous assistant question, and constrains the model to exactly
one question with a concrete acknowledgment, no stock openers, no contact
requests and no closing language.
"""

import re
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from dialogue_engine.llm.prompts.formatting import is_clarification_signal
from dialogue_engine.services.similarity import is_italian

TransitionMode = Literal["bridge", "clean_pivot"]

QUESTION_SYSTEM_PROMPT = (
    "You are a skilled qualitative researcher conducting a live interview. "
    "You write the interviewer's next turn only: warm, specific, concise, "
    "and always a single question."
)


class QuestionOutput(BaseModel):
    question: str = Field(description="A single interview question ending with '?'")


_NEGATIVE = re.compile(r"(problema|critic|risch|limite|debolezz|poco|scarso|difficolt|non )")
_PRIORITY = re.compile(r"(priorit|prima|subito|urgent|urgente|piu importante|più importante)")
_IMPACT = re.compile(
    r"(impatto|effetto|risultato|crescita|calo|mercato|client|kpi|vendite|margine|tempo|costo)"
)

_LENS_LABELS_IT = {
    "priority": "priorita",
    "action": "azione",
    "impact": "impatto",
    "example": "esempio",
}


def build_soft_diagnostic_hint(language: str, last_user_message: Optional[str]) -> str:
    """Optional follow-up lens (example / impact / priority / action).

    Empty when the respondent said too little or asked for clarification.
    """
    text = (last_user_message or "").strip()
    words = len(text.split())
    if not text or words < 5 or is_clarification_signal(text, language):
        return ""

    lower = text.lower()
    lens = "example"
    if _PRIORITY.search(lower) or words >= 35:
        lens = "priority"
    elif _NEGATIVE.search(lower):
        lens = "action"
    elif _IMPACT.search(lower) or words >= 14:
        lens = "impact"

    if is_italian(language):
        return (
            "Suggerimento soft: se coerente con il topic, prova una domanda "
            f'diagnostica sul piano "{_LENS_LABELS_IT[lens]}" con un vincolo leggero '
            "(tempo, segmento, canale o metrica). Se rischia di essere forzata, "
            "ignora questo suggerimento."
        )
    return (
        f'Soft suggestion: if coherent with the topic, use a diagnostic "{lens}" '
        "follow-up with one light constraint (timeframe, segment, channel, or "
        "metric). If this feels forced, ignore this suggestion."
    )


def get_question_prompt(
    language: str,
    topic_label: str,
    topic_cue: str,
    sub_goal: Optional[str] = None,
    last_user_message: Optional[str] = None,
    previous_assistant_question: Optional[str] = None,
    bridge_hint: Optional[str] = None,
    avoid_bridge_stems: Optional[List[str]] = None,
    transition_mode: Optional[TransitionMode] = None,
    require_acknowledgment: bool = True,
    regeneration_hint: Optional[str] = None,
) -> str:
    """
    Build the user prompt for one topic question.

    Args:
        language: Conversation language
        topic_label: Internal topic title (for the model's orientation only)
        topic_cue: Natural wording the question should use
        sub_goal: Sub-goal to pursue this turn
        last_user_message: Respondent's previous message
        previous_assistant_question: Question the model must not repeat
        bridge_hint: How to connect to what the respondent just said
        avoid_bridge_stems: Recent openings not to reuse
        transition_mode: "bridge" when moving topic on a related signal,
            "clean_pivot" when the respondent's point is unrelated
        require_acknowledgment: Ask for a short acknowledgment sentence first
        regeneration_hint: Why the previous attempt was rejected

    Returns:
        Prompt text
    """
    if require_acknowledgment:
        structure = (
            "Output structure: (1) one short acknowledgment sentence; "
            "(2) one specific question."
        )
    else:
        structure = "Output structure: one concise question."

    transition = None
    if transition_mode == "bridge":
        transition = (
            "Transition mode: bridge naturally from the user's point to the new "
            "topic without literal quotes."
        )
    elif transition_mode == "clean_pivot":
        transition = (
            "Transition mode: clean pivot. Use a neutral acknowledgment and do not "
            "paraphrase irrelevant user details."
        )

    lines = [
        f"Language: {language}",
        f"Topic title (internal): {topic_label}",
        f"Natural topic cue for user-facing wording: {topic_cue}",
        f"Sub-goal: {sub_goal}" if sub_goal else None,
        f'User last message: "{last_user_message}"' if last_user_message else None,
        (
            f'Previous assistant question to avoid repeating: "{previous_assistant_question}"'
            if previous_assistant_question
            else None
        ),
        (
            "Do NOT reuse these recent bridge openings (normalized): "
            + " | ".join(avoid_bridge_stems[:8])
            if avoid_bridge_stems
            else None
        ),
        f"Bridge hint: {bridge_hint}" if bridge_hint else None,
        "Acknowledgment quality: reference one concrete detail from the user's "
        "message (fact, constraint, example, or cause/effect).",
        'Avoid stock openers like "molto interessante", "e un punto importante", '
        '"grazie per aver condiviso", "very interesting", "that\'s an important '
        'point", "thanks for sharing".',
        'Prefer concrete follow-ups over broad prompts like "cosa ne pensi?" / '
        '"what do you think?" unless no better signal is available.',
        build_soft_diagnostic_hint(language, last_user_message) or None,
        structure,
        transition,
        (
            f"Your previous draft was rejected ({regeneration_hint}). Write a "
            "different question that fixes this."
            if regeneration_hint
            else None
        ),
        "Task: Ask exactly ONE concise interview question about the topic. Do NOT "
        "close the interview. Do NOT ask for contact data. Do NOT include links or "
        "promotions. Avoid literal quote of user's words. Do NOT repeat the topic "
        "title verbatim; use natural phrasing. End with a single question mark.",
    ]
    return "\n".join(line for line in lines if line)
