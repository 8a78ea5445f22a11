"""
Prompts and templates for the extension offer.

The offer is the single yes/no question asked once the scheduled time is
over: thanks, time-is-up notice, one concrete continuation hint, one
question. When generation cannot produce a recognizable offer, the
bilingual template below is used instead.
"""

import re
from typing import List, Optional, Sequence

from pydantic import BaseModel, Field

from dialogue_engine.services.similarity import is_italian


class ExtensionOfferOutput(BaseModel):
    message: str = Field(
        description="A short message that ends with one yes/no extension question"
    )


_OFFER_PATTERNS = {
    "it": re.compile(
        r"\b(ti va di continuare|vuoi continuare|qualche minuto in pi[uù]|"
        r"hai ancora qualche minuto|hai disponibilit[aà]|"
        r"estendere(\s+l')?\s*intervista|proseguire|"
        r"ulterior[ei] domand[ae] di approfondimento)",
        re.IGNORECASE,
    ),
    "en": re.compile(
        r"\b(would you like to continue|do you want to continue|few more minutes|"
        r"are you available|extend the interview|continue for a few more minutes|"
        r"follow-up questions|deep-dive questions)\b",
        re.IGNORECASE,
    ),
}


def first_preview_hint(hints: Optional[Sequence[str]]) -> str:
    for hint in hints or []:
        cleaned = (hint or "").strip()
        if cleaned:
            return cleaned
    return ""


def is_extension_offer_question(message: str, language: str) -> bool:
    """Keyword heuristic: continuation wording plus a question mark."""
    text = (message or "").strip()
    if not text or "?" not in text:
        return False
    key = "it" if is_italian(language) else "en"
    return _OFFER_PATTERNS[key].search(text) is not None


def get_extension_offer_prompt(
    language: str,
    extension_preview_hints: Optional[List[str]] = None,
    regeneration_hint: Optional[str] = None,
) -> str:
    """Build the 4-part extension offer prompt."""
    starter = first_preview_hint(extension_preview_hints)
    if starter:
        step3 = (
            "3) Propose to continue and mention one indirect starting point "
            f"connected to what the user shared, for example around: {starter}. "
            "Use no quotes, labels, or list formatting."
        )
    else:
        step3 = (
            "3) Propose to continue and mention one concrete single starting point "
            "connected to what the user shared, using indirect wording."
        )

    lines = [
        f"Language: {language}",
        "Task: Write a short extension message with this structure:",
        "1) Start with a short thank-you for the user's availability and answers so far.",
        "2) Say naturally that the planned interview time is over (or would be over).",
        step3,
        "4) Ask exactly ONE yes/no question asking availability for a few more "
        "deep-dive questions (e.g. whether they would like to continue for a few "
        "more minutes).",
        "Do NOT ask topic questions. Do NOT ask for contacts. Do NOT close the interview.",
        (
            f"Your previous draft was rejected ({regeneration_hint})."
            if regeneration_hint
            else None
        ),
        "Keep it natural and concise. End with exactly one question mark.",
    ]
    return "\n".join(line for line in lines if line)


def fallback_extension_offer(
    language: str, extension_preview_hints: Optional[Sequence[str]] = None
) -> str:
    """Deterministic offer text parameterized by the first preview hint."""
    hint = first_preview_hint(extension_preview_hints)
    if is_italian(language):
        opening = (
            "Grazie per il tempo e per i contributi condivisi fin qui. Il tempo "
            "previsto per l'intervista sarebbe terminato: se vuoi, possiamo "
            "continuare con qualche domanda in più, "
        )
        middle = (
            f"partendo da uno dei punti emersi, ad esempio {hint}."
            if hint
            else "su uno dei punti più utili emersi."
        )
        return f"{opening}{middle} Ti va di proseguire ancora per qualche minuto?"

    opening = (
        "Thank you for your time and the insights shared so far. The planned "
        "interview time would now be over: if you want, we can continue with a "
        "few extra questions, "
    )
    middle = (
        f"starting from one point that emerged, for example {hint}."
        if hint
        else "on one useful point that emerged."
    )
    return f"{opening}{middle} Would you like to continue for a few more minutes?"
