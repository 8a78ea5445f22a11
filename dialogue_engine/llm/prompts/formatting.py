"""
Text helpers shared by the prompt builders and the turn service.

- normalize_single_question: collapse model output to exactly one question
- replace_literal_topic_title: swap leaked internal topic titles for the cue
- bridge stems: opening clauses of recent assistant turns, to avoid reuse
- respondent signals: clarification requests and answer depth
"""

import re
from typing import List, Literal, Sequence

from dialogue_engine.domain.models.conversation import Message, Role
from dialogue_engine.services.similarity import is_italian, normalize, tokenize

COMPLETION_TAG = "INTERVIEW_COMPLETED"

ResponseDepth = Literal["brief", "balanced", "rich"]

_TRAILING_PUNCT = re.compile(r"[.!?…]+$")
_WHITESPACE = re.compile(r"\s+")
_COMPLETION_TAG_RE = re.compile(COMPLETION_TAG, re.IGNORECASE)

GENERIC_BRIDGE_OPENERS = {
    "it": [
        re.compile(p, re.IGNORECASE)
        for p in (
            r"^capisco\b",
            r"^chiaro\b",
            r"^perfetto\b",
            r"^ottimo\b",
            r"^bene\b",
            r"^grazie\b",
            r"^molto interessante\b",
            r"^[eè] un punto importante\b",
            r"^quello che dici\b",
        )
    ],
    "en": [
        re.compile(p, re.IGNORECASE)
        for p in (
            r"^i see\b",
            r"^got it\b",
            r"^perfect\b",
            r"^great\b",
            r"^thanks\b",
            r"^very interesting\b",
            r"^that'?s an important point\b",
        )
    ],
}

_CLARIFICATION_GENERIC = re.compile(r"^(boh|eh|mh|hmm|\?+|ok\??)$", re.IGNORECASE)
_CLARIFICATION = {
    "it": re.compile(
        r"\b(non capisco|non ho capito|non mi [eè] chiaro|puoi chiarire|"
        r"puoi spiegare meglio|cosa intendi|intendi dire|ti riferisci|"
        r"in che senso|parli di|quale dei due)\b",
        re.IGNORECASE,
    ),
    "en": re.compile(
        r"\b(i don'?t understand|i do not understand|not clear|can you clarify|"
        r"can you explain|what do you mean|do you mean|are you referring to|"
        r"which one)\b",
        re.IGNORECASE,
    ),
}


def lang_key(language: str) -> str:
    return "it" if is_italian(language) else "en"


def normalize_single_question(text: str) -> str:
    """Keep only the first question and make sure the text ends with '?'."""
    normalized = (text or "").strip()
    if normalized.count("?") > 1:
        normalized = normalized[: normalized.index("?") + 1].strip()
    if not normalized.endswith("?"):
        normalized = f"{_TRAILING_PUNCT.sub('', normalized).strip()}?"
    return normalized


def replace_literal_topic_title(text: str, topic_label: str, replacement: str) -> str:
    """Case-insensitive replacement of the internal topic title."""
    source = (text or "").strip()
    label = (topic_label or "").strip()
    repl = (replacement or "").strip()
    if not source or not label or not repl:
        return source
    return re.sub(re.escape(label), lambda _: repl, source, flags=re.IGNORECASE)


def strip_completion_tag(text: str) -> str:
    return _WHITESPACE.sub(" ", _COMPLETION_TAG_RE.sub("", text or "")).strip()


def has_completion_tag(text: str) -> bool:
    return bool(_COMPLETION_TAG_RE.search(text or ""))


def build_natural_topic_cue(topic_label: str, language: str) -> str:
    """User-facing wording for a topic that has no authored cue.

    Picks the longest informative token of the label so the internal title
    is never quoted verbatim.
    """
    italian = is_italian(language)
    tokens = tokenize(topic_label, language)
    if not tokens:
        return "questo tema" if italian else "this topic"
    anchor = max(tokens, key=len)
    return anchor if italian else f"this aspect about {anchor}"


def extract_bridge_stem(text: str) -> str:
    """Normalized opening clause of a message (before the first , . ! ?)."""
    compact = (text or "").strip()
    if not compact:
        return ""
    first_sentence = re.split(r"[?!.]", compact)[0]
    return normalize(first_sentence.split(",")[0])


def collect_recent_bridge_stems(
    transcript: Sequence[Message], limit: int = 14
) -> List[str]:
    """Distinct bridge stems of recent assistant turns, most recent first."""
    assistant = [m for m in transcript if m.role == Role.ASSISTANT]
    assistant = assistant[-max(limit * 2, limit) :]
    seen = set()
    stems: List[str] = []
    for message in reversed(assistant):
        stem = extract_bridge_stem(message.text)
        if not stem or stem in seen:
            continue
        seen.add(stem)
        stems.append(stem)
        if len(stems) >= limit:
            break
    return stems


def starts_with_generic_opener(text: str, language: str) -> bool:
    first_sentence = re.split(r"[?!.]", (text or "").strip())[0].strip()
    return any(p.search(first_sentence) for p in GENERIC_BRIDGE_OPENERS[lang_key(language)])


def is_clarification_signal(message: str, language: str) -> bool:
    """True when the respondent asks what the question meant."""
    text = (message or "").strip().lower()
    if not text:
        return False
    if _CLARIFICATION_GENERIC.match(text):
        return True
    if _CLARIFICATION[lang_key(language)].search(text):
        return True
    words = text.split()
    either_or = re.search(r"\b(o|or)\b", text) is not None
    return "?" in text and len(words) <= 12 and either_or


def user_response_depth(message: str) -> ResponseDepth:
    words = len((message or "").split())
    if words <= 10:
        return "brief"
    if words >= 35:
        return "rich"
    return "balanced"


def sanitize_user_snippet(message: str, max_words: int = 14) -> str:
    """First words of a respondent message, without quotes or line breaks."""
    clean = _WHITESPACE.sub(" ", re.sub(r"[\"“”«»]", "", message or "")).strip()
    words = clean.split(" ")
    snippet = " ".join(words[:max_words])
    return _TRAILING_PUNCT.sub("", snippet).strip()


def build_user_bridge_hint(message: str, language: str) -> str:
    signal = sanitize_user_snippet(message)
    if not signal or is_clarification_signal(message, language):
        return ""
    if is_italian(language):
        return (
            f'Apri collegandoti semanticamente al punto utente su "{signal}" '
            "senza citazione letterale."
        )
    return (
        f'Open by semantically linking to the user point about "{signal}" '
        "without literal quoting."
    )
