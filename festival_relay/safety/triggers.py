"""
triggers.py — Keyword detection over free text (speech transcripts, notes).

A match is a case-insensitive substring hit on one of the configured
trigger words. The first word in configuration order wins, so "help, sos"
reports ``help``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

from festival_relay.core.config import settings
from festival_relay.safety.models import display_name

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TriggerMatch:
    session_id: str
    user_id: str
    trigger_word: str
    message: str


class KeywordTriggerDetector:
    """Finds safety trigger words in transcribed speech."""

    def __init__(self, trigger_words: Optional[Iterable[str]] = None) -> None:
        words = trigger_words if trigger_words is not None else settings.SAFETY_TRIGGER_WORDS
        self.trigger_words: List[str] = [w.strip().lower() for w in words if w and w.strip()]

    def find_trigger(self, text: str) -> Optional[str]:
        normalized = (text or "").lower().strip()
        if not normalized:
            return None
        for word in self.trigger_words:
            if word in normalized:
                return word
        return None

    def check_for_triggers(self, text: str, session_id: str, user_id: str) -> Optional[TriggerMatch]:
        word = self.find_trigger(text)
        if word is None:
            return None

        name = display_name(user_id)
        logger.warning(
            "Safety trigger detected in %s: '%s' (%s)", session_id, word, (text or "")[:100],
            extra={"session_id": session_id, "user_id": user_id, "trigger_word": word},
        )
        return TriggerMatch(
            session_id=session_id,
            user_id=user_id or "unknown",
            trigger_word=word,
            message=f"🚨 {name} needs help!",
        )
