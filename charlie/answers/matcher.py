import re
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from loguru import logger


@dataclass(frozen=True)
class CompiledEntry:
    pattern: re.Pattern
    answer: str


def compile_entries(entries: Iterable) -> list[CompiledEntry]:
    """Compile question patterns case-insensitively, dropping broken ones.

    Args:
        entries: Objects with ``pattern`` and ``answer`` attributes.

    Returns:
        Compiled entries in input order, minus any whose pattern is not a
        valid regular expression.
    """
    compiled = []
    for entry in entries:
        try:
            pattern = re.compile(entry.pattern, re.IGNORECASE)
        except re.error as e:
            logger.warning("[CORPUS] Skipping bad pattern '{}': {}", entry.pattern, e)
            continue
        compiled.append(CompiledEntry(pattern=pattern, answer=entry.answer))
    return compiled


class AnswerMatcher:
    """First-match lookup of an utterance against the answer table."""

    def match(self, utterance: str, entries: Sequence[CompiledEntry]) -> Optional[str]:
        """Return the answer of the first entry whose pattern occurs in the
        utterance, or None when nothing matches."""
        for entry in entries:
            if entry.pattern.search(utterance):
                logger.info("[APP] Found answer - {}", entry.answer)
                return entry.answer
        logger.info("[APP] Unknown question")
        return None
