import json
from dataclasses import dataclass
from pathlib import Path

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from answers.matcher import CompiledEntry, compile_entries


class AnswerEntry(BaseModel):
    """One question pattern and its spoken answer."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    pattern: str = Field(alias="q")
    answer: str = Field(alias="a")


class AnswerGroup(BaseModel):
    """A "book" of questions that a parent can switch on or off."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    title: str = ""
    is_activated: bool = Field(default=False, alias="isActivated")
    questions: list[AnswerEntry] = Field(default_factory=list)


class Corpus(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = ""
    books: list[AnswerGroup] = Field(default_factory=list)

    def enabled_entries(self) -> list[AnswerEntry]:
        """Entries of activated groups, in group then entry order."""
        entries = []
        for book in self.books:
            if book.is_activated:
                entries.extend(book.questions)
        return entries


@dataclass(frozen=True)
class CompiledCorpus:
    """Immutable, ready-to-match snapshot of a corpus."""

    name: str = ""
    entries: tuple[CompiledEntry, ...] = ()

    @classmethod
    def from_corpus(cls, corpus: Corpus) -> "CompiledCorpus":
        return cls(name=corpus.name, entries=tuple(compile_entries(corpus.enabled_entries())))


class CorpusStore:
    """Holds the current compiled corpus.

    Readers always get a complete snapshot: a new corpus is compiled first
    and only then swapped in with a single assignment.
    """

    def __init__(self):
        self._current = CompiledCorpus()

    @property
    def current(self) -> CompiledCorpus:
        return self._current

    def replace(self, corpus: Corpus) -> CompiledCorpus:
        compiled = CompiledCorpus.from_corpus(corpus)
        self._current = compiled
        active = sum(1 for book in corpus.books if book.is_activated)
        logger.info(
            "[CORPUS] Data updated - {}, {}/{} books active, {} answers",
            corpus.name, active, len(corpus.books), len(compiled.entries),
        )
        return compiled

    def load_file(self, path: Path) -> bool:
        """Load a corpus from a local JSON file. Keeps the current one on error."""
        if not path.exists():
            logger.warning("[CORPUS] No local corpus at {}", path)
            return False
        try:
            corpus = Corpus.model_validate(json.loads(path.read_text()))
        except (OSError, ValueError, ValidationError) as e:
            logger.error("[CORPUS] Failed to load {}: {}", path, e)
            return False
        self.replace(corpus)
        return True
