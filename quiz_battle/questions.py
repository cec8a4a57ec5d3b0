"""Question records, the per-run question bank and question sources.

The bank hands out questions in a shuffled order and reshuffles once every
question has been drawn, so a run never runs out of questions.
"""

from __future__ import annotations

import json
import logging
import random
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)


class QuizBattleError(Exception):
    """Base class for errors raised by the battle core."""


class EmptyQuestionSetError(QuizBattleError):
    """Raised when a question bank is loaded with no questions."""


class InvalidQuestionSetError(EmptyQuestionSetError):
    """Raised when a question set contains a question that cannot be played."""


class SourceUnavailableError(QuizBattleError):
    """Raised when a question source cannot deliver a usable question set."""


@dataclass(frozen=True, slots=True)
class Question:
    prompt: str
    correct_answer: int
    options: tuple[int, ...]

    def problems(self) -> list[str]:
        """Return reasons this question cannot be played (empty if valid)."""

        found: list[str] = []
        if len(self.options) < 2:
            found.append("needs at least 2 options")
        hits = sum(1 for o in self.options if o == self.correct_answer)
        if hits != 1:
            found.append(f"correct answer appears {hits} times in options")
        return found

    def is_correct(self, option: int) -> bool:
        return option == self.correct_answer


def validate_questions(questions: Sequence[Question]) -> None:
    if len(questions) == 0:
        raise EmptyQuestionSetError("question set is empty")
    for idx, q in enumerate(questions):
        problems = q.problems()
        if problems:
            raise InvalidQuestionSetError(f"question {idx} ({q.prompt!r}): {'; '.join(problems)}")


class QuestionBank:
    """Ordered question supply for one run.

    - ``load`` replaces the contents with a shuffled copy.
    - ``next`` never fails after a successful load; an exhausted lap is
      reshuffled in place and the cursor goes back to 0.
    """

    def __init__(self, *, rng: random.Random | None = None) -> None:
        self._rng = rng if rng is not None else random.Random()
        self._items: list[Question] = []
        self._cursor = 0
        self._laps = 0

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def laps(self) -> int:
        """Number of reshuffles performed since the last load."""
        return self._laps

    def __len__(self) -> int:
        return len(self._items)

    def items(self) -> list[Question]:
        return list(self._items)

    def load(self, questions: Sequence[Question]) -> None:
        validate_questions(questions)
        items = list(questions)
        self._rng.shuffle(items)
        self._items = items
        self._cursor = 0
        self._laps = 0

    def next(self) -> Question:
        if not self._items:
            raise EmptyQuestionSetError("question bank has not been loaded")
        if self._cursor >= len(self._items):
            self._rng.shuffle(self._items)
            self._cursor = 0
            self._laps += 1
            logger.debug("question bank exhausted; reshuffled (lap %d)", self._laps)
        q = self._items[self._cursor]
        self._cursor += 1
        return q


class QuestionSource(Protocol):
    def fetch_questions(self, category: str) -> list[Question]:
        """Return the question set for a category or raise SourceUnavailableError."""
        ...


def question_from_dict(data: object) -> Question:
    """Build a Question from ``{"question", "answer", "options"}``.

    Raises ValueError on a malformed record.
    """

    if not isinstance(data, dict):
        raise ValueError("question record must be an object")
    prompt = str(data.get("question", "")).strip()
    if prompt == "":
        raise ValueError("question text is missing")
    raw_options = data.get("options")
    if not isinstance(raw_options, list):
        raise ValueError("options must be a list")
    try:
        answer = int(data["answer"])
        options = tuple(int(o) for o in raw_options)
    except (KeyError, TypeError, ValueError) as exc:
        raise ValueError(f"bad answer/options in {prompt!r}") from exc
    return Question(prompt=prompt, correct_answer=answer, options=options)


_ADDITION: tuple[tuple[str, int, tuple[int, ...]], ...] = (
    ("What is 7 + 5?", 12, (10, 12, 15, 11)),
    ("What is the result of 10 + 3?", 13, (11, 12, 13, 14)),
    ("You have 4 + 3 apples. How many apples is that?", 7, (5, 6, 7, 8)),
    ("Add: 8 + 6", 14, (12, 13, 14, 15)),
    ("What is 9 + 9?", 18, (16, 17, 18, 19)),
    ("Work out: 15 + 5", 20, (18, 19, 20, 21)),
    ("You have 12 and get 4 more. How many do you have?", 16, (14, 15, 16, 17)),
    ("Result of 11 + 7", 18, (17, 18, 19, 20)),
    ("Add the numbers 13 and 6", 19, (18, 19, 20, 21)),
    ("What is 20 + 10?", 30, (25, 28, 30, 32)),
    ("1 + 1", 2, (1, 2, 3, 4)),
    ("5 + 2", 7, (6, 7, 8, 9)),
    ("4 + 4", 8, (6, 7, 8, 9)),
    ("10 + 10", 20, (18, 19, 20, 21)),
    ("15 + 15", 30, (25, 28, 30, 35)),
)


class BuiltinQuestionSource:
    """Bundled question sets keyed by category."""

    def __init__(self) -> None:
        self._categories: dict[str, list[Question]] = {
            "addition": [Question(prompt=p, correct_answer=a, options=o) for p, a, o in _ADDITION],
        }

    def categories(self) -> list[str]:
        return sorted(self._categories)

    def fetch_questions(self, category: str) -> list[Question]:
        found = self._categories.get(category)
        if not found:
            raise SourceUnavailableError(f"unknown question category {category!r}")
        return list(found)


class JsonQuestionSource:
    """Question sets read from a JSON file: ``{"<category>": [<record>, ...]}``."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    def fetch_questions(self, category: str) -> list[Question]:
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except OSError as exc:
            raise SourceUnavailableError(f"cannot read {self._path}: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise SourceUnavailableError(f"{self._path} is not valid JSON: {exc}") from exc

        if not isinstance(payload, dict):
            raise SourceUnavailableError(f"{self._path}: top level must be an object")
        records = payload.get(category)
        if not isinstance(records, list) or not records:
            raise SourceUnavailableError(f"{self._path}: no questions for category {category!r}")

        try:
            questions = [question_from_dict(r) for r in records]
        except ValueError as exc:
            raise SourceUnavailableError(f"{self._path}: {exc}") from exc
        logger.debug("loaded %d questions for %r from %s", len(questions), category, self._path)
        return questions
