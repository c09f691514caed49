from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from errors import InvalidTransition

"""
Learn-page quiz as a finite-state machine
-----------------------------------------
Per question:

	UNANSWERED ──submit(correct)──▶ CORRECT          (terminal for the question)
	UNANSWERED ──submit(wrong)────▶ INCORRECT_RETRY  (wrong option locked)
	INCORRECT_RETRY ──select──────▶ UNANSWERED       (other options still open)
	UNANSWERED / INCORRECT_RETRY ──skip──▶ SKIPPED  (terminal for the question)

ADVANCE needs CORRECT or SKIPPED; advancing past the last question completes
the quiz.  CORRECT and SKIPPED are terminal: a repeat submit on CORRECT and
any skip after either leave the state unchanged, so a question counts towards
the score at most once and is never both correct and skipped.

transition() is pure: it returns a new QuizState and never mutates the old.
"""


def is_correct(value: Any) -> bool:
	"""Correct flag as stored: True, "true", 1 and "1" all mean correct."""
	if value is True:
		return True
	if isinstance(value, bool):
		return False
	if isinstance(value, int):
		return value == 1
	if isinstance(value, str):
		return value.strip().lower() in ("true", "1")
	return False


class QuestionStatus(Enum):
	UNANSWERED = "unanswered"
	INCORRECT_RETRY = "incorrect_retry"
	CORRECT = "correct"
	SKIPPED = "skipped"


# ---------------------------------------------------------------------------
# Question data
# ---------------------------------------------------------------------------
@dataclass(slots=True, frozen=True)
class AnswerOption:
	id: Any
	text: str
	correct: bool = False
	explanation: str = ""

	@classmethod
	def from_row(cls, row: Mapping[str, Any]) -> "AnswerOption":
		return cls(
			id=row.get("id"),
			text=row.get("answer") or row.get("text") or "",
			correct=is_correct(row.get("correct")),
			explanation=row.get("explanation") or "",
		)

	def to_dict(self) -> dict[str, Any]:
		return {"id": self.id, "answer": self.text, "correct": self.correct, "explanation": self.explanation}


@dataclass(slots=True, frozen=True)
class QuizQuestion:
	id: Any
	text: str
	answers: tuple[AnswerOption, ...] = ()
	description: str = ""

	@classmethod
	def from_row(cls, row: Mapping[str, Any]) -> "QuizQuestion":
		return cls(
			id=row.get("id"),
			text=row.get("question") or row.get("text") or "",
			answers=tuple(AnswerOption.from_row(a) for a in row.get("answers") or ()),
			description=row.get("description") or "",
		)

	def answer(self, answer_id: Any) -> AnswerOption | None:
		key = _key(answer_id)
		return next((a for a in self.answers if _key(a.id) == key), None)

	def to_dict(self) -> dict[str, Any]:
		return {
			"id": self.id,
			"question": self.text,
			"description": self.description,
			"answers": [a.to_dict() for a in self.answers],
		}


def _key(value: Any) -> str:
	return "" if value is None else str(value)


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------
@dataclass(slots=True, frozen=True)
class Select:
	answer_id: Any


@dataclass(slots=True, frozen=True)
class Submit:
	answer_id: Any = None      # None → submit the current selection


@dataclass(slots=True, frozen=True)
class Skip:
	pass


@dataclass(slots=True, frozen=True)
class Advance:
	pass


Event = Select | Submit | Skip | Advance

_EVENT_TYPES: dict[str, type] = {"select": Select, "submit": Submit, "skip": Skip, "advance": Advance}


def event_from_dict(data: Mapping[str, Any]) -> Event:
	kind = str(data.get("type", "")).lower()
	cls = _EVENT_TYPES.get(kind)
	if cls is None:
		raise InvalidTransition(f"unknown quiz event {kind!r}")
	if cls in (Select, Submit):
		return cls(data.get("answerId"))
	return cls()


# ---------------------------------------------------------------------------
# State
# ---------------------------------------------------------------------------
@dataclass(slots=True, frozen=True)
class CompletionSummary:
	correct_count: int
	total_questions: int
	next_topic_id: Any = None

	def to_dict(self) -> dict[str, Any]:
		return {
			"correctCount": self.correct_count,
			"totalQuestions": self.total_questions,
			"nextTopicId": self.next_topic_id,
		}


@dataclass(slots=True, frozen=True)
class QuizState:
	questions: tuple[QuizQuestion, ...]
	index: int = 0
	status: QuestionStatus = QuestionStatus.UNANSWERED
	selected: Any = None
	locked: frozenset[str] = field(default_factory=frozenset)     # answer ids on this question
	explanation: str | None = None
	correct_ids: frozenset[str] = field(default_factory=frozenset)
	skipped_ids: frozenset[str] = field(default_factory=frozenset)
	completed: bool = False
	next_topic_id: Any = None

	@property
	def total_questions(self) -> int:
		return len(self.questions)

	@property
	def correct_count(self) -> int:
		return len(self.correct_ids)

	@property
	def current(self) -> QuizQuestion | None:
		if self.completed or not self.questions:
			return None
		return self.questions[self.index]

	@property
	def can_advance(self) -> bool:
		return self.status in (QuestionStatus.CORRECT, QuestionStatus.SKIPPED)

	def is_selectable(self, answer_id: Any) -> bool:
		if self.completed or self.status in (QuestionStatus.CORRECT, QuestionStatus.SKIPPED):
			return False
		return _key(answer_id) not in self.locked

	def summary(self) -> CompletionSummary | None:
		if not self.completed:
			return None
		return CompletionSummary(self.correct_count, self.total_questions, self.next_topic_id)

	# ---- (de)serialisation for /api/quiz/transition ------------------------
	def to_dict(self) -> dict[str, Any]:
		summary = self.summary()
		return {
			"questions": [q.to_dict() for q in self.questions],
			"index": self.index,
			"status": self.status.value,
			"selected": self.selected,
			"locked": sorted(self.locked),
			"explanation": self.explanation,
			"correctIds": sorted(self.correct_ids),
			"skippedIds": sorted(self.skipped_ids),
			"completed": self.completed,
			"nextTopicId": self.next_topic_id,
			"correctCount": self.correct_count,
			"totalQuestions": self.total_questions,
			"summary": summary.to_dict() if summary else None,
		}

	@classmethod
	def from_dict(cls, data: Mapping[str, Any]) -> "QuizState":
		questions = tuple(QuizQuestion.from_row(q) for q in data.get("questions") or ())
		try:
			status = QuestionStatus(data.get("status", QuestionStatus.UNANSWERED.value))
		except ValueError:
			raise InvalidTransition(f"unknown status {data.get('status')!r}") from None
		index = int(data.get("index", 0))
		if questions and not 0 <= index < len(questions):
			raise InvalidTransition(f"question index {index} out of range")
		return cls(
			questions=questions,
			index=index,
			status=status,
			selected=data.get("selected"),
			locked=frozenset(_key(a) for a in data.get("locked") or ()),
			explanation=data.get("explanation"),
			correct_ids=frozenset(_key(q) for q in data.get("correctIds") or ()),
			skipped_ids=frozenset(_key(q) for q in data.get("skippedIds") or ()),
			completed=bool(data.get("completed", False)),
			next_topic_id=data.get("nextTopicId"),
		)


def start(questions: Iterable[QuizQuestion | Mapping[str, Any]], next_topic_id: Any = None) -> QuizState:
	"""Initial state; an empty question list is already complete."""
	qs = tuple(q if isinstance(q, QuizQuestion) else QuizQuestion.from_row(q) for q in questions)
	return QuizState(questions=qs, completed=not qs, next_topic_id=next_topic_id)


# ---------------------------------------------------------------------------
# Transition function
# ---------------------------------------------------------------------------
def transition(state: QuizState, event: Event) -> QuizState:
	if state.completed:
		raise InvalidTransition("quiz already completed")
	question = state.current
	if question is None:
		raise InvalidTransition("no current question")

	if isinstance(event, Select):
		if not state.is_selectable(event.answer_id):
			raise InvalidTransition(f"answer {event.answer_id!r} is not selectable")
		if question.answer(event.answer_id) is None:
			raise InvalidTransition(f"answer {event.answer_id!r} not in question {question.id!r}")
		return replace(
			state,
			selected=event.answer_id,
			status=QuestionStatus.UNANSWERED,
			explanation=None,
		)

	if isinstance(event, Submit):
		if state.status == QuestionStatus.CORRECT:
			return state          # repeat submit: count already taken
		if state.status == QuestionStatus.SKIPPED:
			raise InvalidTransition("question was skipped")
		answer_id = event.answer_id if event.answer_id is not None else state.selected
		if answer_id is None:
			raise InvalidTransition("no answer selected")
		if _key(answer_id) in state.locked:
			raise InvalidTransition(f"answer {answer_id!r} is locked")
		answer = question.answer(answer_id)
		if answer is None:
			raise InvalidTransition(f"answer {answer_id!r} not in question {question.id!r}")

		if answer.correct:
			return replace(
				state,
				status=QuestionStatus.CORRECT,
				selected=answer_id,
				locked=frozenset(_key(a.id) for a in question.answers if _key(a.id) != _key(answer_id)),
				explanation=answer.explanation or "Correct!",
				correct_ids=state.correct_ids | {_key(question.id)},
			)
		return replace(
			state,
			status=QuestionStatus.INCORRECT_RETRY,
			selected=answer_id,
			locked=state.locked | {_key(answer_id)},
			explanation=answer.explanation or "Incorrect. Please try again.",
		)

	if isinstance(event, Skip):
		if state.status in (QuestionStatus.CORRECT, QuestionStatus.SKIPPED):
			return state
		return replace(
			state,
			status=QuestionStatus.SKIPPED,
			skipped_ids=state.skipped_ids | {_key(question.id)},
		)

	if isinstance(event, Advance):
		if not state.can_advance:
			raise InvalidTransition(f"cannot advance from {state.status.value}")
		if state.index + 1 >= state.total_questions:
			return replace(state, completed=True)
		return replace(
			state,
			index=state.index + 1,
			status=QuestionStatus.UNANSWERED,
			selected=None,
			locked=frozenset(),
			explanation=None,
		)

	raise InvalidTransition(f"unknown event {event!r}")


def run(state: QuizState, events: Iterable[Event]) -> QuizState:
	"""Fold a sequence of events over *state*."""
	for event in events:
		state = transition(state, event)
	return state
