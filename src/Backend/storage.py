"""
CourseMap storage collaborator (Supabase)
=========================================
Read-only access to the course schema:

    courses → labels → topics → questions → answers   (+ topic_progress view)

Every method raises ``UpstreamError`` (or ``NotFound``) on failure;
``fetch()`` turns those into a tagged ``Result`` so route handlers never see
an exception from the storage layer.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable

from supabase import Client, create_client

from config import Settings
from errors import ConfigError, NotFound, UpstreamError

log = logging.getLogger(__name__)

PROGRESS_TABLE = "topic_progress"


# ═══════════════════════════════════════════════════════════════════
# Tagged result
# ═══════════════════════════════════════════════════════════════════
@dataclass(slots=True)
class Result:
    success: bool
    status_code: int = 200
    data: Any = None
    error: str | None = None
    message: str | None = None

    @classmethod
    def ok(cls, data: Any) -> "Result":
        return cls(success=True, status_code=200, data=data)

    @classmethod
    def fail(cls, error: str, message: str = "", status_code: int = 500) -> "Result":
        return cls(success=False, status_code=status_code, error=error, message=message or error)

    def to_dict(self) -> dict[str, Any]:
        if self.success:
            return {"success": True, "data": self.data}
        return {"success": False, "error": self.error, "message": self.message}


def fetch(fn: Callable[..., Any], *args: Any) -> Result:
    """Call a store method and tag the outcome."""
    try:
        return Result.ok(fn(*args))
    except NotFound as exc:
        return Result.fail("Not found", str(exc), 404)
    except UpstreamError as exc:
        return Result.fail(exc.error, exc.message, exc.status_code)


# ═══════════════════════════════════════════════════════════════════
# Supabase store
# ═══════════════════════════════════════════════════════════════════
class SupabaseStore:
    """Thin query layer over a ``supabase.Client``; rows are returned as dicts."""

    def __init__(self, client: Client) -> None:
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "SupabaseStore":
        missing = settings.missing_supabase()
        if missing:
            log.error("storage  missing environment variables: %s", ", ".join(missing))
            raise ConfigError(
                f"Supabase credentials not configured. Missing: {', '.join(missing)}. "
                "Please check your .env file."
            )
        return cls(create_client(settings.supabase_url, settings.supabase_key))

    # ---- helpers -----------------------------------------------------
    def _execute(self, query: Any, what: str) -> list[dict[str, Any]]:
        try:
            response = query.execute()
        except Exception as exc:
            log.error("storage  %s failed: %s", what, exc)
            raise UpstreamError(f"Failed to fetch {what}", str(exc)) from exc
        return list(response.data or [])

    @staticmethod
    def _with_label(row: dict[str, Any]) -> dict[str, Any]:
        # PostgREST names the embedded row after the table
        row = dict(row)
        if "labels" in row:
            row["label"] = row.pop("labels")
        return row

    # ---- labels --------------------------------------------------------
    def get_labels(self) -> list[dict[str, Any]]:
        return self._execute(
            self._client.table("labels").select("*").order("id"), "labels"
        )

    def get_labels_by_level(self, level: int) -> list[dict[str, Any]]:
        return self._execute(
            self._client.table("labels").select("*").eq("level", level).order("id"),
            f"level {level} labels",
        )

    # ---- topics --------------------------------------------------------
    def get_topics_with_label(self, topic_id: Any) -> dict[str, Any]:
        rows = self._execute(
            self._client.table("topics").select("*, labels(*)").eq("id", topic_id).limit(1),
            "topic with label",
        )
        if not rows:
            raise NotFound(f"topic {topic_id!r} not found")
        return self._with_label(rows[0])

    def get_all_topics_with_labels(self) -> list[dict[str, Any]]:
        rows = self._execute(
            self._client.table("topics").select("*, labels(*)").order("id"), "topics"
        )
        return [self._with_label(r) for r in rows]

    def get_topic_progress(self) -> list[dict[str, Any]]:
        return self._execute(
            self._client.table(PROGRESS_TABLE).select("topic_id, progress_percent"),
            "topic progress",
        )

    # ---- questions -----------------------------------------------------
    def get_questions_with_answers(self, topic_id: Any) -> list[dict[str, Any]]:
        """Questions of a topic (by id) each carrying an ``answers`` list (by id)."""
        questions = self._execute(
            self._client.table("questions").select("*").eq("topic_id", topic_id).order("id"),
            "questions",
        )
        if not questions:
            return []
        ids = [q["id"] for q in questions]
        answers = self._execute(
            self._client.table("answers").select("*").in_("question_id", ids).order("id"),
            "answers",
        )
        by_question: dict[str, list[dict[str, Any]]] = defaultdict(list)
        for a in answers:
            by_question[str(a.get("question_id"))].append(a)
        return [{**q, "answers": by_question.get(str(q["id"]), [])} for q in questions]

    # ---- composite -----------------------------------------------------
    def load_mind_map_data(self) -> dict[str, Any]:
        """Everything the /data page needs in one call."""
        level1 = self.get_labels_by_level(1)
        level2 = self.get_labels_by_level(2)
        topics = self.get_all_topics_with_labels()
        try:
            progress = self.get_topic_progress()
        except UpstreamError as exc:
            log.warning("storage  topic progress unavailable, showing 0%%: %s", exc.message)
            progress = []
        return {"level1": level1, "level2": level2, "topics": topics, "topic_progress": progress}
