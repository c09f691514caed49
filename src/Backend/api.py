"""
CourseMap — Flask server
========================
Proxies prompts to Gemini and renders the course schema as a three-column
mind map plus a multiple-choice "Learn" flow.

Storage and LLM clients are built once in ``create_app`` and injected; the
layout engine, topic sequencer and quiz FSM are pure functions over the rows
each request loads.

Endpoints
---------
GET  /                          — redirect to /chat
GET  /chat, POST /chat          — prompt form + Gemini reply
GET  /data                      — mind map (labels → topics, with progress)
GET  /learn?topic_id=<id>       — quiz for one topic
POST /api/gemini                — JSON proxy: { "prompt": "..." } → { "response": "..." }
GET  /api/mindmap               — layout as JSON
GET  /api/next-topic/<topic_id> — { "nextTopicId", "nextTopicName" }
POST /api/quiz/transition       — { "state", "event" } → next quiz state
GET  /api/health                — health check
"""
from __future__ import annotations

import logging
import traceback
from typing import Any

from flask import Blueprint, Flask, current_app, jsonify, redirect, render_template, request
from flask_cors import CORS

from config import Settings
from errors import ConfigError, InvalidTransition, UpstreamError
from llm import GeminiClient, handle_llm_request
from mindmap import EmptyResult, column_views, compute_layout, node_progress, topic_name
from quiz import QuizState, event_from_dict, start, transition
from sequencer import next_topic, next_topic_summary
from storage import Result, SupabaseStore, fetch

logging.basicConfig(level=logging.INFO, format="%(asctime)s  %(message)s")
log = logging.getLogger(__name__)

bp = Blueprint("coursemap", __name__)

_UNSET: Any = object()


# ═══════════════════════════════════════════════════════════════════
# App factory
# ═══════════════════════════════════════════════════════════════════
def create_app(store: Any = _UNSET, llm: Any = _UNSET, settings: Settings | None = None) -> Flask:
    """
    Build the Flask app.  Omitted collaborators are built from *settings*
    (or the environment); pass fakes in tests.
    """
    settings = settings or Settings.from_env()
    if store is _UNSET:
        try:
            store = SupabaseStore.from_settings(settings)
        except ConfigError as exc:
            log.error("storage unavailable: %s", exc)
            store = None
    if llm is _UNSET:
        llm = GeminiClient(settings.gemini_api_key, settings.gemini_model)

    app = Flask(__name__)
    CORS(
        app,
        origins="*",
        methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
    )
    app.extensions["coursemap"] = {"store": store, "llm": llm, "settings": settings}
    app.register_blueprint(bp)
    app.register_error_handler(404, _not_found)
    return app


def _ctx() -> dict[str, Any]:
    return current_app.extensions["coursemap"]


def _store() -> Any:
    store = _ctx()["store"]
    if store is None:
        raise UpstreamError("Database connection error", "Supabase credentials not configured")
    return store


def _request_body() -> dict[str, Any]:
    """JSON object, else form fields, else an empty dict."""
    body = request.get_json(silent=True)
    if isinstance(body, dict):
        return body
    if request.form:
        return request.form.to_dict()
    return {}


def _not_found(_exc: Exception):
    return "Not Found", 404, {"Content-Type": "text/html"}


# ═══════════════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════════════
def _compute_next_topic(topic_id: Any) -> Any:
    store = _store()
    store.get_topics_with_label(topic_id)          # NotFound for an unknown id
    topics = store.get_all_topics_with_labels()
    level2 = store.get_labels_by_level(2)
    return next_topic(topic_id, topics, level2)


def _mind_map(result: Result) -> dict[str, Any]:
    """Template context for /data from a tagged storage result."""
    if not result.success:
        return {"error": "Unable to load mind map data"}
    data = result.data
    layout = compute_layout(
        data["level1"], data["level2"], data["topics"],
        row_pitch=_ctx()["settings"].row_pitch,
    )
    if isinstance(layout, EmptyResult):
        return {"empty": layout.reason}
    return {"mindmap": column_views(layout, data.get("topic_progress") or [])}


# ═══════════════════════════════════════════════════════════════════
# Pages
# ═══════════════════════════════════════════════════════════════════
@bp.route("/", methods=["GET"])
def index():
    return redirect("/chat", code=302)


@bp.route("/chat", methods=["GET"])
def chat_page():
    return render_template("chat.html", active="chat", prompt="", result=None)


@bp.route("/chat", methods=["POST"])
def chat_submit():
    prompt = ""
    try:
        body = _request_body()
        prompt = str(body.get("prompt") or "")
        result = handle_llm_request(_ctx()["llm"], prompt)
        return render_template("chat.html", active="chat", prompt=prompt, result=result)
    except Exception as exc:
        log.error("chat failed: %s\n%s", exc, traceback.format_exc())
        return render_template(
            "chat.html", active="chat", prompt="", result=None, failure=f"Error: {exc}",
        ), 500


@bp.route("/data", methods=["GET"])
def data_page():
    try:
        result = fetch(lambda: _store().load_mind_map_data())
        return render_template("data.html", active="data", **_mind_map(result))
    except Exception as exc:
        log.error("data page failed: %s\n%s", exc, traceback.format_exc())
        return render_template("data.html", active="data", failure=f"Error: {exc}"), 500


@bp.route("/learn", methods=["GET"])
def learn_page():
    topic_id = request.args.get("topic_id")
    if not topic_id:
        return render_template(
            "learn.html", active="learn",
            notice='No topic selected. Please select a topic from the mind map and click "Learn".',
        )
    try:
        result = fetch(lambda: _store().get_questions_with_answers(topic_id))
        if not result.success:
            return render_template(
                "learn.html", active="learn",
                notice=f"Error loading questions: {result.message or result.error or 'Unknown error'}",
            )
        if not result.data:
            return render_template("learn.html", active="learn", notice="No questions found for this topic.")

        info = fetch(lambda: _store().get_topics_with_label(topic_id))
        nxt = fetch(_compute_next_topic, topic_id)
        next_row = nxt.data if nxt.success else None
        summary = next_topic_summary(next_row)
        state = start(result.data, next_topic_id=summary["nextTopicId"])
        log.info(
            "learn  topic=%r  questions=%d  next=%r",
            topic_id, state.total_questions, summary["nextTopicId"],
        )
        return render_template(
            "learn.html",
            active="learn",
            topic_id=topic_id,
            topic_name=topic_name(info.data) if info.success else "Topic",
            questions=state.questions,
            next_topic=summary,
            state=state.to_dict(),
        )
    except Exception as exc:
        log.error("learn page failed: %s\n%s", exc, traceback.format_exc())
        return render_template("learn.html", active="learn", notice=f"Error: {exc}"), 500


# ═══════════════════════════════════════════════════════════════════
# JSON API
# ═══════════════════════════════════════════════════════════════════
@bp.route("/api/health", methods=["GET"])
def health():
    ctx = _ctx()
    llm = ctx["llm"]
    return jsonify({
        "status": "ok",
        "storage": ctx["store"] is not None,
        "llm": bool(llm is not None and llm.configured),
    })


@bp.route("/api/gemini", methods=["POST"])
def gemini_proxy():
    """
    Request JSON:  { "prompt": "Explain recursion" }
    Response JSON: { "response": "..." }  or  { "error": "...", "message": "..." }
    """
    try:
        body = _request_body()
        result = handle_llm_request(_ctx()["llm"], body.get("prompt"))
        return jsonify(result.to_dict()), result.status_code
    except Exception as exc:
        log.error("gemini proxy failed: %s\n%s", exc, traceback.format_exc())
        return jsonify({"error": "Internal server error", "message": str(exc)}), 500


@bp.route("/api/mindmap", methods=["GET"])
def mindmap_json():
    result = fetch(lambda: _store().load_mind_map_data())
    if not result.success:
        return jsonify(result.to_dict()), result.status_code
    data = result.data
    layout = compute_layout(
        data["level1"], data["level2"], data["topics"],
        row_pitch=_ctx()["settings"].row_pitch,
    )
    if isinstance(layout, EmptyResult):
        return jsonify(layout.to_dict())
    payload = layout.to_dict()
    payload["progress"] = node_progress(layout, data.get("topic_progress") or [])
    return jsonify(payload)


@bp.route("/api/next-topic/<topic_id>", methods=["GET"])
def next_topic_json(topic_id: str):
    result = fetch(_compute_next_topic, topic_id)
    if not result.success:
        return jsonify(result.to_dict()), result.status_code
    return jsonify(next_topic_summary(result.data))


@bp.route("/api/quiz/transition", methods=["POST"])
def quiz_transition():
    """
    Request JSON:  { "state": {...}, "event": { "type": "submit", "answerId": 7 } }
    Response JSON: the next state (see QuizState.to_dict)
    """
    body = request.get_json(silent=True) or {}
    if not isinstance(body.get("state"), dict) or not isinstance(body.get("event"), dict):
        return jsonify({"error": "missing 'state' and/or 'event'"}), 400
    try:
        state = QuizState.from_dict(body["state"])
        new_state = transition(state, event_from_dict(body["event"]))
    except InvalidTransition as exc:
        return jsonify({"error": "Invalid transition", "message": str(exc)}), 400
    return jsonify(new_state.to_dict())


# ═══════════════════════════════════════════════════════════════════
# Entry point
# ═══════════════════════════════════════════════════════════════════
if __name__ == "__main__":
    _settings = Settings.from_env()
    _app = create_app(settings=_settings)
    log.info("Server is running on http://localhost:%d", _settings.port)
    _app.run(host=_settings.host, port=_settings.port)
