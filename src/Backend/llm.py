from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import requests

from config import DEFAULT_GEMINI_MODEL
from errors import UpstreamError

"""
Gemini collaborator
-------------------
One call: generate_text(prompt) -> str, over the public generateContent REST
endpoint.  Any failure (network, quota, HTTP error, unexpected payload) is an
UpstreamError; handle_llm_request() turns that into an LLMResult for the
routes, mirroring the storage layer's tagged results.
"""

log = logging.getLogger(__name__)

_API_BASE = "https://generativelanguage.googleapis.com/v1beta"
_TIMEOUT = 60  # seconds

_SESSION = requests.Session()
_SESSION.headers.update({
	"Content-Type": "application/json",
	"User-Agent": "CourseMap/1.0 Python-requests",
})

GEMINI_FAILED = "Failed to get response from Gemini"


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------
def extract_response_text(payload: Any) -> str:
	"""Text of a generateContent reply; handles the flat and candidate shapes."""
	if not isinstance(payload, dict):
		raise UpstreamError(GEMINI_FAILED, "malformed response: not a JSON object")
	if isinstance(payload.get("text"), str):
		return payload["text"]
	inner = payload.get("response")
	if isinstance(inner, dict) and isinstance(inner.get("text"), str):
		return inner["text"]

	candidates = payload.get("candidates") or []
	if candidates:
		parts = ((candidates[0] or {}).get("content") or {}).get("parts") or []
		texts = [p["text"] for p in parts if isinstance(p, dict) and isinstance(p.get("text"), str)]
		if texts:
			return "".join(texts)

	block = (payload.get("promptFeedback") or {}).get("blockReason")
	if block:
		raise UpstreamError(GEMINI_FAILED, f"prompt blocked: {block}")
	raise UpstreamError(GEMINI_FAILED, "malformed response: no text in candidates")


def _error_message(resp: requests.Response) -> str:
	try:
		body = resp.json()
	except ValueError:
		return f"HTTP {resp.status_code}: {resp.text[:200]}"
	err = body.get("error") if isinstance(body, dict) else None
	if isinstance(err, dict) and err.get("message"):
		return f"HTTP {resp.status_code}: {err['message']}"
	return f"HTTP {resp.status_code}"


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------
class GeminiClient:
	"""Stateless apart from its HTTP session; safe to share across requests."""

	def __init__(
		self,
		api_key: str | None,
		model: str = DEFAULT_GEMINI_MODEL,
		session: requests.Session | None = None,
		base_url: str = _API_BASE,
		timeout: float = _TIMEOUT,
	) -> None:
		self.api_key = api_key
		self.model = model
		self.session = session if session is not None else _SESSION
		self.base_url = base_url.rstrip("/")
		self.timeout = timeout

	@property
	def configured(self) -> bool:
		return bool(self.api_key)

	def generate_text(self, prompt: str) -> str:
		if not self.configured:
			raise UpstreamError(
				"Server configuration error: API key not set",
				"GEMINI_API_KEY environment variable is required",
			)
		url = f"{self.base_url}/models/{self.model}:generateContent"
		body = {"contents": [{"parts": [{"text": prompt}]}]}
		try:
			resp = self.session.post(
				url,
				json=body,
				headers={"x-goog-api-key": self.api_key},
				timeout=self.timeout,
			)
		except requests.exceptions.RequestException as exc:
			raise UpstreamError(GEMINI_FAILED, str(exc)) from exc

		if resp.status_code >= 400:
			raise UpstreamError(GEMINI_FAILED, _error_message(resp))
		try:
			payload = resp.json()
		except ValueError as exc:
			raise UpstreamError(GEMINI_FAILED, "malformed response: body is not JSON") from exc
		return extract_response_text(payload)


# ---------------------------------------------------------------------------
# Tagged result for routes
# ---------------------------------------------------------------------------
@dataclass(slots=True)
class LLMResult:
	success: bool
	status_code: int = 200
	response: str | None = None
	error: str | None = None
	message: str | None = None

	def to_dict(self) -> dict[str, Any]:
		if self.success:
			return {"response": self.response}
		return {"error": self.error, "message": self.message}


def handle_llm_request(client: GeminiClient | None, prompt: Any) -> LLMResult:
	"""Validate *prompt*, call Gemini, and tag the outcome."""
	if not isinstance(prompt, str) or not prompt.strip():
		return LLMResult(
			success=False, status_code=400,
			error="Prompt is required", message="Prompt must be a non-empty string",
		)
	if client is None or not client.configured:
		log.error("gemini  GEMINI_API_KEY environment variable is not set")
		return LLMResult(
			success=False, status_code=500,
			error="Server configuration error: API key not set",
			message="GEMINI_API_KEY environment variable is required",
		)

	log.info("gemini  prompt=%r", prompt)
	try:
		text = client.generate_text(prompt.strip())
	except UpstreamError as exc:
		log.error("gemini  request failed: %s", exc.message)
		return LLMResult(success=False, status_code=exc.status_code, error=exc.error, message=exc.message)

	log.info("gemini  response chars=%d", len(text))
	return LLMResult(success=True, status_code=200, response=text)
