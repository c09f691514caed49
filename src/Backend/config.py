"""Environment-driven settings (``.env`` is honoured via python-dotenv)."""
from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

# First non-empty variable wins.
_SUPABASE_URL_VARS = ("SUPABASE_URL", "NEXT_PUBLIC_SUPABASE_URL", "VITE_SUPABASE_URL")
_SUPABASE_KEY_VARS = (
    "SUPABASE_KEY",
    "SUPABASE_ANON_KEY",
    "NEXT_PUBLIC_SUPABASE_ANON_KEY",
    "VITE_SUPABASE_ANON_KEY",
    "SUPABASE_SERVICE_ROLE_KEY",
)

DEFAULT_GEMINI_MODEL = "gemini-2.5-flash"
DEFAULT_ROW_PITCH = 120


def _first_env(names: tuple[str, ...]) -> str | None:
    for name in names:
        value = os.environ.get(name)
        if value:
            return value
    return None


@dataclass(slots=True)
class Settings:
    supabase_url: str | None = None
    supabase_key: str | None = None
    gemini_api_key: str | None = None
    gemini_model: str = DEFAULT_GEMINI_MODEL
    host: str = "0.0.0.0"
    port: int = 3000
    row_pitch: int = DEFAULT_ROW_PITCH

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "Settings":
        if dotenv:
            load_dotenv()
        return cls(
            supabase_url=_first_env(_SUPABASE_URL_VARS),
            supabase_key=_first_env(_SUPABASE_KEY_VARS),
            gemini_api_key=os.environ.get("GEMINI_API_KEY") or None,
            gemini_model=os.environ.get("GEMINI_MODEL") or DEFAULT_GEMINI_MODEL,
            host=os.environ.get("HOST", "0.0.0.0"),
            port=int(os.environ.get("PORT", 3000)),
            row_pitch=int(os.environ.get("MINDMAP_ROW_PITCH", DEFAULT_ROW_PITCH)),
        )

    def missing_supabase(self) -> list[str]:
        """Names of the Supabase settings that are not configured."""
        missing = []
        if not self.supabase_url:
            missing.append("SUPABASE_URL")
        if not self.supabase_key:
            missing.append("SUPABASE_KEY or SUPABASE_ANON_KEY")
        return missing
