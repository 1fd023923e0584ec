"""
Supabase client initialization.

This module contains *only* the database connection setup and exposes a
single `get_supabase()` accessor for other repository modules to use. The
client is created on first use so pure domain code and tests can be imported
without credentials.

Environment variables required:
- SUPABASE_URL: Your Supabase project URL
- SUPABASE_KEY: Your Supabase service-role key (server-side only; the
  purchase tables are not readable with the anon key)
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from postgrest.exceptions import APIError
from supabase import Client, create_client

# Look for .env in the project root
env_path = Path(__file__).parent.parent / ".env"
load_dotenv(dotenv_path=env_path)


@lru_cache(maxsize=1)
def get_supabase() -> Client:
    """Return the process-wide Supabase client, creating it on first call."""

    supabase_url = os.getenv("SUPABASE_URL")
    supabase_key = os.getenv("SUPABASE_KEY")

    if not supabase_url:
        raise RuntimeError(
            "Missing environment variable: SUPABASE_URL. "
            "Set SUPABASE_URL to your Supabase project URL."
        )

    if not supabase_key:
        raise RuntimeError(
            "Missing environment variable: SUPABASE_KEY. "
            "Set SUPABASE_KEY to your Supabase service-role key."
        )

    return create_client(supabase_url, supabase_key)


def execute(query: Any, action: str) -> Any:
    """
    Run a PostgREST query.

    Raises:
        RuntimeError: if the request fails or the response carries an error
    """
    try:
        response = query.execute()
    except APIError as e:
        raise RuntimeError(f"Failed to {action}: {e.message}") from e

    error = getattr(response, "error", None)
    if error:
        raise RuntimeError(f"Failed to {action}: {error}")
    return response


__all__ = ["get_supabase", "execute"]
