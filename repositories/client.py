"""
Supabase client initialization.

This module contains *only* the database connection setup and exposes
`get_supabase()` for the repository modules. The client is created on first
use so that importing a repository never requires credentials.

Environment variables required:
- SUPABASE_URL: Your Supabase project URL
- SUPABASE_KEY: Your Supabase API key (use a server-side key only on the backend)
"""

from __future__ import annotations

import threading

# The dependency is `supabase` (supabase-py). If your editor can't resolve it,
# install it in your environment: `pip install supabase`.
from supabase import Client, create_client  # type: ignore[import-not-found]

from config import Config

_client: Client | None = None
_lock = threading.Lock()


def get_supabase() -> Client:
    """Return the process-wide Supabase client, creating it on first call."""

    global _client
    if _client is not None:
        return _client

    with _lock:
        if _client is None:
            url = Config.supabase_url()
            key = Config.supabase_key()
            if not url:
                raise RuntimeError(
                    "Missing environment variable: SUPABASE_URL. "
                    "Set SUPABASE_URL to your Supabase project URL."
                )
            if not key:
                raise RuntimeError(
                    "Missing environment variable: SUPABASE_KEY. "
                    "Set SUPABASE_KEY to your Supabase API key."
                )
            _client = create_client(url, key)
    return _client


def raise_for_error(response: object, action: str) -> list:
    """Raise RuntimeError if a Supabase response carries an error; return its rows."""

    error = getattr(response, "error", None)
    if error:
        raise RuntimeError(f"Failed to {action}: {error}")
    return getattr(response, "data", None) or []


__all__ = ["get_supabase", "raise_for_error"]
