"""
Supabase client construction.

This module contains *only* the database connection setup. The client is built
explicitly by `create_supabase_client()` at process start and handed to the
repositories that need it; nothing connects at import time.

Environment variables required:
- SUPABASE_URL: Your Supabase project URL
- SUPABASE_KEY: Your Supabase API key (use a server-side key only on the backend)
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# The dependency is `supabase` (supabase-py). If your editor can't resolve it,
# install it in your environment: `pip install supabase`.
from supabase import Client, create_client  # type: ignore[import-not-found]

# Look for .env in the project root
ENV_PATH = Path(__file__).parent.parent / ".env"


def create_supabase_client(url: Optional[str] = None, key: Optional[str] = None) -> Client:
    """
    Build a Supabase client from explicit credentials or the environment.

    Raises RuntimeError if either credential is missing.
    """

    load_dotenv(dotenv_path=ENV_PATH)

    # Read credentials from the environment to avoid hard-coding secrets in code.
    url = url or os.getenv("SUPABASE_URL")
    key = key or os.getenv("SUPABASE_KEY")

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

    return create_client(url, key)


__all__ = ["create_supabase_client", "ENV_PATH"]
