"""Telegram client factory for eventwatch.

The client is only needed when the Saved Messages callback is enabled or when
running `eventwatch login` to authorize the session.
"""

from __future__ import annotations

import logging
import os
from typing import Optional

from dotenv import load_dotenv
from telethon import TelegramClient


def build_client(session_dir: Optional[str] = None) -> TelegramClient:
    """Create a Telethon client from environment variables.

    API_ID/API_HASH come from the environment (or .env). The session file is
    named after SESSION_NAME (default "eventwatch") and placed in session_dir
    when given, so `login` and the watcher loop share it regardless of cwd.
    """

    load_dotenv()

    api_id = os.getenv("API_ID")
    api_hash = os.getenv("API_HASH")
    session_name = os.getenv("SESSION_NAME", "eventwatch")

    # Fail fast on missing credentials to avoid an ambiguous login prompt.
    if not api_id or not api_hash:
        raise RuntimeError("Missing API_ID or API_HASH in environment")

    if session_dir:
        session_name = os.path.join(session_dir, session_name)

    logging.getLogger(__name__).info("Initializing Telegram client (session %s)", session_name)
    return TelegramClient(session_name, int(api_id), api_hash)
