"""
Settings — Environment configuration for the sheet API.

Reads .env once via python-dotenv, then plain os.getenv with defaults.

  MONGODB_URI              Mongo connection string (default: mongodb://localhost:27017)
  SHEET_DB_NAME            database name (default: character_sheets)
  SHEET_STORE              "mongo" or "memory" (default: mongo)
  SHEET_API_TOKENS         "token:user,token2:user2" bearer token map
  SHEET_TRUST_USER_HEADER  "1" to accept X-User-Id from a trusted proxy
  SHEET_HOST / SHEET_PORT  bind address (default: 127.0.0.1:8000)
  SHEET_RULESET_PATH       alternate rule set YAML
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Dict

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger("Settings")

_TRUE = {"1", "true", "yes", "on"}


def parse_token_map(raw: str) -> Dict[str, str]:
    """'tok1:alice, tok2:bob' -> {'tok1': 'alice', 'tok2': 'bob'}. Malformed entries are skipped."""
    tokens = {}
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        if ":" not in entry:
            logger.warning("Ignoring malformed SHEET_API_TOKENS entry (expected token:user)")
            continue
        token, user = entry.split(":", 1)
        if token.strip() and user.strip():
            tokens[token.strip()] = user.strip()
    return tokens


@dataclass
class Settings:
    mongodb_uri: str = "mongodb://localhost:27017"
    db_name: str = "character_sheets"
    store_backend: str = "mongo"
    api_tokens: Dict[str, str] = field(default_factory=dict)
    trust_user_header: bool = False
    host: str = "127.0.0.1"
    port: int = 8000
    ruleset_path: str = ""

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            mongodb_uri=os.getenv("MONGODB_URI", "mongodb://localhost:27017"),
            db_name=os.getenv("SHEET_DB_NAME", "character_sheets"),
            store_backend=os.getenv("SHEET_STORE", "mongo").strip().lower(),
            api_tokens=parse_token_map(os.getenv("SHEET_API_TOKENS", "")),
            trust_user_header=os.getenv("SHEET_TRUST_USER_HEADER", "").strip().lower() in _TRUE,
            host=os.getenv("SHEET_HOST", "127.0.0.1"),
            port=int(os.getenv("SHEET_PORT", "8000")),
            ruleset_path=os.getenv("SHEET_RULESET_PATH", ""),
        )
