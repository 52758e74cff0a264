from __future__ import annotations

import hashlib
import hmac
import secrets

from boardflow.config import settings


def api_token_new() -> str:
  return "bf_" + secrets.token_urlsafe(32)


def api_token_hash(token: str) -> str:
  # Keyed hash so DB leaks don't allow offline token matching.
  key = (settings.app_secret or "").encode("utf-8")
  msg = (token or "").strip().encode("utf-8")
  return hmac.new(key, msg, hashlib.sha256).hexdigest()


def token_hint(token: str) -> str:
  t = (token or "").strip()
  if len(t) <= 8:
    return "****"
  return f"****{t[-4:]}"


def bearer_matches(auth_header: str | None, expected: str | None) -> bool:
  if not expected or not auth_header or not auth_header.lower().startswith("bearer "):
    return False
  provided = auth_header.split(" ", 1)[1].strip()
  return secrets.compare_digest(provided.encode("utf-8"), expected.strip().encode("utf-8"))
