from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

import httpx


@dataclass(frozen=True)
class WebhookPayload:
  # Wire contract for owner webhooks; keep field names stable.
  subject: str
  message: str
  board: str
  column: str
  due_date: str | None
  notification_at: str | None
  task_id: str

  def as_dict(self) -> dict[str, Any]:
    return asdict(self)


@dataclass(frozen=True)
class DeliveryResult:
  ok: bool
  status_code: int | None = None
  error: str | None = None


def webhook_host(url: str) -> str:
  try:
    return httpx.URL(url).host or "?"
  except httpx.InvalidURL:
    return "?"


async def post_webhook(client: httpx.AsyncClient, url: str, payload: WebhookPayload) -> DeliveryResult:
  try:
    r = await client.post(url, json=payload.as_dict(), headers={"Content-Type": "application/json"})
  except (httpx.HTTPError, httpx.InvalidURL) as e:
    return DeliveryResult(ok=False, error=f"{type(e).__name__}: {e}")
  if r.is_success:
    return DeliveryResult(ok=True, status_code=r.status_code)
  return DeliveryResult(ok=False, status_code=r.status_code, error=f"HTTP {r.status_code}")
