from __future__ import annotations

import json

import pytest

from boardflow import worker


def test_send_notifications_command(monkeypatch, capsys) -> None:
  calls: list[int] = []

  async def fake_send(limit: int) -> dict:
    calls.append(limit)
    return {"message": "Sent 2 notifications", "sent": 2, "skipped": 0, "failed": 0}

  monkeypatch.setattr(worker, "_send_notifications", fake_send)
  assert worker.main(["send-notifications", "--limit", "5"]) == 0
  assert calls == [5]
  assert json.loads(capsys.readouterr().out)["sent"] == 2


def test_run_automation_command_reports_failed_batches(monkeypatch, capsys, caplog) -> None:
  seen: list[tuple] = []

  async def fake_run(board_ids, tz) -> dict:
    seen.append((board_ids, tz))
    return {"boards": [{"boardId": "b1", "moved": [], "conflicts": [], "failed": ["t1"], "error": "boom"}]}

  monkeypatch.setattr(worker, "_run_automation", fake_run)
  assert worker.main(["run-automation", "--board", "b1", "--timezone", "Europe/Berlin"]) == 1
  assert seen == [(["b1"], "Europe/Berlin")]
  assert json.loads(capsys.readouterr().out)["boards"][0]["error"] == "boom"
  assert any(r.levelname == "ERROR" and "board=b1" in r.getMessage() for r in caplog.records)


def test_command_is_required() -> None:
  with pytest.raises(SystemExit):
    worker.main([])
