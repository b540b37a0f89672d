from __future__ import annotations

import math
from collections import deque
from datetime import datetime, timedelta
from time import monotonic

from taskpulse.models import utcnow

WINDOWS = {"15m": timedelta(minutes=15), "24h": timedelta(hours=24)}


def _p95(latencies: list[float]) -> float:
  if not latencies:
    return 0.0
  ranked = sorted(latencies)
  return round(ranked[math.ceil(0.95 * len(ranked)) - 1], 2)


class RequestMetrics:
  """Request outcomes kept for the longest window, summarized per window for `GET /system/metrics`."""

  def __init__(self) -> None:
    self._started = monotonic()
    self._seen: deque[tuple[datetime, bool, float]] = deque()

  def observe(self, status_code: int, latency_ms: float, *, now: datetime | None = None) -> None:
    now = now or utcnow()
    self._seen.append((now, status_code >= 500, latency_ms))
    horizon = now - max(WINDOWS.values())
    while self._seen and self._seen[0][0] < horizon:
      self._seen.popleft()

  def snapshot(self, *, now: datetime | None = None) -> dict:
    now = now or utcnow()
    windows = {}
    for name, span in WINDOWS.items():
      rows = [r for r in self._seen if r[0] >= now - span]
      errors = sum(1 for _, failed, _ in rows if failed)
      windows[name] = {
        "requests": len(rows),
        "errors": errors,
        "errorRate": round(100.0 * errors / len(rows), 2) if rows else 0.0,
        "p95LatencyMs": _p95([latency for _, _, latency in rows]),
      }
    return {"uptimeSeconds": int(monotonic() - self._started), "windows": windows}


request_metrics = RequestMetrics()
