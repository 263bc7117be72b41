from __future__ import annotations

from collections import Counter
from statistics import mean
from threading import Lock


class _TurnTelemetryStore:
    def __init__(self) -> None:
        self._lock = Lock()
        self._success_latencies_ms: list[float] = []
        self.total_turns: int = 0
        self.successful_turns: int = 0
        self.failed_turns: int = 0
        self.xp_awarded: int = 0
        self.level_ups: int = 0
        self.failures_by_kind: Counter[str] = Counter()

    def reset(self) -> None:
        with self._lock:
            self._success_latencies_ms = []
            self.total_turns = 0
            self.successful_turns = 0
            self.failed_turns = 0
            self.xp_awarded = 0
            self.level_ups = 0
            self.failures_by_kind = Counter()

    def record_success(self, *, latency_ms: float, xp_awarded: int = 0) -> None:
        with self._lock:
            self.total_turns += 1
            self.successful_turns += 1
            self._success_latencies_ms.append(float(latency_ms))
            if len(self._success_latencies_ms) > 1000:
                self._success_latencies_ms = self._success_latencies_ms[-1000:]
            if xp_awarded > 0:
                self.xp_awarded += int(xp_awarded)

    def record_failure(self, *, error_kind: str) -> None:
        with self._lock:
            self.total_turns += 1
            self.failed_turns += 1
            self.failures_by_kind[str(error_kind)] += 1

    def record_level_up(self) -> None:
        with self._lock:
            self.level_ups += 1

    def summary(self) -> dict:
        with self._lock:
            latencies = list(self._success_latencies_ms)
            total = int(self.total_turns)
            failure_rate = 0.0 if total <= 0 else float(self.failed_turns) / float(total)

            avg_latency = float(mean(latencies)) if latencies else 0.0
            p95_latency = 0.0
            if latencies:
                ordered = sorted(latencies)
                idx = max(0, min(len(ordered) - 1, round(0.95 * (len(ordered) - 1))))
                p95_latency = float(ordered[idx])

            return {
                "total_turns": total,
                "successful_turns": int(self.successful_turns),
                "failed_turns": int(self.failed_turns),
                "failure_rate": round(failure_rate, 4),
                "avg_turn_latency_ms": round(avg_latency, 3),
                "p95_turn_latency_ms": round(p95_latency, 3),
                "failures_by_kind": dict(self.failures_by_kind),
                "xp_awarded": int(self.xp_awarded),
                "level_ups": int(self.level_ups),
            }


_turn_telemetry = _TurnTelemetryStore()


def reset_turn_telemetry() -> None:
    _turn_telemetry.reset()


def record_turn_success(*, latency_ms: float, xp_awarded: int = 0) -> None:
    _turn_telemetry.record_success(latency_ms=latency_ms, xp_awarded=xp_awarded)


def record_turn_failure(*, error_kind: str) -> None:
    _turn_telemetry.record_failure(error_kind=error_kind)


def record_level_up() -> None:
    _turn_telemetry.record_level_up()


def get_turn_telemetry_summary() -> dict:
    return _turn_telemetry.summary()
