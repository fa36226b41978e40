"""
Metrics Collection for Odoo User Provisioning

Collects and exposes metrics for:
- Saga lifecycle (started, completed, failed, compensated) per saga type
- Remote call outcomes (calls, failures, session refreshes) per model.method
- Best-effort warnings by code
- Step timings (average, p95)

Metrics are kept in-memory for the lifetime of the process.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from threading import Lock
from typing import Dict, List, Optional, Any
import statistics


# =============================================================================
# Metric Data Classes
# =============================================================================

def _saga_counters() -> Dict[str, int]:
    return {"started": 0, "completed": 0, "failed": 0, "compensated": 0, "compensation_failed": 0}


@dataclass
class SagaMetrics:
    """Metrics for saga execution."""
    started: int = 0
    completed: int = 0
    failed: int = 0
    compensated: int = 0
    compensation_failed: int = 0
    in_progress: int = 0

    # By saga type ("provision", "deactivate")
    by_type: Dict[str, Dict[str, int]] = field(default_factory=lambda: defaultdict(_saga_counters))


@dataclass
class RemoteCallMetrics:
    """Metrics for Odoo JSON-RPC calls."""
    calls: int = 0
    failures: int = 0
    session_refreshes: int = 0
    authentications: int = 0
    authentication_failures: int = 0

    # By "model.method"
    by_operation: Dict[str, Dict[str, int]] = field(
        default_factory=lambda: defaultdict(lambda: {"calls": 0, "failures": 0, "session_refreshes": 0})
    )


@dataclass
class TimingMetrics:
    """Processing time metrics."""
    # Raw timing samples (keep last N for percentile calculations)
    samples: List[float] = field(default_factory=list)
    max_samples: int = 1000

    # By stage
    by_stage: Dict[str, List[float]] = field(default_factory=lambda: defaultdict(list))

    def add_sample(self, duration_ms: float, stage: str = None):
        """Add a timing sample."""
        self.samples.append(duration_ms)
        if len(self.samples) > self.max_samples:
            self.samples = self.samples[-self.max_samples:]

        if stage:
            self.by_stage[stage].append(duration_ms)
            if len(self.by_stage[stage]) > self.max_samples:
                self.by_stage[stage] = self.by_stage[stage][-self.max_samples:]

    def get_average(self, stage: str = None) -> float:
        """Get average processing time."""
        samples = self.by_stage.get(stage, []) if stage else self.samples
        return statistics.mean(samples) if samples else 0.0

    def get_p95(self, stage: str = None) -> float:
        """Get 95th percentile processing time."""
        samples = self.by_stage.get(stage, []) if stage else self.samples
        if not samples:
            return 0.0
        sorted_samples = sorted(samples)
        idx = int(len(sorted_samples) * 0.95)
        return sorted_samples[min(idx, len(sorted_samples) - 1)]


# =============================================================================
# Metrics Collector (Singleton)
# =============================================================================

class MetricsCollector:
    """
    Thread-safe metrics collector for provisioning sagas.

    Usage:
        metrics = MetricsCollector.instance()
        metrics.record_saga_started("provision")
        metrics.record_remote_call("res.users", "create", success=True)
        metrics.record_processing_time("provision.groups", 120.5)
    """

    _instance: Optional["MetricsCollector"] = None
    _lock = Lock()

    def __init__(self):
        self.sagas = SagaMetrics()
        self.remote_calls = RemoteCallMetrics()
        self.warnings: Dict[str, int] = defaultdict(int)
        self.timings = TimingMetrics()
        self._lock = Lock()

    @classmethod
    def instance(cls) -> "MetricsCollector":
        """Get singleton instance."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Drop the singleton so the next instance() starts from zero."""
        with cls._lock:
            cls._instance = None

    # =========================================================================
    # Saga Metrics
    # =========================================================================

    def record_saga_started(self, saga_type: str):
        """Record a saga start."""
        with self._lock:
            self.sagas.started += 1
            self.sagas.in_progress += 1
            self.sagas.by_type[saga_type]["started"] += 1

    def record_saga_completed(self, saga_type: str, duration_ms: float = None):
        """Record a saga completion."""
        with self._lock:
            self.sagas.completed += 1
            self.sagas.in_progress = max(0, self.sagas.in_progress - 1)
            self.sagas.by_type[saga_type]["completed"] += 1

            if duration_ms:
                self.timings.add_sample(duration_ms, f"saga.{saga_type}")

    def record_saga_failed(self, saga_type: str):
        """Record a saga failure."""
        with self._lock:
            self.sagas.failed += 1
            self.sagas.in_progress = max(0, self.sagas.in_progress - 1)
            self.sagas.by_type[saga_type]["failed"] += 1

    def record_compensation(self, saga_type: str, success: bool):
        """Record a compensation attempt outcome."""
        key = "compensated" if success else "compensation_failed"
        with self._lock:
            setattr(self.sagas, key, getattr(self.sagas, key) + 1)
            self.sagas.by_type[saga_type][key] += 1

    # =========================================================================
    # Remote Call Metrics
    # =========================================================================

    def record_remote_call(self, model: str, method: str, success: bool):
        """Record one call_kw attempt."""
        op = f"{model}.{method}"
        with self._lock:
            self.remote_calls.calls += 1
            self.remote_calls.by_operation[op]["calls"] += 1
            if not success:
                self.remote_calls.failures += 1
                self.remote_calls.by_operation[op]["failures"] += 1

    def record_session_refresh(self, model: str, method: str):
        """Record a re-authentication triggered by session expiry."""
        op = f"{model}.{method}"
        with self._lock:
            self.remote_calls.session_refreshes += 1
            self.remote_calls.by_operation[op]["session_refreshes"] += 1

    def record_authentication(self, success: bool):
        """Record a session authentication attempt."""
        with self._lock:
            self.remote_calls.authentications += 1
            if not success:
                self.remote_calls.authentication_failures += 1

    # =========================================================================
    # Warnings
    # =========================================================================

    def record_warning(self, code: str):
        """Record a best-effort step that degraded."""
        with self._lock:
            self.warnings[code] += 1

    # =========================================================================
    # Timing Metrics
    # =========================================================================

    def record_processing_time(self, stage: str, duration_ms: float):
        """Record a processing time sample."""
        with self._lock:
            self.timings.add_sample(duration_ms, stage)

    def get_timing_stats(self, stage: str = None) -> Dict[str, float]:
        """Get timing statistics for a stage."""
        with self._lock:
            return {
                "average_ms": self.timings.get_average(stage),
                "p95_ms": self.timings.get_p95(stage),
                "sample_count": len(self.timings.by_stage.get(stage, []) if stage else self.timings.samples),
            }

    # =========================================================================
    # Summary
    # =========================================================================

    def get_summary(self) -> Dict[str, Any]:
        """Get a summary of all metrics."""
        with self._lock:
            return {
                "sagas": {
                    "started": self.sagas.started,
                    "completed": self.sagas.completed,
                    "failed": self.sagas.failed,
                    "compensated": self.sagas.compensated,
                    "compensation_failed": self.sagas.compensation_failed,
                    "in_progress": self.sagas.in_progress,
                    "by_type": {k: dict(v) for k, v in self.sagas.by_type.items()},
                },
                "remote_calls": {
                    "calls": self.remote_calls.calls,
                    "failures": self.remote_calls.failures,
                    "session_refreshes": self.remote_calls.session_refreshes,
                    "authentications": self.remote_calls.authentications,
                    "authentication_failures": self.remote_calls.authentication_failures,
                    "by_operation": {k: dict(v) for k, v in self.remote_calls.by_operation.items()},
                },
                "warnings": dict(self.warnings),
                "timings": {
                    "overall": {
                        "average_ms": self.timings.get_average(),
                        "p95_ms": self.timings.get_p95(),
                    },
                    "by_stage": {
                        stage: {
                            "average_ms": self.timings.get_average(stage),
                            "p95_ms": self.timings.get_p95(stage),
                        }
                        for stage in self.timings.by_stage.keys()
                    },
                },
            }


# =============================================================================
# Module-level convenience functions
# =============================================================================

def get_metrics() -> MetricsCollector:
    """Get the global metrics collector."""
    return MetricsCollector.instance()


def record_saga_started(saga_type: str):
    get_metrics().record_saga_started(saga_type)


def record_saga_completed(saga_type: str, duration_ms: float = None):
    get_metrics().record_saga_completed(saga_type, duration_ms)


def record_saga_failed(saga_type: str):
    get_metrics().record_saga_failed(saga_type)


def record_compensation(saga_type: str, success: bool):
    get_metrics().record_compensation(saga_type, success)


def record_remote_call(model: str, method: str, success: bool):
    get_metrics().record_remote_call(model, method, success)


def record_session_refresh(model: str, method: str):
    get_metrics().record_session_refresh(model, method)


def record_authentication(success: bool):
    get_metrics().record_authentication(success)


def record_warning(code: str):
    get_metrics().record_warning(code)


def record_processing_time(stage: str, duration_ms: float):
    get_metrics().record_processing_time(stage, duration_ms)
