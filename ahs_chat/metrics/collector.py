"""
Turn and latency metrics for a conversation session.
"""

import json
import time
from dataclasses import dataclass, asdict, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Any
import structlog

logger = structlog.get_logger()


@dataclass
class LatencyMetrics:
    """Latency metrics for a specific component."""
    min: float
    max: float
    avg: float
    p50: float
    p95: float
    p99: float
    samples: int


@dataclass
class SessionMetrics:
    """Metrics for a single conversation session."""
    session_id: str
    start_time: datetime
    end_time: Optional[datetime] = None
    turns: Dict[str, int] = field(default_factory=dict)
    generation_latencies: List[float] = field(default_factory=list)
    voice_latencies: List[float] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)
    rejected_inputs: int = 0


class MetricsCollector:
    """
    Collects per-session turn counts, latencies and errors.
    Kept in memory; ``save_metrics`` writes a JSON snapshot when a storage
    path is configured.
    """

    def __init__(self, storage_path: Optional[Path] = None):
        self.storage_path = Path(storage_path) if storage_path else None
        self.current_session: Optional[SessionMetrics] = None
        self.session_start_time = None

    def start_session(self, session_id: str) -> None:
        """Start a new metrics collection session."""
        logger.debug("Starting metrics collection", session_id=session_id)
        self.current_session = SessionMetrics(
            session_id=session_id, start_time=datetime.now()
        )
        self.session_start_time = time.time()

    def end_session(self) -> None:
        """End the current metrics collection session."""
        if not self.current_session:
            logger.warning("No active session to end")
            return

        self.current_session.end_time = datetime.now()
        logger.debug(
            "Ending metrics collection",
            session_id=self.current_session.session_id,
            turns=self.total_turns,
        )

    @property
    def total_turns(self) -> int:
        if not self.current_session:
            return 0
        return sum(self.current_session.turns.values())

    def record_turn(self, kind: str) -> None:
        """Record a settled turn, e.g. ``text``, ``image`` or ``error``."""
        if self.current_session:
            turns = self.current_session.turns
            turns[kind] = turns.get(kind, 0) + 1

    def record_generation_latency(self, latency_ms: float) -> None:
        """Record time from dispatch to settlement of a generation call."""
        if self.current_session:
            self.current_session.generation_latencies.append(latency_ms)

    def record_voice_latency(self, latency_ms: float) -> None:
        """Record time from voice start to transcript."""
        if self.current_session:
            self.current_session.voice_latencies.append(latency_ms)

    def record_error(self, component: str, error: str, metadata: Optional[Dict] = None) -> None:
        """Record an error occurrence."""
        if self.current_session:
            self.current_session.errors.append(
                {
                    "timestamp": datetime.now().isoformat(),
                    "component": component,
                    "error": error,
                    "metadata": metadata or {},
                }
            )

    def record_rejected_input(self) -> None:
        """Record an action rejected because a response was pending."""
        if self.current_session:
            self.current_session.rejected_inputs += 1

    def _calculate_latency_stats(self, latencies: List[float]) -> LatencyMetrics:
        """Calculate statistical metrics for a list of latencies."""
        if not latencies:
            return LatencyMetrics(0, 0, 0, 0, 0, 0, 0)

        sorted_latencies = sorted(latencies)
        count = len(sorted_latencies)

        def percentile(p: float) -> float:
            index = int(p * count)
            if index >= count:
                index = count - 1
            return sorted_latencies[index]

        return LatencyMetrics(
            min=sorted_latencies[0],
            max=sorted_latencies[-1],
            avg=sum(latencies) / count,
            p50=percentile(0.5),
            p95=percentile(0.95),
            p99=percentile(0.99),
            samples=count,
        )

    def get_summary(self) -> Dict[str, Any]:
        """Get a summary of current session metrics."""
        if not self.current_session:
            return {"error": "No active session"}

        session_duration = 0
        if self.session_start_time:
            session_duration = time.time() - self.session_start_time

        session = self.current_session
        return {
            "session_id": session.session_id,
            "session_duration_seconds": session_duration,
            "total_turns": self.total_turns,
            "turns": dict(session.turns),
            "generation_latency_ms": asdict(
                self._calculate_latency_stats(session.generation_latencies)
            ),
            "voice_latency_ms": asdict(
                self._calculate_latency_stats(session.voice_latencies)
            ),
            "total_errors": len(session.errors),
            "rejected_inputs": session.rejected_inputs,
            "error_rate": len(session.errors) / max(1, self.total_turns),
        }

    def save_metrics(self) -> Optional[Path]:
        """Save current session metrics to storage."""
        if not self.current_session:
            logger.warning("No session to save")
            return None
        if not self.storage_path:
            logger.debug("No metrics storage path configured")
            return None

        try:
            self.storage_path.mkdir(parents=True, exist_ok=True)
            filename = (
                f"session_{self.current_session.session_id}_"
                f"{datetime.now().strftime('%Y%m%d_%H%M%S')}.json"
            )
            filepath = self.storage_path / filename

            session_dict = asdict(self.current_session)
            session_dict["start_time"] = self.current_session.start_time.isoformat()
            session_dict["end_time"] = (
                self.current_session.end_time.isoformat()
                if self.current_session.end_time
                else None
            )

            with open(filepath, "w") as f:
                json.dump(session_dict, f, indent=2)

            logger.info("Metrics saved", filepath=str(filepath))
            return filepath

        except OSError as e:
            logger.error("Failed to save metrics", error=str(e))
            return None
