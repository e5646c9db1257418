"""
Stage timing for the pipeline trace.

Usage:
    recorder = TraceRecorder()
    with recorder.stage("BM25 Filtering") as stage:
        hits = await lexical.search(text, limit)
        stage.result_count = len(hits)
    trace = recorder.finish()
"""

import logging
import time
from typing import Any, List, Optional

from patent_ranker.models import PipelineTrace, StageTiming

logger = logging.getLogger(__name__)


class Timer:
    """Context-manager timer, usable around awaits."""

    def __init__(self, label: str = ""):
        self.label = label
        self._start: float = 0.0
        self.elapsed_s: float = 0.0

    @property
    def elapsed_ms(self) -> float:
        return self.elapsed_s * 1000

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, *_: Any) -> None:
        self.elapsed_s = time.perf_counter() - self._start
        if self.label:
            logger.debug(f"{self.label} completed in {self.elapsed_ms:.1f}ms")


class _Stage(Timer):
    def __init__(self, recorder: "TraceRecorder", name: str):
        super().__init__(name)
        self.recorder = recorder
        self.result_count = 0
        self.status = "ok"

    def __exit__(self, exc_type, *rest: Any) -> None:
        super().__exit__(exc_type, *rest)
        status = self.status if exc_type is None else "failed"
        self.recorder.add(self.label, self.elapsed_ms, self.result_count, status)


class TraceRecorder:
    """Collects stage timings in order. Entries are recorded even if a stage raises."""

    def __init__(self):
        self._start = time.perf_counter()
        self._stages: List[StageTiming] = []
        self._trace: Optional[PipelineTrace] = None

    def stage(self, name: str) -> _Stage:
        return _Stage(self, name)

    def add(self, name: str, timing_ms: float, result_count: int = 0, status: str = "ok") -> None:
        if self._trace is not None:
            raise RuntimeError("trace already finished")
        self._stages.append(StageTiming(stage=name, timing_ms=timing_ms, result_count=result_count, status=status))

    def finish(self) -> PipelineTrace:
        if self._trace is None:
            total_ms = (time.perf_counter() - self._start) * 1000
            self._trace = PipelineTrace(stages=tuple(self._stages), total_ms=total_ms)
        return self._trace
