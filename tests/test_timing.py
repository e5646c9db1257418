"""Tests for patent_ranker.timing - the pipeline trace recorder."""

import pytest

from patent_ranker.timing import TraceRecorder


class TestTraceRecorder:
    def test_stages_in_order(self):
        recorder = TraceRecorder()
        with recorder.stage("Query Preprocessing") as stage:
            stage.result_count = 1
        recorder.add("BM25 Filtering", 0, 0, "failed")
        trace = recorder.finish()

        assert [s.stage for s in trace.stages] == ["Query Preprocessing", "BM25 Filtering"]
        assert trace.stage("Query Preprocessing").result_count == 1
        assert trace.stage("BM25 Filtering").status == "failed"
        assert trace.stage("missing") is None
        assert trace.total_ms >= trace.stage("Query Preprocessing").timing_ms

    def test_stage_is_recorded_when_it_raises(self):
        recorder = TraceRecorder()
        with pytest.raises(RuntimeError):
            with recorder.stage("MMR Diversity"):
                raise RuntimeError("boom")
        assert recorder.finish().stage("MMR Diversity").status == "failed"

    def test_finished_trace_is_immutable(self):
        recorder = TraceRecorder()
        trace = recorder.finish()
        assert recorder.finish() is trace
        with pytest.raises(RuntimeError):
            recorder.add("late", 1.0)
