"""Tests for patent_ranker.config - settings from the environment."""

import pytest

from patent_ranker.config import PipelineSettings


class TestSettings:
    def test_defaults(self):
        settings = PipelineSettings()
        assert settings.coherence_top_k == 20
        assert settings.prf_top_m == 5
        assert settings.worker_pool_size == 5
        assert settings.diversity_coefficient == 0.2
        assert settings.vector_min_similarity == 0.5

    def test_from_env_overrides(self):
        settings = PipelineSettings.from_env({
            "RANKER_COHERENCE_TOP_K": "10",
            "RANKER_REQUEST_DEADLINE": "12.5",
            "RANKER_WORKER_POOL_SIZE": "",
            "UNRELATED": "x",
        })
        assert settings.coherence_top_k == 10
        assert isinstance(settings.coherence_top_k, int)
        assert settings.request_deadline == 12.5
        assert settings.worker_pool_size == 5

    def test_from_env_rejects_non_numeric(self):
        with pytest.raises(ValueError, match="RANKER_PRF_TOP_M") as exc:
            PipelineSettings.from_env({"RANKER_PRF_TOP_M": "five"})
        assert exc.value.__cause__ is None
        assert exc.value.__suppress_context__

    def test_settings_are_frozen(self):
        with pytest.raises(AttributeError):
            PipelineSettings().prf_top_m = 3
