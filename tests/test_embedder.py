"""Tests for the embedding service and its hashing fallback."""

import math
import time
from unittest.mock import MagicMock

import pytest

from conftest import MANILA
from tala.src.core.embedder import EmbeddingService, HashingEmbedder, _stable_bucket


class TestHashingEmbedder:
    def test_deterministic(self):
        embedder = HashingEmbedder(64)
        first = embedder.embed("Enrollment opens in January", ("enrollment",), {"date": "2026-01-05"})
        second = HashingEmbedder(64).embed("Enrollment opens in January", ("enrollment",), {"date": "2026-01-05"})
        assert first == second

    def test_fixed_dimension_and_unit_norm(self):
        vector = HashingEmbedder(384).embed("The history of the university")
        assert len(vector) == 384
        assert math.isclose(math.sqrt(sum(v * v for v in vector)), 1.0, rel_tol=1e-9)

    def test_empty_input_is_zero_vector(self):
        vector = HashingEmbedder(16).embed("", (), None)
        assert vector == [0.0] * 16

    def test_keywords_weigh_more_than_body(self):
        dimension = 384
        if _stable_bucket("alpha", dimension) == _stable_bucket("beta", dimension):
            pytest.skip("tokens collide in this dimension")
        vector = HashingEmbedder(dimension).embed("alpha beta", ("alpha",))
        # alpha: body + keyword text + keyword weight = 1 + 1 + 3
        ratio = vector[_stable_bucket("alpha", dimension)] / vector[_stable_bucket("beta", dimension)]
        assert math.isclose(ratio, 5.0)

    def test_rejects_non_positive_dimension(self):
        with pytest.raises(ValueError):
            HashingEmbedder(0)


class TestEmbeddingService:
    def test_no_model_uses_fallback(self):
        service = EmbeddingService(dimension=32)
        assert service.embed("hello world") == service.fallback_embed("hello world")
        assert not service.model_enabled

    def test_model_vector_returned(self):
        model = MagicMock()
        model.embed_query.return_value = [0.5] * 8
        service = EmbeddingService(model=model, dimension=8, tz=MANILA)
        assert service.embed("hello") == [0.5] * 8

    def test_model_input_carries_date_renderings(self):
        model = MagicMock()
        model.embed_query.return_value = [0.0] * 8
        service = EmbeddingService(model=model, dimension=8, tz=MANILA)
        service.embed("Foundation day", ("foundation",), {"date": "2026-01-15"})
        sent = model.embed_query.call_args.args[0]
        assert "January 15, 2026" in sent
        assert "Jan 15" in sent
        assert sent.endswith("foundation")

    def test_model_error_falls_back(self, caplog):
        model = MagicMock()
        model.embed_query.side_effect = RuntimeError("quota")
        service = EmbeddingService(model=model, dimension=8)
        assert service.embed("hello world") == service.fallback_embed("hello world")
        assert "hashing fallback" in caplog.text

    def test_wrong_dimension_falls_back(self):
        model = MagicMock()
        model.embed_query.return_value = [0.1, 0.2, 0.3]
        service = EmbeddingService(model=model, dimension=8)
        assert service.embed("hello world") == service.fallback_embed("hello world")

    @pytest.mark.asyncio
    async def test_aembed_timeout_falls_back(self):
        model = MagicMock()
        model.embed_query.side_effect = lambda text: time.sleep(0.3) or [1.0] * 8
        service = EmbeddingService(model=model, dimension=8, timeout=0.01)
        assert await service.aembed("slow query") == service.fallback_embed("slow query")

    @pytest.mark.asyncio
    async def test_aembed_uses_model(self):
        model = MagicMock()
        model.embed_query.return_value = [0.25] * 8
        service = EmbeddingService(model=model, dimension=8)
        assert await service.aembed("query") == [0.25] * 8
