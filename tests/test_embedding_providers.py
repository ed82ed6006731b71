"""Tests for embedding provider selection and vector normalization."""

import io

import numpy as np
import pytest
from PIL import Image

from galleria.embeddings import providers
from galleria.embeddings.providers import get_embedding_provider, normalize_vector, open_query_image
from galleria.exceptions import ValidationError


class CountingProvider:
    supports_image = False
    instances = 0

    def __init__(self, model_name: str = "counting-default"):
        CountingProvider.instances += 1
        self.model_name = model_name

    def embed_text(self, text: str) -> list:
        return [1.0, 0.0]

    def embed_image(self, image_data: bytes) -> list:
        raise NotImplementedError


@pytest.fixture
def counting_factory(monkeypatch):
    CountingProvider.instances = 0
    monkeypatch.setitem(providers.PROVIDER_FACTORIES, "counting", CountingProvider)
    monkeypatch.setattr(providers, "_provider_instances", {})
    return CountingProvider


def test_normalize_vector_returns_unit_length():
    vector = normalize_vector([3.0, 4.0])
    assert vector == pytest.approx([0.6, 0.8])
    assert float(np.linalg.norm(vector)) == pytest.approx(1.0)


@pytest.mark.parametrize("bad", [[], [0.0, 0.0]])
def test_normalize_vector_rejects_degenerate_input(bad):
    with pytest.raises(RuntimeError):
        normalize_vector(bad)


def test_unknown_provider_type():
    with pytest.raises(ValueError, match="Unknown embedding provider"):
        get_embedding_provider("word2vec")


def test_provider_instances_are_cached(counting_factory):
    first = get_embedding_provider("counting")
    second = get_embedding_provider("COUNTING")
    assert first is second
    assert counting_factory.instances == 1


def test_model_name_override_gets_its_own_instance(counting_factory):
    default = get_embedding_provider("counting")
    custom = get_embedding_provider("counting", model_name="custom-model")
    assert default is not custom
    assert custom.model_name == "custom-model"


def test_open_query_image_rejects_unreadable_bytes():
    with pytest.raises(ValidationError) as exc_info:
        open_query_image(b"not an image")
    assert exc_info.value.status_code == 400


def test_open_query_image_converts_to_rgb():
    buffer = io.BytesIO()
    Image.new("L", (4, 4), color=128).save(buffer, format="PNG")

    image = open_query_image(buffer.getvalue())
    assert image.mode == "RGB"
    assert image.size == (4, 4)
