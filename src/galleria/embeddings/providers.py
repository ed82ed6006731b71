"""Embedding providers for similarity search.

Providers turn text (and, where the model allows it, image bytes) into
unit-length float vectors. Callers must check `supports_image` before asking
for an image embedding; a text-only provider raises instead of guessing.
"""

from __future__ import annotations

import io
import threading
from typing import Optional, Protocol

import numpy as np

from galleria.exceptions import UnsupportedOperationError, ValidationError

MINILM_MODEL_NAME = "sentence-transformers/all-MiniLM-L6-v2"
CLIP_MODEL_NAME = "openai/clip-vit-base-patch32"


class EmbeddingProvider(Protocol):
    """Abstract embedding provider interface."""

    model_name: str
    supports_image: bool

    def embed_text(self, text: str) -> list[float]:
        """Return a normalized embedding for a text string."""

    def embed_image(self, image_data: bytes) -> list[float]:
        """Return a normalized embedding for raw image bytes."""


def normalize_vector(vector) -> list[float]:
    arr = np.asarray(vector, dtype=np.float32).reshape(-1)
    if arr.size == 0:
        raise RuntimeError("Embedding is empty")
    norm = float(np.linalg.norm(arr))
    if norm <= 1e-12:
        raise RuntimeError("Embedding has zero magnitude")
    return (arr / norm).tolist()


def open_query_image(image_data: bytes):
    """Decode uploaded bytes into an RGB PIL image; unreadable input is a ValidationError."""
    from PIL import Image, UnidentifiedImageError

    try:
        image = Image.open(io.BytesIO(image_data))
        image.load()
    except (UnidentifiedImageError, OSError) as exc:
        raise ValidationError("Uploaded file is not a readable image.") from exc
    if image.mode != "RGB":
        image = image.convert("RGB")
    return image


def _select_device(torch) -> str:
    return "cuda" if torch.cuda.is_available() else "cpu"


def _features_tensor(torch, features):
    """Unwrap raw tensors, tuples or model output objects returned by get_*_features."""
    if torch.is_tensor(features):
        return features
    if isinstance(features, tuple):
        for item in features:
            if torch.is_tensor(item):
                return item
    for attr in ("text_embeds", "image_embeds", "pooler_output"):
        value = getattr(features, attr, None)
        if value is not None and torch.is_tensor(value):
            return value
    raise RuntimeError(f"Unexpected embedding output type: {type(features).__name__}")


class MiniLMTextEmbeddingProvider:
    """Text-only sentence embeddings (mean pooled, L2 normalized)."""

    supports_image = False

    def __init__(self, model_name: str = MINILM_MODEL_NAME):
        import torch
        from transformers import AutoModel, AutoTokenizer

        self._torch = torch
        self.model_name = model_name
        self.tokenizer = AutoTokenizer.from_pretrained(model_name)
        self.model = AutoModel.from_pretrained(model_name)
        self.device = _select_device(torch)
        self.model.to(self.device)
        self.model.eval()

    def embed_text(self, text: str) -> list[float]:
        normalized = " ".join(str(text or "").split())
        if not normalized:
            raise ValueError("text is empty")

        torch = self._torch
        with torch.no_grad():
            inputs = self.tokenizer(
                [normalized],
                padding=True,
                truncation=True,
                max_length=256,
                return_tensors="pt",
            )
            inputs = {k: v.to(self.device) for k, v in inputs.items()}
            outputs = self.model(**inputs)
            token_embeddings = outputs.last_hidden_state
            mask = inputs["attention_mask"].unsqueeze(-1).to(token_embeddings.dtype)
            pooled = (token_embeddings * mask).sum(dim=1) / mask.sum(dim=1).clamp(min=1e-9)
            vector = pooled[0].cpu().numpy()

        return normalize_vector(vector)

    def embed_image(self, image_data: bytes) -> list[float]:
        raise UnsupportedOperationError(
            f"Image embedding is not supported by the '{self.model_name}' text model.",
            context={"embedding_model": self.model_name},
        )


class ClipEmbeddingProvider:
    """Joint text/image embeddings from a CLIP model."""

    supports_image = True

    def __init__(self, model_name: str = CLIP_MODEL_NAME):
        import torch
        from transformers import CLIPModel, CLIPProcessor

        self._torch = torch
        self.model_name = model_name
        self.model = CLIPModel.from_pretrained(model_name)
        self.processor = CLIPProcessor.from_pretrained(model_name)
        self.device = _select_device(torch)
        self.model.to(self.device)
        self.model.eval()

    def embed_text(self, text: str) -> list[float]:
        normalized = " ".join(str(text or "").split())
        if not normalized:
            raise ValueError("text is empty")

        torch = self._torch
        with torch.no_grad():
            inputs = self.processor(text=[normalized], return_tensors="pt", padding=True, truncation=True)
            inputs = {k: v.to(self.device) for k, v in inputs.items()}
            features = self.model.get_text_features(**inputs)
            vector = _features_tensor(torch, features)[0].cpu().numpy()

        return normalize_vector(vector)

    def embed_image(self, image_data: bytes) -> list[float]:
        image = open_query_image(image_data)

        torch = self._torch
        with torch.no_grad():
            inputs = self.processor(images=image, return_tensors="pt")
            inputs = {k: v.to(self.device) for k, v in inputs.items()}
            features = self.model.get_image_features(**inputs)
            vector = _features_tensor(torch, features)[0].cpu().numpy()

        return normalize_vector(vector)


PROVIDER_FACTORIES = {
    "minilm": MiniLMTextEmbeddingProvider,
    "clip": ClipEmbeddingProvider,
}

# Global instances to avoid reloading models on each request
_provider_instances: dict[tuple[str, Optional[str]], EmbeddingProvider] = {}
_provider_lock = threading.Lock()


def get_embedding_provider(
    provider_type: Optional[str] = None,
    model_name: Optional[str] = None,
) -> EmbeddingProvider:
    """Get or create the process-wide provider for a provider type."""
    from galleria.settings import settings

    key_type = str(provider_type or settings.embedding_provider or "minilm").strip().lower()
    key_model = model_name or settings.embedding_model_name
    factory = PROVIDER_FACTORIES.get(key_type)
    if factory is None:
        raise ValueError(
            f"Unknown embedding provider: {key_type}. Expected one of: {', '.join(sorted(PROVIDER_FACTORIES))}"
        )

    cache_key = (key_type, key_model)
    with _provider_lock:
        provider = _provider_instances.get(cache_key)
        if provider is None:
            provider = factory(key_model) if key_model else factory()
            _provider_instances[cache_key] = provider
    return provider
