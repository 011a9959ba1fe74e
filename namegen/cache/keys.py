"""Cache key derivation for generation results."""

from __future__ import annotations

import hashlib
from collections.abc import Iterable

PER_MODEL_PREFIX = "per-model"
COMBINED_PREFIX = "combined"
CANCEL_PREFIX = "cancel"


def normalize_description(description: str) -> str:
  """Trim, collapse inner whitespace and lower-case a business description."""
  return " ".join(description.split()).lower()


def normalize_models(models: Iterable[str]) -> list[str]:
  """De-duplicate and sort a model set."""
  return sorted({model.strip() for model in models if model and model.strip()})


def per_model_key(session_id: str, model_id: str) -> str:
  return f"{PER_MODEL_PREFIX}:{session_id}:{model_id}"


def cancel_key(session_id: str) -> str:
  return f"{CANCEL_PREFIX}:{session_id}"


def combined_key(description: str, mode: str, deep_thinking: bool, models: Iterable[str]) -> str:
  """
  Derive the combined-result key for a request shape.

  Two requests that differ only in model order, duplicate models or
  whitespace/case in the description map to the same key.
  """
  parts = [normalize_description(description), mode.strip().lower(), "1" if deep_thinking else "0", ",".join(normalize_models(models))]
  digest = hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()
  return f"{COMBINED_PREFIX}:{digest}"
