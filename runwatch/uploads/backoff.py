"""Retry delay computation."""

from __future__ import annotations

import random

from runwatch.uploads.config import UploadPipelineConfig


def compute_backoff(
    attempt: int,
    config: UploadPipelineConfig,
    rng: random.Random | None = None,
) -> float:
    """Delay before retrying after ``attempt`` failed attempts (1-based).

    ``min(max, base * multiplier ** (attempt - 1))`` spread by ``±jitter_ratio``
    and clamped to ``[0, max]``.
    """
    if attempt < 1:
        raise ValueError("attempt must be >= 1")
    try:
        raw = config.backoff_base_seconds * (config.backoff_multiplier ** (attempt - 1))
    except OverflowError:
        raw = config.backoff_max_seconds
    delay = min(config.backoff_max_seconds, raw)
    if config.jitter_ratio > 0 and delay > 0:
        spread = delay * config.jitter_ratio
        delay += (rng or random).uniform(-spread, spread)
    return max(0.0, min(config.backoff_max_seconds, delay))
