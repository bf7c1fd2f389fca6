"""Live throughput statistics for a generation."""

import math
from dataclasses import dataclass


@dataclass(frozen=True)
class GenerationStats:
    """Throughput of the generation in progress.

    ``token_count`` counts fragments, not model tokens.
    """

    start_time: float
    token_count: int = 0
    tokens_per_second: float = 0.0
    elapsed_seconds: float = 0.0

    @classmethod
    def start(cls, start_time: float) -> "GenerationStats":
        return cls(start_time=start_time)

    @classmethod
    def compute(cls, start_time: float, token_count: int, now: float) -> "GenerationStats":
        """Recompute statistics after a fragment arrived.

        Rate and elapsed time are rounded to one decimal; a zero elapsed
        time or zero count yields a rate of exactly 0.
        """
        elapsed = max(now - start_time, 0.0)
        rate = round(token_count / elapsed, 1) if elapsed > 0 and token_count > 0 else 0.0
        if not math.isfinite(rate):
            rate = 0.0
        return cls(
            start_time=start_time,
            token_count=token_count,
            tokens_per_second=rate,
            elapsed_seconds=round(elapsed, 1),
        )
