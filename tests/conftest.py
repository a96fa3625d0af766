"""Shared fixtures."""

import math
from pathlib import Path
from unittest.mock import MagicMock

import numpy as np
import pytest

from mnemo.logging import configure_logger


@pytest.fixture(autouse=True)
def isolated_event_log(tmp_path: Path):
    """Keep the global JSONL event log out of the home directory."""
    return configure_logger(tmp_path / "logs")


@pytest.fixture
def event_log() -> MagicMock:
    return MagicMock()


class FakeEmbedder:
    """Embedder returning preset 2-d vectors.

    Texts registered with ``at_angle`` map to (cos θ, sin θ), so the
    cosine distance between two of them is ``1 - cos(Δθ)``.
    """

    dims = 2

    def __init__(self) -> None:
        self.vectors: dict[str, np.ndarray] = {}
        self.fail = False
        self.calls: list[str] = []

    def at_angle(self, text: str, radians: float) -> None:
        self.vectors[text] = np.array([math.cos(radians), math.sin(radians)], dtype=np.float32)

    def at_distance(self, text: str, distance: float) -> None:
        """Place ``text`` at a cosine distance of ``distance`` from (1, 0)."""
        self.at_angle(text, math.acos(1.0 - distance))

    async def embed(self, text: str) -> np.ndarray:
        self.calls.append(text)
        if self.fail:
            raise ConnectionError("embedding service unavailable")
        return self.vectors.get(text, np.array([0.0, 1.0], dtype=np.float32))

    async def close(self) -> None:
        return None


@pytest.fixture
def fake_embedder() -> FakeEmbedder:
    return FakeEmbedder()
