"""Vector index capability used by the map stage.

``VectorIndex`` is the interface the pipeline needs: create an index, upsert
keyed vectors with tag attributes, and k-nearest-neighbour search filtered by
tag equality. ``InMemoryVectorIndex`` implements it with numpy and cosine
distance (``1 - cosine similarity``; lower is closer).
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Protocol

import numpy as np

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VectorHit:
    key: str
    distance: float
    attrs: Mapping[str, str] = field(default_factory=dict)


class VectorIndex(Protocol):
    def create_index(self, dim: int) -> None: ...

    def upsert(self, key: str, vector: Sequence[float], attrs: Mapping[str, str] | None = None) -> None: ...

    def knn_search(
        self, vector: Sequence[float], filters: Mapping[str, str] | None = None, k: int = 20
    ) -> list[VectorHit]: ...

    def __len__(self) -> int: ...


def _normalize_rows(matrix: np.ndarray) -> np.ndarray:
    norms = np.linalg.norm(matrix, axis=-1, keepdims=True)
    norms[norms == 0] = 1.0
    return matrix / norms


class InMemoryVectorIndex:
    """Flat (exact) cosine index held in memory."""

    def __init__(self, dim: int | None = None) -> None:
        self._dim = dim
        self._keys: list[str] = []
        self._positions: dict[str, int] = {}
        self._attrs: list[dict[str, str]] = []
        self._vectors: list[np.ndarray] = []
        self._matrix: np.ndarray | None = None

    def create_index(self, dim: int) -> None:
        """Reset the index for vectors of ``dim`` dimensions."""
        self._dim = dim
        self._keys.clear()
        self._positions.clear()
        self._attrs.clear()
        self._vectors.clear()
        self._matrix = None

    def __len__(self) -> int:
        return len(self._keys)

    def upsert(self, key: str, vector: Sequence[float], attrs: Mapping[str, str] | None = None) -> None:
        arr = np.asarray(vector, dtype=np.float32)
        if self._dim is None:
            self._dim = int(arr.shape[0])
        if arr.shape != (self._dim,):
            raise ValueError(f"Vector for {key} has shape {arr.shape}, expected ({self._dim},)")

        position = self._positions.get(key)
        if position is None:
            self._positions[key] = len(self._keys)
            self._keys.append(key)
            self._attrs.append(dict(attrs or {}))
            self._vectors.append(arr)
        else:
            self._attrs[position] = dict(attrs or {})
            self._vectors[position] = arr
        self._matrix = None

    def _normalized_matrix(self) -> np.ndarray:
        if self._matrix is None:
            stacked = np.stack(self._vectors) if self._vectors else np.zeros((0, self._dim or 0), dtype=np.float32)
            self._matrix = _normalize_rows(stacked)
        return self._matrix

    def knn_search(
        self, vector: Sequence[float], filters: Mapping[str, str] | None = None, k: int = 20
    ) -> list[VectorHit]:
        if not self._keys or k <= 0:
            return []
        query = _normalize_rows(np.asarray(vector, dtype=np.float32)[None, :])[0]
        distances = 1.0 - self._normalized_matrix() @ query

        candidates = np.arange(len(self._keys))
        if filters:
            mask = np.array(
                [all(attrs.get(name) == value for name, value in filters.items()) for attrs in self._attrs],
                dtype=bool,
            )
            candidates = candidates[mask]
        if candidates.size == 0:
            return []

        order = candidates[np.argsort(distances[candidates], kind="stable")][:k]
        return [VectorHit(key=self._keys[i], distance=float(distances[i]), attrs=self._attrs[i]) for i in order]
