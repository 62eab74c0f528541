"""Tests for the in-memory cosine vector index."""
from __future__ import annotations

import pytest

from lexiconbuilder.vector_index import InMemoryVectorIndex


@pytest.fixture
def index() -> InMemoryVectorIndex:
    index = InMemoryVectorIndex()
    index.create_index(2)
    index.upsert("east", [1.0, 0.0], {"pos": "n"})
    index.upsert("north", [0.0, 1.0], {"pos": "n"})
    index.upsert("northeast", [1.0, 1.0], {"pos": "v"})
    return index


def test_nearest_first_with_cosine_distance(index: InMemoryVectorIndex) -> None:
    hits = index.knn_search([2.0, 0.1], k=3)

    assert [h.key for h in hits] == ["east", "northeast", "north"]
    assert hits[0].distance == pytest.approx(1 - 2.0 / (2.0**2 + 0.1**2) ** 0.5, abs=1e-5)
    assert hits[-1].distance > hits[0].distance


def test_filters_and_k(index: InMemoryVectorIndex) -> None:
    assert [h.key for h in index.knn_search([1.0, 0.5], {"pos": "n"}, k=1)] == ["east"]
    assert index.knn_search([1.0, 1.0], {"pos": "a"}) == []
    assert index.knn_search([1.0, 1.0], k=0) == []


def test_upsert_replaces_existing_key(index: InMemoryVectorIndex) -> None:
    index.upsert("east", [0.0, 1.0], {"pos": "r"})

    assert len(index) == 3
    [hit] = index.knn_search([0.0, 1.0], {"pos": "r"})
    assert hit.key == "east"
    assert hit.distance == pytest.approx(0.0, abs=1e-6)


def test_dimension_mismatch_raises(index: InMemoryVectorIndex) -> None:
    with pytest.raises(ValueError):
        index.upsert("bad", [1.0, 2.0, 3.0])


def test_create_index_resets() -> None:
    index = InMemoryVectorIndex(dim=2)
    index.upsert("a", [1.0, 0.0])
    index.create_index(3)

    assert len(index) == 0
    assert index.knn_search([1.0, 0.0, 0.0]) == []
    index.upsert("b", [0.0, 0.0, 1.0])
    assert len(index) == 1


def test_zero_vector_does_not_produce_nan(index: InMemoryVectorIndex) -> None:
    hits = index.knn_search([0.0, 0.0], k=3)
    assert all(h.distance == pytest.approx(1.0) for h in hits)
