"""Tests for the indexed max-heap."""

import math

import pytest


class TestIndexedMaxHeap:
    """Tests for ordering and score updates."""

    def test_pops_in_score_order(self):
        from scenerec.graph.heap import IndexedMaxHeap

        scores = {0: 0.5, 1: 2.0, 2: 0.1, 3: 1.0}
        heap = IndexedMaxHeap(scores, scores.get)

        popped = [heap.pop()[0] for _ in range(len(scores))]
        assert popped == [1, 3, 0, 2]
        assert heap.empty()

    def test_ties_pop_lower_key_first(self):
        from scenerec.graph.heap import IndexedMaxHeap

        heap = IndexedMaxHeap([4, 2, 7, 0], lambda i: 0.0)

        assert [heap.pop()[0] for _ in range(4)] == [0, 2, 4, 7]

    def test_zero_priority_pops_last(self):
        from scenerec.graph.heap import IndexedMaxHeap

        heap = IndexedMaxHeap([0, 1, 2], lambda i: 0.0)
        heap.set_score(2, 0.3)
        heap.set_score(1, 1e-6)

        assert [heap.pop()[0] for _ in range(3)] == [2, 1, 0]

    def test_set_score_up_and_down(self):
        from scenerec.graph.heap import IndexedMaxHeap

        heap = IndexedMaxHeap([0, 1, 2], lambda i: float(i))
        heap.set_score(0, math.inf)
        assert heap.top() == 0

        heap.set_score(0, -1.0)
        assert heap.top() == 2
        assert heap.score(0) == -1.0

    def test_contains_after_pop(self):
        from scenerec.graph.heap import IndexedMaxHeap

        heap = IndexedMaxHeap()
        heap.push("a", 1.0)
        heap.push("b", 2.0)

        assert "a" in heap
        item, score = heap.pop()
        assert (item, score) == ("b", 2.0)
        assert not heap.contains("b")
        assert len(heap) == 1

    def test_push_existing_updates(self):
        from scenerec.graph.heap import IndexedMaxHeap

        heap = IndexedMaxHeap()
        heap.push("a", 1.0)
        heap.push("b", 2.0)
        heap.push("a", 3.0)

        assert len(heap) == 2
        assert heap.top_score() == 3.0

    def test_empty_pop_raises(self):
        from scenerec.graph.heap import IndexedMaxHeap

        heap = IndexedMaxHeap()
        assert not heap
        with pytest.raises(IndexError):
            heap.pop()
