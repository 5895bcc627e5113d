"""
Indexed max-heap with score updates.

The spreading scheduler re-scores waiting vertices whenever a neighbor is
committed, so a plain pop-max heap is not enough: entries need to be
located and re-sifted in place.
"""


class IndexedMaxHeap:
    """
    Binary max-heap keyed by hashable items with a position map.

    Equal scores pop in ascending key order, which keeps the traversal
    deterministic.
    """

    def __init__(self, items=(), score_fn=None):
        self._keys = []
        self._scores = []
        self._pos = {}
        for item in items:
            self._keys.append(item)
            self._scores.append(float(score_fn(item)) if score_fn else 0.0)
            self._pos[item] = len(self._keys) - 1
        for i in reversed(range(len(self._keys) // 2)):
            self._sift_down(i)

    def __len__(self):
        return len(self._keys)

    def __bool__(self):
        return bool(self._keys)

    def empty(self):
        return not self._keys

    def contains(self, item):
        return item in self._pos

    __contains__ = contains

    def score(self, item):
        return self._scores[self._pos[item]]

    def push(self, item, score):
        if item in self._pos:
            self.set_score(item, score)
            return
        self._keys.append(item)
        self._scores.append(float(score))
        self._pos[item] = len(self._keys) - 1
        self._sift_up(len(self._keys) - 1)

    def top(self):
        if not self._keys:
            raise IndexError("top from an empty heap")
        return self._keys[0]

    def top_score(self):
        if not self._keys:
            raise IndexError("top from an empty heap")
        return self._scores[0]

    def pop(self):
        """Remove and return (item, score) with the highest score."""
        if not self._keys:
            raise IndexError("pop from an empty heap")
        item, score = self._keys[0], self._scores[0]
        last = len(self._keys) - 1
        self._swap(0, last)
        self._keys.pop()
        self._scores.pop()
        del self._pos[item]
        if self._keys:
            self._sift_down(0)
        return item, score

    def set_score(self, item, score):
        i = self._pos[item]
        old = self._scores[i]
        self._scores[i] = float(score)
        if score > old:
            self._sift_up(i)
        else:
            self._sift_down(i)

    def _higher(self, i, j):
        si, sj = self._scores[i], self._scores[j]
        if si != sj:
            return si > sj
        return self._keys[i] < self._keys[j]

    def _swap(self, i, j):
        self._keys[i], self._keys[j] = self._keys[j], self._keys[i]
        self._scores[i], self._scores[j] = self._scores[j], self._scores[i]
        self._pos[self._keys[i]] = i
        self._pos[self._keys[j]] = j

    def _sift_up(self, i):
        while i > 0:
            parent = (i - 1) // 2
            if not self._higher(i, parent):
                break
            self._swap(i, parent)
            i = parent

    def _sift_down(self, i):
        n = len(self._keys)
        while True:
            best = i
            for child in (2 * i + 1, 2 * i + 2):
                if child < n and self._higher(child, best):
                    best = child
            if best == i:
                break
            self._swap(i, best)
            i = best
