# -*- coding: utf-8 -*-
"""
ctcpy.distribution
==================

Weighted class counts per branch ("bag") of a split.

A :class:`Distribution` is the matrix ``per_class_per_bag[bag, class]`` of
summed row weights.  Leaves have a single bag.  The consolidated distribution
of a node is the element-wise mean of the distributions obtained by applying
the same split to every resampled sample (:meth:`Distribution.mean`).
"""

from __future__ import annotations
import numpy as np

# tolerance used by every weight comparison (C4.5 convention)
EPS = 1e-6


class Distribution:
    """Class distribution of the rows reaching a node, split into bags.

    Parameters
    ----------
    per_class_per_bag : array-like of shape (n_bags, n_classes)
        Summed weights of the rows of each class in each bag.
    """

    __slots__ = ("per_class_per_bag", "per_bag", "per_class", "total")

    def __init__(self, per_class_per_bag):
        m = np.array(per_class_per_bag, dtype=float)
        if m.ndim == 1:
            m = m.reshape(1, -1)
        self.per_class_per_bag = m
        self.per_bag = m.sum(axis=1)
        self.per_class = m.sum(axis=0)
        self.total = float(self.per_bag.sum())

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------
    @classmethod
    def zeros(cls, n_bags: int, n_classes: int) -> "Distribution":
        return cls(np.zeros((n_bags, n_classes)))

    @classmethod
    def from_dataset(cls, data) -> "Distribution":
        """Single-bag distribution of ``data``."""
        return cls(data.class_weights().reshape(1, -1))

    @classmethod
    def from_split(cls, data, model) -> "Distribution":
        """Distribution of ``data`` over the branches of ``model``.

        Rows with a known value go to their branch.  Rows missing the split
        attribute are spread over all branches in proportion to the known
        branch weights (uniformly when no row is known).
        """
        K = data.n_classes
        n_bags = model.n_subsets
        m = np.zeros((n_bags, K))
        keep = data.y >= 0
        if n_bags == 1:
            np.add.at(m, (0, data.y[keep]), data.weights[keep])
            return cls(m)
        codes = model.branch_codes(data.X)
        known = keep & (codes >= 0)
        np.add.at(m, (codes[known], data.y[known]), data.weights[known])
        unknown = keep & (codes < 0)
        if unknown.any():
            per_bag = m.sum(axis=1)
            tot = per_bag.sum()
            share = per_bag / tot if tot > 0 else np.full(n_bags, 1.0 / n_bags)
            missing = np.bincount(data.y[unknown], weights=data.weights[unknown], minlength=K)
            m += np.outer(share, missing)
        return cls(m)

    @classmethod
    def mean(cls, distributions) -> "Distribution":
        """Element-wise average; every input counts, empty ones as zeros."""
        distributions = list(distributions)
        if not distributions:
            raise ValueError("cannot average an empty list of distributions")
        stacked = np.stack([d.per_class_per_bag for d in distributions])
        return cls(stacked.mean(axis=0))

    def collapsed(self) -> "Distribution":
        """The same class weights in a single bag."""
        return Distribution(self.per_class.reshape(1, -1))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    @property
    def n_bags(self) -> int:
        return self.per_class_per_bag.shape[0]

    @property
    def n_classes(self) -> int:
        return self.per_class_per_bag.shape[1]

    def is_empty(self) -> bool:
        return self.total <= EPS

    def check(self, min_objects: float) -> bool:
        """True if at least two bags hold ``min_objects`` weight or more."""
        return int(np.sum(self.per_bag >= min_objects - EPS)) > 1

    def max_bag(self) -> int:
        """Index of the heaviest bag (first one on ties), -1 when empty."""
        if self.total <= 0:
            return -1
        return int(np.argmax(self.per_bag))

    def max_class(self, bag: int | None = None) -> int:
        if bag is None:
            return int(np.argmax(self.per_class))
        return int(np.argmax(self.per_class_per_bag[bag]))

    def num_correct(self, bag: int | None = None) -> float:
        if bag is None:
            return float(self.per_class.max()) if self.n_classes else 0.0
        return float(self.per_class_per_bag[bag].max())

    def num_incorrect(self, bag: int | None = None) -> float:
        if bag is None:
            return self.total - self.num_correct()
        return float(self.per_bag[bag]) - self.num_correct(bag)

    def prob(self, class_index: int, bag: int | None = None) -> float:
        """Relative weight of ``class_index`` in ``bag`` (or overall).

        A bag without weight answers with the overall distribution.
        """
        if bag is not None and self.per_bag[bag] > EPS:
            return float(self.per_class_per_bag[bag, class_index] / self.per_bag[bag])
        if self.total <= EPS:
            return 0.0
        return float(self.per_class[class_index] / self.total)

    def class_probs(self, bag: int | None = None) -> np.ndarray:
        """Vector version of :meth:`prob`; uniform when nothing is known."""
        if bag is not None and self.per_bag[bag] > EPS:
            return self.per_class_per_bag[bag] / self.per_bag[bag]
        if self.total <= EPS:
            K = self.n_classes
            return np.full(K, 1.0 / K) if K else np.zeros(0)
        return self.per_class / self.total

    def branch_weights(self) -> np.ndarray:
        """Fraction of the weight going to each bag; uniform when empty."""
        if self.total <= 0:
            return np.full(self.n_bags, 1.0 / self.n_bags)
        return self.per_bag / self.total

    def __repr__(self) -> str:
        return f"Distribution(n_bags={self.n_bags}, per_class={self.per_class.round(3).tolist()})"
