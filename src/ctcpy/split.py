# -*- coding: utf-8 -*-
"""
ctcpy.split
===========

Split models and the C4.5 split criterion.

Three kinds of split are supported:

* :class:`NoSplit` - the node is a leaf (one subset).
* :class:`NominalSplit` - multiway split, one branch per category.
* :class:`NumericSplit` - binary split ``value <= split_point``.

:class:`C45SplitCriterion` implements C4.5 model selection on a single
dataset: information gain and gain ratio with fractional handling of missing
values, the ``minSplit`` rule and MDL correction for numeric attributes, the
"at least average gain" filter and split points snapped to actual training
values.
"""

from __future__ import annotations
import math
from dataclasses import dataclass

import numpy as np

from .distribution import Distribution, EPS


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------
def _entropy(dist_vec: np.ndarray) -> float:
    tot = dist_vec.sum()
    if tot <= 0:
        return 0.0
    p = dist_vec / tot
    p = p[p > 0]
    return float(-np.sum(p * np.log2(p)))


def _entropy_rows(M: np.ndarray) -> np.ndarray:
    """Entropy (bits) of every row of ``M``."""
    tot = M.sum(axis=1, keepdims=True)
    with np.errstate(divide="ignore", invalid="ignore"):
        p = np.where(tot > 0, M / np.where(tot > 0, tot, 1.0), 0.0)
        logp = np.where(p > 0, np.log2(np.where(p > 0, p, 1.0)), 0.0)
    return -(p * logp).sum(axis=1)


def _info_gain(bags: np.ndarray, sum_of_weights: float) -> float:
    """C4.5 information gain of ``bags`` (rows = branches, known values only).

    The gain is scaled by the fraction of weight whose value is known.
    """
    known = float(bags.sum())
    if known <= 0 or sum_of_weights <= 0:
        return 0.0
    per_bag = bags.sum(axis=1)
    new_ent = float(np.sum(per_bag / known * _entropy_rows(bags)))
    gain = (_entropy(bags.sum(axis=0)) - new_ent) * (known / sum_of_weights)
    return gain if abs(gain) > EPS else 0.0


def _split_info(bags: np.ndarray, sum_of_weights: float) -> float:
    """Split information, the unknown-value weight counting as an extra bag."""
    if sum_of_weights <= 0:
        return 0.0
    w = list(bags.sum(axis=1))
    w.append(max(sum_of_weights - float(bags.sum()), 0.0))
    w = np.asarray(w) / sum_of_weights
    w = w[w > 0]
    return float(-np.sum(w * np.log2(w)))


def _gain_ratio(info_gain: float, bags: np.ndarray, sum_of_weights: float) -> float:
    s = _split_info(bags, sum_of_weights)
    return float(info_gain / s) if s > EPS else 0.0


# -----------------------------------------------------------------------------
# Split models
# -----------------------------------------------------------------------------
class _SplitBase:

    def which_subset(self, x) -> int:
        """Branch index of a single encoded row, -1 if the value is missing."""
        return int(self.branch_codes(np.asarray(x, dtype=float).reshape(1, -1))[0])

    def partition(self, data, distribution: Distribution | None = None) -> list:
        """One dataset per branch.

        Rows missing the split attribute go to every branch whose weight is
        positive, their weight scaled by that branch's share of
        ``distribution`` (by default the split's own distribution on
        ``data``).
        """
        n = self.n_subsets
        if n == 1:
            return [data]
        if distribution is None:
            distribution = Distribution.from_split(data, self)
        codes = self.branch_codes(data.X)
        missing = np.flatnonzero(codes < 0)
        shares = distribution.branch_weights()
        parts = []
        for b in range(n):
            rows = np.flatnonzero(codes == b)
            if missing.size and shares[b] > 0:
                w = np.concatenate([data.weights[rows], data.weights[missing] * shares[b]])
                rows = np.concatenate([rows, missing])
                parts.append(data.subset(rows, w))
            else:
                parts.append(data.subset(rows))
        return parts


@dataclass(frozen=True)
class NoSplit(_SplitBase):
    """Leaf model: every row falls into the single subset."""

    @property
    def attribute(self):
        return None

    @property
    def n_subsets(self) -> int:
        return 1

    def branch_codes(self, X) -> np.ndarray:
        return np.zeros(len(X), dtype=int)

    def describe(self, attributes, branch: int) -> str:
        return ""


@dataclass(frozen=True)
class NominalSplit(_SplitBase):
    """Multiway split on a nominal attribute, one branch per category."""

    attribute: int
    n_values: int

    @property
    def n_subsets(self) -> int:
        return self.n_values

    def branch_codes(self, X) -> np.ndarray:
        col = np.asarray(X, dtype=float)[:, self.attribute]
        out = np.full(len(col), -1, dtype=int)
        known = ~np.isnan(col)
        out[known] = col[known].astype(int)
        return out

    def describe(self, attributes, branch: int) -> str:
        att = attributes[self.attribute]
        return f"{att.name} = {att.values[branch]}"


@dataclass(frozen=True)
class NumericSplit(_SplitBase):
    """Binary split ``value <= split_point`` on a numeric attribute."""

    attribute: int
    split_point: float

    @property
    def n_subsets(self) -> int:
        return 2

    def branch_codes(self, X) -> np.ndarray:
        col = np.asarray(X, dtype=float)[:, self.attribute]
        out = np.full(len(col), -1, dtype=int)
        known = ~np.isnan(col)
        out[known] = np.where(col[known] <= self.split_point, 0, 1)
        return out

    def describe(self, attributes, branch: int) -> str:
        op = "<=" if branch == 0 else ">"
        return f"{attributes[self.attribute].name} {op} {self.split_point:g}"


@dataclass
class Candidate:
    """A split model evaluated on some data."""

    model: object
    distribution: Distribution
    info_gain: float = 0.0
    gain_ratio: float = 0.0

    @property
    def is_split(self) -> bool:
        return self.model.n_subsets > 1


def split_gains(distribution: Distribution, sum_of_weights: float | None = None):
    """``(info_gain, gain_ratio)`` of a distribution whose bags are branches."""
    if distribution.n_bags < 2:
        return 0.0, 0.0
    if sum_of_weights is None:
        sum_of_weights = distribution.total
    ig = _info_gain(distribution.per_class_per_bag, sum_of_weights)
    return ig, _gain_ratio(ig, distribution.per_class_per_bag, sum_of_weights)


# -----------------------------------------------------------------------------
# C4.5 split criterion
# -----------------------------------------------------------------------------
class C45SplitCriterion:
    """C4.5 split selection on a single (possibly resampled) dataset.

    Parameters
    ----------
    all_data : Dataset
        The full training data.  Used to snap numeric split points to actual
        values and to decide which nominal attributes have "too many" values to
        take part in the average-gain filter.
    min_leaf : int, default=2
        Minimum weight that at least two branches must hold.
    use_mdl_correction : bool, default=True
        Penalize numeric splits by ``log2(#candidate thresholds) / weight``.
    make_split_point_actual_value : bool, default=True
        Move numeric split points down to the largest training value not above
        them.
    """

    def __init__(self, all_data, *, min_leaf: int = 2, use_mdl_correction: bool = True,
                 make_split_point_actual_value: bool = True):
        self.min_leaf = min_leaf
        self.use_mdl_correction = bool(use_mdl_correction)
        self.make_split_point_actual_value = bool(make_split_point_actual_value)
        self.attributes = all_data.attributes
        self.n_all = all_data.n_rows
        self._actual_values = {}
        for j, att in enumerate(self.attributes):
            if not att.is_nominal:
                col = all_data.X[:, j]
                self._actual_values[j] = np.unique(col[~np.isnan(col)])
        # nominal attributes with many values only count towards the average
        # gain when every attribute is like that
        self._multi_val = all(
            att.is_nominal and att.n_values >= 0.3 * self.n_all for att in self.attributes
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def select(self, data) -> Candidate:
        """Best C4.5 split of ``data``, or a :class:`NoSplit` candidate."""
        leaf = Distribution.from_dataset(data)
        no_split = Candidate(NoSplit(), leaf)
        total = leaf.total
        if total < 2 * self.min_leaf or abs(total - leaf.num_correct()) < EPS:
            return no_split

        candidates = []
        gain_sum, counted = 0.0, 0
        for j, att in enumerate(self.attributes):
            if att.is_nominal:
                cand = self._nominal_candidate(data, j, total)
            else:
                cand = self._numeric_candidate(data, j, total)
            if cand is None:
                continue
            candidates.append(cand)
            if not att.is_nominal or self._multi_val or att.n_values < 0.3 * self.n_all:
                gain_sum += cand.info_gain
                counted += 1
        if counted == 0:
            return no_split
        average = gain_sum / counted

        best, best_ratio = None, 0.0
        for cand in candidates:
            if cand.info_gain >= average - 1e-3 and cand.gain_ratio > best_ratio + EPS:
                best, best_ratio = cand, cand.gain_ratio
        if best is None:
            return no_split

        model = best.model
        if isinstance(model, NumericSplit) and self.make_split_point_actual_value:
            model = NumericSplit(model.attribute, self._actual_split_point(model))
        return Candidate(model, Distribution.from_split(data, model), best.info_gain, best.gain_ratio)

    def force(self, data, model) -> Candidate:
        """Evaluate an externally chosen ``model`` on ``data``."""
        if model.n_subsets == 1:
            return Candidate(model, Distribution.from_dataset(data))
        dist = Distribution.from_split(data, model)
        ig, gr = split_gains(dist)
        return Candidate(model, dist, ig, gr)

    def gain_ratio_of(self, data) -> float:
        cand = self.select(data)
        return cand.gain_ratio if cand.is_split else -math.inf

    # ------------------------------------------------------------------
    # Candidates
    # ------------------------------------------------------------------
    def _nominal_candidate(self, data, j: int, total: float) -> Candidate | None:
        att = self.attributes[j]
        col = data.X[:, j]
        known = ~np.isnan(col)
        bags = np.zeros((att.n_values, data.n_classes))
        np.add.at(bags, (col[known].astype(int), data.y[known]), data.weights[known])
        dist = Distribution(bags)
        if not dist.check(self.min_leaf):
            return None
        ig = _info_gain(bags, total)
        return Candidate(NominalSplit(j, att.n_values), dist, ig, _gain_ratio(ig, bags, total))

    def _numeric_candidate(self, data, j: int, total: float) -> Candidate | None:
        col = data.X[:, j]
        known = ~np.isnan(col)
        n_known = int(known.sum())
        if n_known < 2 * self.min_leaf:
            return None
        v = col[known]
        order = np.argsort(v, kind="mergesort")
        v = v[order]
        yk = data.y[known][order]
        wk = data.weights[known][order]

        K = data.n_classes
        M = np.zeros((n_known, K))
        M[np.arange(n_known), yk] = wk
        SW = M.cumsum(axis=0)
        known_dist = SW[-1]
        known_total = float(known_dist.sum())

        min_split = 0.1 * known_total / K
        if min_split <= self.min_leaf:
            min_split = self.min_leaf
        elif min_split > 25:
            min_split = 25

        bd = np.flatnonzero(v[:-1] + 1e-5 < v[1:])
        if bd.size == 0:
            return None
        left = SW[bd]
        right = known_dist - left
        lw = left.sum(axis=1)
        rw = right.sum(axis=1)
        ok = (lw >= min_split - EPS) & (rw >= min_split - EPS)
        bd, left, right, lw, rw = bd[ok], left[ok], right[ok], lw[ok], rw[ok]
        n_tested = bd.size
        if n_tested == 0:
            return None

        new_ent = (lw * _entropy_rows(left) + rw * _entropy_rows(right)) / known_total
        gains = (_entropy(known_dist) - new_ent) * (known_total / total)
        best = int(np.argmax(gains))
        info_gain = float(gains[best])
        if info_gain <= EPS:
            return None
        if self.use_mdl_correction:
            info_gain -= math.log2(n_tested) / total
        if info_gain <= EPS:
            return None

        i = bd[best]
        point = 0.5 * (v[i] + v[i + 1])
        if point == v[i + 1]:
            point = v[i]
        bags = np.vstack([left[best], right[best]])
        model = NumericSplit(j, float(point))
        return Candidate(model, Distribution(bags), info_gain, _gain_ratio(info_gain, bags, total))

    def _actual_split_point(self, model: NumericSplit) -> float:
        values = self._actual_values.get(model.attribute)
        if values is None or values.size == 0:
            return model.split_point
        idx = int(np.searchsorted(values, model.split_point, side="right")) - 1
        if idx < 0:
            return model.split_point
        return float(values[idx])
