# -*- coding: utf-8 -*-
"""
ctcpy.consolidation
===================

Agreement of one split across all samples.

At every node each sample proposes its own C4.5 split.  The attribute most
samples propose wins (lowest attribute index on ties).  For a numeric winner
the split point is the lower median of the points proposed by the samples that
voted for it.  The consolidated distribution is the average of that split
applied to every sample, and the split is kept only if this average still
leaves at least two branches with ``min_leaf`` weight.
"""

from __future__ import annotations
from dataclasses import dataclass, field

import numpy as np

from .distribution import Distribution
from .split import Candidate, NoSplit, NominalSplit, NumericSplit, split_gains


def lower_median(values) -> float:
    """Element ``floor((n + 1) / 2) - 1`` of the sorted values."""
    values = np.sort(np.asarray(values, dtype=float))
    if values.size == 0:
        raise ValueError("lower_median of an empty sequence")
    return float(values[(values.size + 1) // 2 - 1])


@dataclass
class ConsolidatedChoice:
    """Outcome of the consolidated split selection at one node.

    ``shadows[i]`` is the chosen model evaluated on sample ``i``; the
    consolidated distribution is their mean.
    """

    model: object
    distribution: Distribution
    info_gain: float = 0.0
    gain_ratio: float = 0.0
    shadows: list = field(default_factory=list)
    votes: np.ndarray | None = None

    @property
    def is_split(self) -> bool:
        return self.model.n_subsets > 1


class ConsolidatedSplitSelector:
    """Choose one split per node from the votes of all samples.

    Parameters
    ----------
    criterion : C45SplitCriterion
        Per-sample split selection.
    min_leaf : int, default=2
        Minimum weight two branches of the consolidated distribution must hold.
    """

    def __init__(self, criterion, *, min_leaf: int = 2):
        self.criterion = criterion
        self.min_leaf = min_leaf

    def vote(self, samples) -> list:
        """Each sample's own best split as a :class:`~ctcpy.split.Candidate`."""
        return [self.criterion.select(s) for s in samples]

    def select(self, data, samples) -> ConsolidatedChoice:
        """Consolidated split for the node holding ``data`` and ``samples``."""
        votes = self.vote(samples)
        n_att = data.n_attributes
        attrs = np.array([v.model.attribute for v in votes if v.is_split], dtype=int)
        counts = np.bincount(attrs, minlength=n_att) if attrs.size else np.zeros(n_att, dtype=int)
        if attrs.size == 0:
            return self._leaf(samples, counts)

        winner = int(np.argmax(counts))
        if data.attributes[winner].is_nominal:
            model = NominalSplit(winner, data.attributes[winner].n_values)
        else:
            points = [v.model.split_point for v in votes
                      if v.is_split and v.model.attribute == winner]
            model = NumericSplit(winner, lower_median(points))

        shadows = [self.criterion.force(s, model) for s in samples]
        dist = Distribution.mean([c.distribution for c in shadows])
        if not dist.check(self.min_leaf):
            return self._leaf(samples, counts)
        ig, gr = split_gains(dist)
        return ConsolidatedChoice(model, dist, ig, gr, shadows, counts)

    def _leaf(self, samples, counts) -> ConsolidatedChoice:
        model = NoSplit()
        shadows = [Candidate(model, Distribution.from_dataset(s)) for s in samples]
        dist = Distribution.mean([c.distribution for c in shadows])
        return ConsolidatedChoice(model, dist, 0.0, 0.0, shadows, counts)
