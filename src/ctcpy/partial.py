# -*- coding: utf-8 -*-
"""
ctcpy.partial
=============

Partial consolidation and bagging completion.

:class:`PartialConsolidationController` keeps only part of a consolidated
tree: the internal nodes within a budget derived from
``consolidation_percent``.  Nodes beyond the budget become *truncated* leaves.
:class:`BaggingCompletion` then grows, below every truncated leaf and for every
sample, an ordinary C4.5 subtree from that sample's rows, so that each shadow
tree is a complete classifier sharing the consolidated top.
"""

from __future__ import annotations
import heapq
import logging
import math

from joblib import Parallel, delayed

from .consolidated import IterativeTreeBuilder, PRIORITY_CRITERIA, RecursiveTreeBuilder
from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

BUDGET_MODES = ("percentage", "absolute")


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def truncate_by_weight(tree, n_keep: int) -> int:
    """Keep the ``n_keep`` heaviest internal nodes reachable from the root.

    Nodes are taken in order of descending weight from a frontier that starts
    at the root (ties go to the node reached first); the internal nodes left
    on the frontier become truncated leaves.  Returns the number kept.
    """
    root = tree.nodes[tree.root]
    heap, counter = [], 0
    if not root.is_leaf:
        heap.append((-root.distribution.total, counter, tree.root))
    kept = 0
    while heap and kept < n_keep:
        _, _, k = heapq.heappop(heap)
        kept += 1
        for c in tree.nodes[k].children:
            if not tree.nodes[c].is_leaf:
                counter += 1
                heapq.heappush(heap, (-tree.nodes[c].distribution.total, counter, c))
    for _, _, k in heap:
        tree.make_leaf(k, truncated=True)
    tree.compact()
    return kept


# -----------------------------------------------------------------------------
# Partial consolidation
# -----------------------------------------------------------------------------
class PartialConsolidationController:
    """Build and prune a consolidated tree, then cut it down to a budget.

    Parameters
    ----------
    selector : ConsolidatedSplitSelector
    pruner : ConsolidatedPruner
    consolidation_percent : float, default=20.0
        Percentage of internal nodes (or levels, for ``"level_by_level"``) of
        the pruned consolidated tree to keep.  With
        ``budget_mode="absolute"`` the value is the budget itself.
    priority_criterion : str, default="original"
        ``"original"`` truncates the full pruned tree by node weight; any other
        value is an :class:`~ctcpy.consolidated.IterativeTreeBuilder` order.
    budget_mode : {"percentage", "absolute"}, default="percentage"
    """

    def __init__(self, selector, pruner, *, consolidation_percent: float = 20.0,
                 priority_criterion: str = "original", budget_mode: str = "percentage"):
        if priority_criterion not in PRIORITY_CRITERIA:
            raise ConfigurationError(
                f"priority_criterion must be one of {PRIORITY_CRITERIA}, got {priority_criterion!r}")
        if budget_mode not in BUDGET_MODES:
            raise ConfigurationError(f"budget_mode must be one of {BUDGET_MODES}, got {budget_mode!r}")
        if consolidation_percent < 0 or (budget_mode == "percentage" and consolidation_percent > 100):
            raise ConfigurationError(
                f"consolidation_percent must be in [0, 100], got {consolidation_percent!r}")
        if budget_mode == "absolute" and float(consolidation_percent) != int(consolidation_percent):
            raise ConfigurationError(
                f"an absolute budget must be a whole number of nodes, got {consolidation_percent!r}")
        self.selector = selector
        self.pruner = pruner
        self.consolidation_percent = float(consolidation_percent)
        self.priority_criterion = priority_criterion
        self.budget_mode = budget_mode
        self.n_inner_nodes_target_ = None
        self.n_inner_nodes_kept_ = None

    def _budget(self, measure: int) -> int:
        if self.budget_mode == "absolute":
            return int(self.consolidation_percent)
        return _round_half_up(measure * self.consolidation_percent / 100.0)

    def build(self, data, samples):
        """Partially consolidated, pruned tree of ``data`` and ``samples``."""
        if self.priority_criterion == "original":
            tree = RecursiveTreeBuilder(self.selector).build(data, samples)
            self.pruner.run(tree)
            target = self._budget(tree.n_inner_nodes)
            kept = truncate_by_weight(tree, target)
        else:
            level_mode = self.priority_criterion == "level_by_level"
            full = None
            if self.budget_mode == "percentage":
                full = IterativeTreeBuilder(self.selector, self.priority_criterion).build(data, samples)
                self.pruner.run(full)
                measure = full.depth if level_mode else full.n_inner_nodes
                target = self._budget(measure)
            else:
                target = self._budget(0)
            if full is not None and target >= measure:
                # the budget covers the whole pruned tree, nothing is truncated
                tree = full
            else:
                if level_mode:
                    builder = IterativeTreeBuilder(self.selector, self.priority_criterion,
                                                   max_levels=target)
                else:
                    builder = IterativeTreeBuilder(self.selector, self.priority_criterion,
                                                   max_inner_nodes=target)
                tree = builder.build(data, samples)
                self.pruner.run(tree)
            kept = tree.n_inner_nodes
        if target <= 0:
            # nothing is consolidated, every sample grows its own tree
            tree.make_leaf(tree.root, truncated=True)
            tree.compact()
            kept = 0
        self.n_inner_nodes_target_ = target
        self.n_inner_nodes_kept_ = kept
        logger.info("partial consolidation (%s): budget %d, %d internal nodes kept, %d truncated leaves",
                    self.priority_criterion, target, kept, len(tree.truncated_leaves()))
        return tree


# -----------------------------------------------------------------------------
# Bagging completion
# -----------------------------------------------------------------------------
def _grow_grafts(builder, datasets):
    return [builder.build(d) for d in datasets]


class BaggingCompletion:
    """Grow one standard C4.5 subtree per sample below every truncated leaf.

    Parameters
    ----------
    builder : C45TreeBuilder
        Grows and prunes each subtree.
    n_jobs : int or None, default=None
        Samples processed in parallel by :class:`joblib.Parallel`.
    """

    def __init__(self, builder, *, n_jobs: int | None = None):
        self.builder = builder
        self.n_jobs = n_jobs

    def complete(self, tree) -> int:
        """Attach the grafts in place and return the number of truncated leaves."""
        leaves = tree.truncated_leaves()
        if not leaves:
            return 0
        per_sample = [[tree.nodes[k].shadows[i].data for k in leaves]
                      for i in range(tree.n_samples)]
        results = Parallel(n_jobs=self.n_jobs)(
            delayed(_grow_grafts)(self.builder, datasets) for datasets in per_sample)
        for i, grafts in enumerate(results):
            for k, graft in zip(leaves, grafts):
                tree.nodes[k].shadows[i].graft = graft
        return len(leaves)
