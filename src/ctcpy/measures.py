# -*- coding: utf-8 -*-
"""
ctcpy.measures
==============

Structural measures of fitted trees.

Every tree is summarized by :class:`TreeStats`; an ensemble of shadow trees by
the mean, minimum, maximum, sum, lower median and sample standard deviation of
each measure.
"""

from __future__ import annotations
from dataclasses import dataclass

import numpy as np

TREE_MEASURES = ("tree_size", "leaf_count", "rule_count", "inner_node_count",
                 "explanation_length", "weighted_explanation_length")
AGGREGATES = ("mean", "min", "max", "sum", "median", "std")


@dataclass
class TreeStats:
    tree_size: int
    leaf_count: int
    inner_node_count: int
    explanation_length: float
    weighted_explanation_length: float

    @property
    def rule_count(self) -> int:
        return self.leaf_count

    def as_dict(self) -> dict:
        return {name: float(getattr(self, name)) for name in TREE_MEASURES}


def _stats(n_nodes: int, leaves) -> TreeStats:
    """``leaves`` is a list of ``(depth, training weight)`` pairs."""
    depths = np.array([d for d, _ in leaves], dtype=float)
    weights = np.array([w for _, w in leaves], dtype=float)
    n_leaves = len(leaves)
    mean_depth = float(depths.mean()) if n_leaves else 0.0
    weighted = float((depths * weights).sum() / weights.sum()) if weights.sum() > 0 else mean_depth
    return TreeStats(n_nodes, n_leaves, n_nodes - n_leaves, mean_depth, weighted)


def tree_stats(root) -> TreeStats:
    """Measures of a plain :class:`~ctcpy.tree.TreeNode` tree."""
    n_nodes = sum(1 for _ in root.iter_nodes())
    leaves = [(d, leaf.distribution.total) for leaf, d in root.iter_leaves_with_depth()]
    return _stats(n_nodes, leaves)


def consolidated_stats(tree, sample: int | None = None) -> TreeStats:
    """Measures of the consolidated tree, or of shadow tree ``sample``
    including the grafts below its truncated leaves."""
    n_nodes = 0
    leaves = []
    for k in tree.iter_preorder():
        node = tree.nodes[k]
        view = node if sample is None else node.shadows[sample]
        graft = view.graft if (sample is not None and node.is_leaf) else None
        if graft is None:
            n_nodes += 1
            if node.is_leaf:
                leaves.append((node.depth, view.distribution.total))
            continue
        # the graft root takes the place of the truncated leaf
        n_nodes += sum(1 for _ in graft.iter_nodes())
        leaves.extend((d, leaf.distribution.total)
                      for leaf, d in graft.iter_leaves_with_depth(node.depth))
    return _stats(n_nodes, leaves)


def aggregate(values) -> dict:
    """mean / min / max / sum / lower median / sample std of ``values``."""
    v = np.sort(np.asarray(values, dtype=float))
    if v.size == 0:
        return {name: 0.0 for name in AGGREGATES}
    return {
        "mean": float(v.mean()),
        "min": float(v[0]),
        "max": float(v[-1]),
        "sum": float(v.sum()),
        "median": float(v[(v.size + 1) // 2 - 1]),
        "std": float(v.std(ddof=1)) if v.size > 1 else 0.0,
    }
