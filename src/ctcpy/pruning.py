# -*- coding: utf-8 -*-
"""
ctcpy.pruning
=============

C4.5 pessimistic error estimates and the pruning passes of consolidated trees.

``add_errors`` is the upper confidence limit correction used by C4.5 to turn
the training errors of a leaf into an estimate of its errors on unseen data.
:class:`ConsolidatedPruner` applies collapsing, subtree replacement and
subtree raising to a :class:`~ctcpy.consolidated.ConsolidatedTree`.  The
estimates are computed on the sample-averaged (consolidated) distributions, and
every restructuring is mirrored on the shadow nodes so that shadow trees keep
the consolidated shape.
"""

from __future__ import annotations
import math

from .distribution import Distribution, EPS


# -----------------------------------------------------------------------------
# Error estimates
# -----------------------------------------------------------------------------
def _norm_ppf(p: float) -> float:
    """Approximate inverse CDF of standard normal (Acklam's approximation)."""
    # clamp
    p = min(max(p, 1e-12), 1 - 1e-12)
    # coefficients
    a = [ -3.969683028665376e+01,  2.209460984245205e+02,
          -2.759285104469687e+02,  1.383577518672690e+02,
          -3.066479806614716e+01,  2.506628277459239e+00 ]
    b = [ -5.447609879822406e+01,  1.615858368580409e+02,
          -1.556989798598866e+02,  6.680131188771972e+01,
          -1.328068155288572e+01 ]
    c = [ -7.784894002430293e-03, -3.223964580411365e-01,
          -2.400758277161838e+00, -2.549732539343734e+00,
           4.374664141464968e+00,  2.938163982698783e+00 ]
    d = [ 7.784695709041462e-03,  3.224671290700398e-01,
          2.445134137142996e+00,  3.754408661907416e+00 ]
    plow  = 0.02425
    phigh = 1 - plow
    if p < plow:
        q = math.sqrt(-2*math.log(p))
        return (((((c[0]*q + c[1])*q + c[2])*q + c[3])*q + c[4])*q + c[5]) / \
               ((((d[0]*q + d[1])*q + d[2])*q + d[3])*q + 1)
    if phigh < p:
        q = math.sqrt(-2*math.log(1-p))
        return -(((((c[0]*q + c[1])*q + c[2])*q + c[3])*q + c[4])*q + c[5]) / \
                 ((((d[0]*q + d[1])*q + d[2])*q + d[3])*q + 1)
    q = p - 0.5
    r = q*q
    return (((((a[0]*r + a[1])*r + a[2])*r + a[3])*r + a[4])*r + a[5])*q / \
           (((((b[0]*r + b[1])*r + b[2])*r + b[3])*r + b[4])*r + 1)


def add_errors(N: float, e: float, cf: float) -> float:
    """Extra errors to add to ``e`` observed errors out of ``N`` (C4.5).

    Parameters
    ----------
    N : float
        Weight of the rows at the leaf.
    e : float
        Weight of the misclassified rows.
    cf : float
        Confidence factor in (0, 0.5].

    Returns
    -------
    float
        ``N * U_cf(e, N) - e`` where ``U_cf`` is the upper limit of the
        binomial confidence interval.
    """
    if N <= 0:
        return 0.0
    if e < 1:
        # interpolate between e=0 (exact) and e=1
        base = N * (1 - cf ** (1.0 / N))
        if e == 0:
            return base
        return base + e * (add_errors(N, 1.0, cf) - base)
    if e + 0.5 >= N:
        return max(N - e, 0.0)
    z = _norm_ppf(1 - cf)
    f = (e + 0.5) / N
    r = (f + (z * z) / (2 * N) + z * math.sqrt(f / N - f * f / N + (z * z) / (4 * N * N))) \
        / (1 + (z * z) / N)
    return r * N - e


def estimated_errors(dist: Distribution, cf: float) -> float:
    """Pessimistic error estimate of a leaf holding ``dist``."""
    if dist.total <= EPS:
        return 0.0
    e = dist.num_incorrect()
    return e + add_errors(dist.total, e, cf)


# -----------------------------------------------------------------------------
# Consolidated trees
# -----------------------------------------------------------------------------
class ConsolidatedPruner:
    """Collapse and prune a consolidated tree in place.

    Parameters
    ----------
    cf : float, default=0.25
        Confidence factor of the pessimistic estimates.
    subtree_raising : bool, default=True
        Also consider replacing a node by its largest branch.
    collapse_tree : bool, default=True
        Collapse subtrees that do not reduce training error.
    pruning : bool, default=True
        Run the pessimistic pruning pass.
    """

    def __init__(self, *, cf: float = 0.25, subtree_raising: bool = True,
                 collapse_tree: bool = True, pruning: bool = True):
        self.cf = float(cf)
        self.subtree_raising = bool(subtree_raising)
        self.collapse_tree = bool(collapse_tree)
        self.pruning = bool(pruning)

    def run(self, tree) -> None:
        """Collapse, prune, then drop the node ids no longer reachable."""
        if self.collapse_tree:
            self.collapse(tree, tree.root)
        if self.pruning:
            self.prune(tree, tree.root)
        tree.compact()

    # ------------------------------------------------------------------
    # Collapsing
    # ------------------------------------------------------------------
    def collapse(self, tree, node_id: int) -> None:
        node = tree.nodes[node_id]
        if node.is_leaf:
            return
        errors_subtree = sum(tree.nodes[k].distribution.num_incorrect()
                             for k in tree.leaves(node_id))
        if errors_subtree >= node.distribution.num_incorrect() - 1e-3:
            tree.make_leaf(node_id)
            return
        for c in node.children:
            self.collapse(tree, c)

    # ------------------------------------------------------------------
    # Pruning
    # ------------------------------------------------------------------
    def prune(self, tree, node_id: int) -> None:
        node = tree.nodes[node_id]
        if node.is_leaf:
            return
        for c in node.children:
            self.prune(tree, c)

        largest = node.distribution.max_bag()
        if self.subtree_raising and largest >= 0:
            errors_largest = self._branch_errors(
                tree, node.children[largest], [s.data for s in node.shadows])
        else:
            errors_largest = math.inf
        errors_leaf = estimated_errors(node.distribution, self.cf)
        errors_tree = sum(estimated_errors(tree.nodes[k].distribution, self.cf)
                          for k in tree.leaves(node_id))

        if errors_leaf <= errors_tree + 0.1 and errors_leaf <= errors_largest + 0.1:
            tree.make_leaf(node_id)
            return
        if errors_largest <= errors_tree + 0.1:
            tree.raise_branch(node_id, largest)
            tree.redistribute(node_id, node.data, [s.data for s in node.shadows])
            self.prune(tree, node_id)

    def _branch_errors(self, tree, node_id: int, samples: list) -> float:
        """Estimated errors if ``samples`` were routed through ``node_id``."""
        node = tree.nodes[node_id]
        if node.is_leaf:
            dist = Distribution.mean([Distribution.from_dataset(s) for s in samples])
            return estimated_errors(dist, self.cf)
        model = node.model
        dist = Distribution.mean([Distribution.from_split(s, model) for s in samples])
        parts = [model.partition(s, dist) for s in samples]
        return sum(self._branch_errors(tree, c, [p[b] for p in parts])
                   for b, c in enumerate(node.children))
