# -*- coding: utf-8 -*-
"""
ctcpy.tree
==========

Plain C4.5 decision trees.

This module holds the single-sample tree used on its own by
:class:`~ctcpy.estimators.C45Classifier` and, per resampled sample, to complete
the truncated leaves of a partially consolidated tree.  Growth is recursive and
uses :class:`~ctcpy.split.C45SplitCriterion`; post-pruning follows C4.5
(collapsing, subtree replacement and subtree raising with pessimistic error
estimates).

The module also contains the ``TreeNode`` class which holds the data
structure for each node in the tree (internal or leaf).
"""

from __future__ import annotations
import math

import numpy as np

from .distribution import Distribution
from .pruning import estimated_errors
from .split import NoSplit


# -----------------------------------------------------------------------------
# Node
# -----------------------------------------------------------------------------
class TreeNode:
    """Internal representation of a single node in a decision tree.

    Parameters
    ----------
    model : split model
        :class:`~ctcpy.split.NoSplit` for leaves, otherwise the split applied
        at this node.
    distribution : Distribution
        Class weights of the training rows reaching the node, one bag per
        branch.
    data : Dataset or None, default=None
        Training rows reaching the node.  Only kept while the tree is being
        built and pruned.

    Attributes
    ----------
    is_leaf : bool
        True if this node is terminal.
    is_empty : bool
        True for a leaf that no training weight reached.
    children : list[TreeNode]
        One child per branch of ``model`` for internal nodes.
    """

    __slots__ = ("model", "distribution", "is_leaf", "is_empty", "children", "data")

    def __init__(self, model, distribution: Distribution, *, data=None):
        self.model = model
        self.distribution = distribution
        self.is_leaf = model.n_subsets == 1
        self.is_empty = self.is_leaf and distribution.is_empty()
        self.children: list[TreeNode] = []
        self.data = data

    def make_leaf(self) -> None:
        self.model = NoSplit()
        self.distribution = self.distribution.collapsed()
        self.is_leaf = True
        self.is_empty = self.distribution.is_empty()
        self.children = []

    def iter_nodes(self):
        """Pre-order traversal."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def iter_leaves_with_depth(self, depth: int = 0):
        """``(leaf, depth)`` pairs in pre-order."""
        stack = [(self, depth)]
        while stack:
            node, d = stack.pop()
            if node.is_leaf:
                yield node, d
            else:
                stack.extend((c, d + 1) for c in reversed(node.children))


# -----------------------------------------------------------------------------
# Prediction
# -----------------------------------------------------------------------------
def class_probs(root: TreeNode, x, weight: float = 1.0) -> np.ndarray:
    """Class probability vector of one encoded row.

    A missing split value sends the row down every non-empty branch, weighted
    by the share of training weight of that branch.  A row reaching an empty
    branch gets the parent's distribution for that branch.
    """
    out = np.zeros(root.distribution.n_classes)
    stack = [(root, weight)]
    while stack:
        node, w = stack.pop()
        if node.is_leaf:
            out += w * node.distribution.class_probs()
            continue
        b = node.model.which_subset(x)
        if b >= 0:
            child = node.children[b]
            if child.is_empty:
                out += w * node.distribution.class_probs(b)
            else:
                stack.append((child, w))
            continue
        shares = node.distribution.branch_weights()
        for i, child in enumerate(node.children):
            if not child.is_empty:
                stack.append((child, w * shares[i]))
    return out


# -----------------------------------------------------------------------------
# Builder
# -----------------------------------------------------------------------------
class C45TreeBuilder:
    """Grow and prune a single C4.5 tree.

    Parameters
    ----------
    criterion : C45SplitCriterion
        Split selection on a dataset.
    pruning : bool, default=True
        Whether to perform pessimistic post-pruning.
    cf : float, default=0.25
        Confidence factor for pessimistic pruning.  Smaller values prune more.
    subtree_raising : bool, default=True
        Consider replacing a node by its largest branch while pruning.
    collapse_tree : bool, default=True
        Collapse subtrees that do not reduce training error.
    """

    def __init__(self, criterion, *, pruning: bool = True, cf: float = 0.25,
                 subtree_raising: bool = True, collapse_tree: bool = True):
        self.criterion = criterion
        self.pruning = bool(pruning)
        self.cf = float(cf)
        self.subtree_raising = bool(subtree_raising)
        self.collapse_tree = bool(collapse_tree)

    def build(self, data) -> TreeNode:
        root = self._build_tree(data)
        if self.collapse_tree:
            self._collapse(root)
        if self.pruning:
            self._prune(root)
        for node in root.iter_nodes():
            node.data = None
        return root

    # ------------------------------------------------------------------
    # Tree construction (gain ratio)
    # ------------------------------------------------------------------
    def _build_tree(self, data) -> TreeNode:
        cand = self.criterion.select(data)
        node = TreeNode(cand.model, cand.distribution, data=data)
        if cand.is_split:
            parts = cand.model.partition(data, cand.distribution)
            node.children = [self._build_tree(p) for p in parts]
        return node

    # ------------------------------------------------------------------
    # Pruning
    # ------------------------------------------------------------------
    def _collapse(self, node: TreeNode) -> None:
        if node.is_leaf:
            return
        errors_subtree = sum(leaf.distribution.num_incorrect()
                             for leaf, _ in node.iter_leaves_with_depth())
        if errors_subtree >= node.distribution.num_incorrect() - 1e-3:
            node.make_leaf()
            return
        for ch in node.children:
            self._collapse(ch)

    def _prune(self, node: TreeNode) -> None:
        if node.is_leaf:
            return
        for ch in node.children:
            self._prune(ch)

        largest = node.distribution.max_bag()
        if self.subtree_raising and largest >= 0:
            errors_largest = self._branch_errors(node.children[largest], node.data)
        else:
            errors_largest = math.inf
        errors_leaf = estimated_errors(node.distribution, self.cf)
        errors_tree = sum(estimated_errors(leaf.distribution, self.cf)
                          for leaf, _ in node.iter_leaves_with_depth())

        if errors_leaf <= errors_tree + 0.1 and errors_leaf <= errors_largest + 0.1:
            node.make_leaf()
            return
        if errors_largest <= errors_tree + 0.1:
            raised = node.children[largest]
            node.model = raised.model
            node.children = raised.children
            node.is_leaf = raised.is_leaf
            self._redistribute(node, node.data)
            self._prune(node)

    def _branch_errors(self, node: TreeNode, data) -> float:
        if node.is_leaf:
            return estimated_errors(Distribution.from_dataset(data), self.cf)
        parts = node.model.partition(data)
        return sum(self._branch_errors(ch, p) for ch, p in zip(node.children, parts))

    def _redistribute(self, node: TreeNode, data) -> None:
        """Recompute distributions after routing ``data`` from ``node`` down."""
        node.data = data
        if node.is_leaf:
            node.distribution = Distribution.from_dataset(data)
            node.is_empty = node.distribution.is_empty()
            return
        node.distribution = Distribution.from_split(data, node.model)
        for ch, p in zip(node.children, node.model.partition(data, node.distribution)):
            self._redistribute(ch, p)
