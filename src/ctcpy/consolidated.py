# -*- coding: utf-8 -*-
"""
ctcpy.consolidated
==================

Consolidated trees and the builders that grow them.

A :class:`ConsolidatedTree` is an arena: ``nodes[k]`` is the
:class:`ConsolidatedNode` with id ``k`` and the root has id ``0``.  Every node
carries exactly one :class:`ShadowNode` per sample; shadow ``i`` holds sample
``i``'s rows reaching the node and the consolidated split evaluated on them.
Shadow tree ``i`` is therefore the consolidated shape read through
``shadows[i]``, and a child of shadow ``i`` is ``nodes[c].shadows[i]`` for a
consolidated child id ``c``.

Two builders grow the same trees:

* :class:`RecursiveTreeBuilder` expands nodes depth first by recursion.
* :class:`IterativeTreeBuilder` expands nodes from a prioritized work list and
  can stop early on a budget of levels or internal nodes, leaving the nodes it
  did not expand as *truncated* leaves.
"""

from __future__ import annotations
import math

import numpy as np

from .distribution import Distribution
from .exceptions import BuildCancelled
from .split import NoSplit
from . import tree as _tree

PRIORITY_CRITERIA = ("original", "level_by_level", "preorder", "size",
                     "gain_ratio", "normalized_gain_ratio")


# -----------------------------------------------------------------------------
# Nodes
# -----------------------------------------------------------------------------
class ShadowNode:
    """One sample's view of a consolidated node.

    Attributes
    ----------
    model : split model
        The consolidated model (``NoSplit`` at leaves).
    distribution : Distribution
        The model applied to this sample's rows.
    is_empty : bool
        No weight of this sample reaches the node.
    data : Dataset or None
        This sample's rows reaching the node (dropped after fitting).
    graft : TreeNode or None
        Standard C4.5 subtree grown from ``data`` at a truncated leaf.
    """

    __slots__ = ("model", "distribution", "is_empty", "data", "graft")

    def __init__(self, data):
        self.model = NoSplit()
        self.distribution = None
        self.is_empty = False
        self.data = data
        self.graft = None

    def set(self, model, distribution: Distribution) -> None:
        self.model = model
        self.distribution = distribution
        self.is_empty = distribution.is_empty()


class ConsolidatedNode:
    """A node of the consolidated tree."""

    __slots__ = ("model", "distribution", "is_leaf", "is_empty", "truncated",
                 "depth", "children", "data", "shadows")

    def __init__(self, data, samples, depth: int):
        self.model = NoSplit()
        self.distribution = None
        self.is_leaf = True
        self.is_empty = False
        self.truncated = False
        self.depth = depth
        self.children: list[int] = []
        self.data = data
        self.shadows = [ShadowNode(s) for s in samples]

    def set(self, model, distribution: Distribution) -> None:
        self.model = model
        self.distribution = distribution
        self.is_empty = distribution.is_empty()


# -----------------------------------------------------------------------------
# Arena
# -----------------------------------------------------------------------------
class ConsolidatedTree:
    """Arena of consolidated nodes; the root has id 0."""

    root = 0

    def __init__(self, n_samples: int):
        self.n_samples = int(n_samples)
        self.nodes: list[ConsolidatedNode] = []

    def add_node(self, data, samples, depth: int) -> int:
        if len(samples) != self.n_samples:
            raise ValueError(f"expected {self.n_samples} samples, got {len(samples)}")
        self.nodes.append(ConsolidatedNode(data, samples, depth))
        return len(self.nodes) - 1

    def sample_data(self, node_id: int) -> list:
        return [s.data for s in self.nodes[node_id].shadows]

    # ------------------------------------------------------------------
    # Growing
    # ------------------------------------------------------------------
    def expand(self, node_id: int, choice) -> list[int]:
        """Apply a split ``choice`` and create one child per branch."""
        node = self.nodes[node_id]
        node.set(choice.model, choice.distribution)
        node.is_leaf = False
        for shadow, cand in zip(node.shadows, choice.shadows):
            shadow.set(choice.model, cand.distribution)
        parts = choice.model.partition(node.data, choice.distribution)
        sample_parts = [choice.model.partition(s.data, choice.distribution) for s in node.shadows]
        node.children = [self.add_node(parts[b], [sp[b] for sp in sample_parts], node.depth + 1)
                         for b in range(choice.model.n_subsets)]
        return node.children

    def finalize_leaf(self, node_id: int, choice, truncated: bool = False) -> None:
        """Make ``node_id`` a leaf holding the class weights of ``choice``."""
        node = self.nodes[node_id]
        node.set(NoSplit(), choice.distribution.collapsed())
        node.is_leaf = True
        node.truncated = bool(truncated and choice.is_split)
        node.children = []
        for shadow, cand in zip(node.shadows, choice.shadows):
            shadow.set(NoSplit(), cand.distribution.collapsed())

    # ------------------------------------------------------------------
    # Restructuring (pruning and partial consolidation)
    # ------------------------------------------------------------------
    def make_leaf(self, node_id: int, truncated: bool = False) -> None:
        """Replace the subtree at ``node_id`` by a leaf.

        The leaf stays truncated if any leaf of the removed subtree was.
        """
        node = self.nodes[node_id]
        if not node.is_leaf:
            truncated = truncated or any(self.nodes[k].truncated for k in self.leaves(node_id))
        node.set(NoSplit(), node.distribution.collapsed())
        node.is_leaf = True
        node.truncated = truncated
        node.children = []
        for shadow in node.shadows:
            shadow.set(NoSplit(), shadow.distribution.collapsed())

    def raise_branch(self, node_id: int, branch: int) -> None:
        """Replace ``node_id``'s split by the subtree of one of its branches.

        Distributions are left stale; call :meth:`redistribute` afterwards.
        """
        node = self.nodes[node_id]
        raised = self.nodes[node.children[branch]]
        node.model = raised.model
        node.children = list(raised.children)
        node.is_leaf = raised.is_leaf
        node.truncated = raised.truncated
        for shadow, rs in zip(node.shadows, raised.shadows):
            shadow.model = rs.model
            shadow.graft = rs.graft

    def redistribute(self, node_id: int, data, samples) -> None:
        """Route ``data`` and ``samples`` down from ``node_id`` and recompute
        every consolidated and shadow distribution below it."""
        stack = [(node_id, data, list(samples))]
        while stack:
            k, d, ss = stack.pop()
            node = self.nodes[k]
            node.data = d
            for shadow, sd in zip(node.shadows, ss):
                shadow.data = sd
            if node.is_leaf:
                dists = [Distribution.from_dataset(sd) for sd in ss]
                node.set(node.model, Distribution.mean(dists))
                for shadow, dist in zip(node.shadows, dists):
                    shadow.set(node.model, dist)
                continue
            model = node.model
            dists = [Distribution.from_split(sd, model) for sd in ss]
            node.set(model, Distribution.mean(dists))
            for shadow, dist in zip(node.shadows, dists):
                shadow.set(model, dist)
            parts = model.partition(d, node.distribution)
            sample_parts = [model.partition(sd, node.distribution) for sd in ss]
            for b, c in enumerate(node.children):
                stack.append((c, parts[b], [sp[b] for sp in sample_parts]))

    def compact(self) -> None:
        """Drop unreachable nodes, renumber in pre-order and refresh depths."""
        order = list(self.iter_preorder())
        remap = {old: new for new, old in enumerate(order)}
        nodes = [self.nodes[k] for k in order]
        for node in nodes:
            node.children = [remap[c] for c in node.children]
        self.nodes = nodes
        self.nodes[self.root].depth = 0
        for node in self.nodes:
            for c in node.children:
                self.nodes[c].depth = node.depth + 1

    def cleanup(self) -> None:
        """Forget the training rows kept on every node."""
        for node in self.nodes:
            node.data = None
            for shadow in node.shadows:
                shadow.data = None

    # ------------------------------------------------------------------
    # Traversal
    # ------------------------------------------------------------------
    def iter_preorder(self, node_id: int = 0):
        stack = [node_id]
        while stack:
            k = stack.pop()
            yield k
            stack.extend(reversed(self.nodes[k].children))

    def leaves(self, node_id: int = 0) -> list[int]:
        return [k for k in self.iter_preorder(node_id) if self.nodes[k].is_leaf]

    def inner_nodes(self, node_id: int = 0) -> list[int]:
        return [k for k in self.iter_preorder(node_id) if not self.nodes[k].is_leaf]

    def truncated_leaves(self) -> list[int]:
        return [k for k in self.leaves() if self.nodes[k].truncated]

    @property
    def n_nodes(self) -> int:
        return sum(1 for _ in self.iter_preorder())

    @property
    def n_leaves(self) -> int:
        return len(self.leaves())

    @property
    def n_inner_nodes(self) -> int:
        return len(self.inner_nodes())

    @property
    def depth(self) -> int:
        return max((self.nodes[k].depth for k in self.leaves()), default=0)

    # ------------------------------------------------------------------
    # Prediction
    # ------------------------------------------------------------------
    def class_probs(self, x, sample: int | None = None) -> np.ndarray:
        """Class probabilities of one encoded row.

        ``sample=None`` reads the consolidated tree, otherwise shadow tree
        ``sample`` including its graft at truncated leaves.
        """
        root = self.nodes[self.root]
        out = np.zeros(root.distribution.n_classes)
        stack = [(self.root, 1.0)]
        while stack:
            k, w = stack.pop()
            node = self.nodes[k]
            view = node if sample is None else node.shadows[sample]
            if node.is_leaf:
                if sample is not None and view.graft is not None:
                    out += w * _tree.class_probs(view.graft, x)
                else:
                    out += w * view.distribution.class_probs()
                continue
            b = node.model.which_subset(x)
            if b >= 0:
                c = node.children[b]
                child = self.nodes[c] if sample is None else self.nodes[c].shadows[sample]
                if child.is_empty:
                    out += w * view.distribution.class_probs(b)
                else:
                    stack.append((c, w))
                continue
            shares = view.distribution.branch_weights()
            for i, c in enumerate(node.children):
                child = self.nodes[c] if sample is None else self.nodes[c].shadows[sample]
                if not child.is_empty:
                    stack.append((c, w * shares[i]))
        return out


# -----------------------------------------------------------------------------
# Builders
# -----------------------------------------------------------------------------
class RecursiveTreeBuilder:
    """Grow the full consolidated tree depth first.

    Parameters
    ----------
    selector : ConsolidatedSplitSelector
    """

    def __init__(self, selector):
        self.selector = selector

    def build(self, data, samples) -> ConsolidatedTree:
        samples = list(samples)
        tree = ConsolidatedTree(len(samples))
        root = tree.add_node(data, samples, depth=0)
        self._build_node(tree, root)
        return tree

    def _build_node(self, tree: ConsolidatedTree, node_id: int) -> None:
        node = tree.nodes[node_id]
        choice = self.selector.select(node.data, tree.sample_data(node_id))
        if not choice.is_split:
            tree.finalize_leaf(node_id, choice)
            return
        for c in tree.expand(node_id, choice):
            self._build_node(tree, c)


class IterativeTreeBuilder:
    """Grow a consolidated tree from a prioritized work list.

    Parameters
    ----------
    selector : ConsolidatedSplitSelector
    criterion : str, default="preorder"
        Order in which pending nodes are expanded:

        - ``"preorder"`` / ``"original"``: children go to the front, giving a
          depth-first pre-order.
        - ``"level_by_level"``: children go to the back (breadth first).
        - ``"size"``: by descending branch weight.
        - ``"gain_ratio"``: by descending gain ratio of the child's own best
          split (``-inf`` when it cannot be split).
        - ``"normalized_gain_ratio"``: by descending branch weight times that
          gain ratio.
    max_levels : int or None, default=None
        Only nodes at a depth below this may be split (``"level_by_level"``).
    max_inner_nodes : int or None, default=None
        Stop splitting once this many internal nodes exist (other criteria).
    should_stop : callable or None, default=None
        Called once per node taken from the work list; a true return value
        aborts the build with :class:`~ctcpy.exceptions.BuildCancelled`.
    """

    def __init__(self, selector, criterion: str = "preorder", *,
                 max_levels: int | None = None, max_inner_nodes: int | None = None,
                 should_stop=None):
        if criterion not in PRIORITY_CRITERIA:
            raise ValueError(f"criterion must be one of {PRIORITY_CRITERIA}, got {criterion!r}")
        self.selector = selector
        self.criterion = criterion
        self.max_levels = max_levels
        self.max_inner_nodes = max_inner_nodes
        self.should_stop = should_stop

    def build(self, data, samples) -> ConsolidatedTree:
        samples = list(samples)
        tree = ConsolidatedTree(len(samples))
        work = [tree.add_node(data, samples, depth=0)]
        values = [0.0]
        choices = {}
        n_inner = 0
        while work:
            if self.should_stop is not None and self.should_stop():
                raise BuildCancelled(f"stopped after {len(tree.nodes) - len(work)} nodes")
            k = work.pop(0)
            values.pop(0)
            node = tree.nodes[k]
            choice = choices.pop(k, None)
            if choice is None:
                choice = self.selector.select(node.data, tree.sample_data(k))
            if not choice.is_split:
                tree.finalize_leaf(k, choice)
            elif not self._may_split(node.depth, n_inner):
                tree.finalize_leaf(k, choice, truncated=True)
            else:
                children = tree.expand(k, choice)
                n_inner += 1
                self._enqueue(tree, work, values, choice, children, choices)
        return tree

    def _may_split(self, depth: int, n_inner: int) -> bool:
        if self.criterion == "level_by_level":
            return self.max_levels is None or depth < self.max_levels
        return self.max_inner_nodes is None or n_inner < self.max_inner_nodes

    def _enqueue(self, tree, work, values, choice, children, choices) -> None:
        if self.criterion in ("preorder", "original"):
            work[0:0] = children
            values[0:0] = [0.0] * len(children)
            return
        if self.criterion == "level_by_level":
            work.extend(children)
            values.extend([0.0] * len(children))
            return
        for b, c in enumerate(children):
            value = self._priority(tree, choice, b, c, choices)
            pos = next((i for i, v in enumerate(values) if v < value), len(values))
            work.insert(pos, c)
            values.insert(pos, value)

    def _priority(self, tree, choice, branch: int, child: int, choices) -> float:
        weight = float(choice.distribution.per_bag[branch])
        if self.criterion == "size":
            return weight
        child_choice = self.selector.select(tree.nodes[child].data, tree.sample_data(child))
        choices[child] = child_choice
        if not child_choice.is_split:
            return -math.inf
        if self.criterion == "gain_ratio":
            return child_choice.gain_ratio
        return weight * child_choice.gain_ratio
