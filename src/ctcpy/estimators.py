# -*- coding: utf-8 -*-
"""
ctcpy.estimators
================

scikit-learn estimators built on the tree machinery of this package.

* :class:`C45Classifier` - a single C4.5 tree.
* :class:`ConsolidatedTreeClassifier` - one tree whose every split is agreed on
  by N resampled samples (Consolidated Tree Construction).  The result has
  the stability of an ensemble and stays a single, explainable tree.
* :class:`PartiallyConsolidatedTreeClassifier` - consolidates only the top of
  the tree and completes it below the truncated leaves with one standard tree
  per sample, giving an ensemble of N trees that share their top levels.

All three accept numeric and categorical predictors with missing values
(``None`` or ``numpy.nan``) and expose ``fit``, ``predict``, ``predict_proba``
plus single-instance helpers and structural measures.
"""

from __future__ import annotations
import logging

import numpy as np
from sklearn.base import BaseEstimator, ClassifierMixin
from sklearn.utils import check_random_state
from sklearn.utils.multiclass import type_of_target
from sklearn.utils.validation import check_is_fitted

from .consolidated import RecursiveTreeBuilder, PRIORITY_CRITERIA
from .consolidation import ConsolidatedSplitSelector
from .dataset import Dataset, _isnan_scalar
from .exceptions import ConfigurationError
from .measures import (AGGREGATES, TREE_MEASURES, aggregate, consolidated_stats,
                       tree_stats)
from .partial import BUDGET_MODES, BaggingCompletion, PartialConsolidationController
from .pruning import ConsolidatedPruner
from .resampling import Resampler, ResamplingPolicy
from .split import C45SplitCriterion
from . import tree as _tree

logger = logging.getLogger(__name__)

_NOT_FITTED = "Estimator not fitted. Call fit(...) first."
VOTES = ("proba", "majority")


# -----------------------------------------------------------------------------
# Shared machinery
# -----------------------------------------------------------------------------
class _C45Base(BaseEstimator, ClassifierMixin):
    """Tree induction options and the fit/predict plumbing shared by every
    estimator of the package."""

    def _validate_tree_params(self):
        if int(self.min_samples_leaf) < 1:
            raise ConfigurationError(f"min_samples_leaf must be >= 1, got {self.min_samples_leaf!r}")
        if not 0 < float(self.cf) <= 0.5:
            raise ConfigurationError(f"cf must be in (0, 0.5], got {self.cf!r}")
        if not self.pruning:
            if float(self.cf) != 0.25:
                raise ConfigurationError("Changing the confidence factor makes no sense for an unpruned tree")
            if not self.subtree_raising:
                raise ConfigurationError("Subtree raising does not need to be unset for an unpruned tree")

    def _prepare(self, X, y, sample_weight, feature_names) -> Dataset:
        y_raw = np.asarray(y, dtype=object)
        known = [v for v in y_raw.ravel() if not _isnan_scalar(v)]
        if known and type_of_target(np.asarray(known)) in ("continuous", "continuous-multioutput"):
            raise ValueError("Unknown label type: continuous. Only nominal classes are supported.")
        if feature_names is None:
            feature_names = self.feature_names
        data = Dataset.from_arrays(X, y, sample_weight, feature_names=feature_names,
                                   categorical_features=self.categorical_features)
        data = data.without_missing_class()
        if data.n_rows == 0:
            logger.warning("No training rows with a known class; the model is a single empty leaf")
        self.classes_ = data.classes
        self.n_features_in_ = data.n_attributes
        self.feature_names_ = [a.name for a in data.attributes]
        self.schema_ = data.empty()
        return data

    def _criterion(self, data) -> C45SplitCriterion:
        return C45SplitCriterion(
            data,
            min_leaf=int(self.min_samples_leaf),
            use_mdl_correction=self.use_mdl_correction,
            make_split_point_actual_value=self.make_split_point_actual_value,
        )

    def _tree_builder(self, criterion) -> _tree.C45TreeBuilder:
        return _tree.C45TreeBuilder(
            criterion,
            pruning=self.pruning,
            cf=float(self.cf),
            subtree_raising=self.subtree_raising,
            collapse_tree=self.collapse_tree,
        )

    # ------------------------------------------------------------------
    # Prediction
    # ------------------------------------------------------------------
    def _class_probs(self, x) -> np.ndarray:
        raise NotImplementedError

    def predict_proba(self, X):
        """
        Predict class probabilities for the provided samples.

        Parameters
        ----------
        X : array-like of shape (n_samples, n_features)
            Input samples.  Missing values may be represented by ``None`` or
            ``numpy.nan``.

        Returns
        -------
        ndarray of shape (n_samples, n_classes)
            Predicted class probabilities.

        Raises
        ------
        ValueError
            If the estimator has not been fitted.
        """
        check_is_fitted(self, "tree_", msg=_NOT_FITTED)
        Xe = self.schema_.encode_rows(X)
        acc = np.array([self._class_probs(x) for x in Xe]).reshape(len(Xe), len(self.classes_))
        # Normalise to probability simplex
        row_sum = acc.sum(axis=1, keepdims=True)
        row_sum[row_sum == 0] = 1.0
        return acc / row_sum

    def predict(self, X):
        """Predict class labels (arg-max of :meth:`predict_proba`, lowest
        class index on ties)."""
        proba = self.predict_proba(X)
        if len(self.classes_) == 0:
            raise ValueError("No class was seen during fit, there is nothing to predict")
        return self.classes_[np.argmax(proba, axis=1)]

    def predict_distribution(self, instance) -> np.ndarray:
        """Class probability vector of a single instance."""
        return self.predict_proba(np.asarray(instance, dtype=object).reshape(1, -1))[0]

    def classify(self, instance) -> int:
        """Index into ``classes_`` of the class predicted for one instance."""
        return int(np.argmax(self.predict_distribution(instance)))

    # ------------------------------------------------------------------
    # Measures
    # ------------------------------------------------------------------
    def _measures(self) -> dict:
        raise NotImplementedError

    def enumerate_measures(self) -> list[str]:
        """Names accepted by :meth:`get_measure`."""
        check_is_fitted(self, "tree_", msg=_NOT_FITTED)
        return list(self._measures())

    def get_measure(self, name: str) -> float:
        check_is_fitted(self, "tree_", msg=_NOT_FITTED)
        measures = self._measures()
        key = str(name).lower()
        if key not in measures:
            raise ValueError(f"{name!r} not supported; available measures: {sorted(measures)}")
        return measures[key]


# -----------------------------------------------------------------------------
# C4.5
# -----------------------------------------------------------------------------
class C45Classifier(_C45Base):
    """
    Decision tree classifier following Quinlan's C4.5.

    Splits are chosen by gain ratio among the attributes with at least average
    information gain.  Nominal attributes split into one branch per category,
    numeric ones into ``<=``/``>`` a threshold.  Rows with missing values are
    divided fractionally among branches, both when training and when
    predicting.  The grown tree is collapsed and pruned with C4.5's
    pessimistic error estimates.

    Parameters
    ----------
    min_samples_leaf : int, default=2
        Minimum weight at least two branches of a split must hold.
    pruning : bool, default=True
        Whether to perform pessimistic post-pruning.
    cf : float, default=0.25
        Confidence factor for pessimistic pruning, in (0, 0.5].  Smaller values
        prune more.  Values above 0.5 are refused: the normal deviate
        ``z = _norm_ppf(1 - cf)`` of the upper confidence limit turns
        negative, so the "pessimistic" estimate would fall below the
        observed error.
    subtree_raising : bool, default=True
        Consider replacing a node by its largest branch while pruning.
    collapse_tree : bool, default=True
        Collapse subtrees that do not reduce training error.
    use_mdl_correction : bool, default=True
        Penalize numeric splits by the number of thresholds tried.
    make_split_point_actual_value : bool, default=True
        Use an actual training value as numeric threshold.
    feature_names : list[str] or None, default=None
        Optional list of feature names.  Required when
        ``categorical_features`` are given by name.
    categorical_features : list[int|str] or None, default=None
        Indices or names of categorical input features.  All other features
        are treated as numeric.
    """

    def __init__(
        self,
        *,
        min_samples_leaf: int = 2,
        pruning: bool = True,
        cf: float = 0.25,
        subtree_raising: bool = True,
        collapse_tree: bool = True,
        use_mdl_correction: bool = True,
        make_split_point_actual_value: bool = True,
        feature_names: list[str] | None = None,
        categorical_features: list[int | str] | None = None,
    ):
        self.min_samples_leaf = min_samples_leaf
        self.pruning = pruning
        self.cf = cf
        self.subtree_raising = subtree_raising
        self.collapse_tree = collapse_tree
        self.use_mdl_correction = use_mdl_correction
        self.make_split_point_actual_value = make_split_point_actual_value
        self.feature_names = feature_names
        self.categorical_features = categorical_features

    def fit(self, X, y, sample_weight=None, feature_names=None):
        self._validate_tree_params()
        data = self._prepare(X, y, sample_weight, feature_names)
        self.tree_ = self._tree_builder(self._criterion(data)).build(data)
        return self

    def _class_probs(self, x):
        return _tree.class_probs(self.tree_, x)

    def _measures(self) -> dict:
        return tree_stats(self.tree_).as_dict()


# -----------------------------------------------------------------------------
# Consolidated tree
# -----------------------------------------------------------------------------
class ConsolidatedTreeClassifier(_C45Base):
    """
    Consolidated Tree Construction (CTC) classifier.

    N samples are drawn from the training data (see
    :class:`~ctcpy.resampling.ResamplingPolicy`).  At every node each sample
    proposes its own C4.5 split; the most voted attribute wins and, if
    numeric, takes the lower median of the proposed thresholds.  The node's
    distribution is the average over samples, so the tree is a single C4.5
    style tree whose structure reflects all the samples.  It is then collapsed
    and pruned on those averaged distributions.

    Parameters
    ----------
    n_samples : int or None, default=None
        Number of samples.  ``None`` derives it from ``coverage``.
    coverage : float, default=99.0
        Target percentage of distinct rows of the most disfavoured class
        expected to appear in at least one sample.
    replacement : bool, default=False
        Sample with replacement.  Only allowed with ``minority_distribution``
        ``"stratified"`` or ``"free"``.
    bag_size_percent : int or {"max_size", "min_class"}, default="max_size"
        Sample size.  Symbolic sizes need a numeric ``minority_distribution``.
    minority_distribution : float or {"stratified", "free"}, default=50.0
        Percentage of the minority class in each sample.
    random_state : int, RandomState or None, default=1
        Seed of the resampling.
    min_samples_leaf, pruning, cf, subtree_raising, collapse_tree,
    use_mdl_correction, make_split_point_actual_value, feature_names,
    categorical_features
        As in :class:`C45Classifier`.

    Attributes
    ----------
    tree_ : ConsolidatedTree
    n_samples_ : int
    n_samples_by_coverage_ : int
    true_coverage_ : float
    diagnostics_ : list[str]
        Corrections applied while drawing the samples.
    """

    def __init__(
        self,
        *,
        n_samples: int | None = None,
        coverage: float = 99.0,
        replacement: bool = False,
        bag_size_percent: int | str = "max_size",
        minority_distribution: float | str = 50.0,
        random_state=1,
        min_samples_leaf: int = 2,
        pruning: bool = True,
        cf: float = 0.25,
        subtree_raising: bool = True,
        collapse_tree: bool = True,
        use_mdl_correction: bool = True,
        make_split_point_actual_value: bool = True,
        feature_names: list[str] | None = None,
        categorical_features: list[int | str] | None = None,
    ):
        self.n_samples = n_samples
        self.coverage = coverage
        self.replacement = replacement
        self.bag_size_percent = bag_size_percent
        self.minority_distribution = minority_distribution
        self.random_state = random_state
        self.min_samples_leaf = min_samples_leaf
        self.pruning = pruning
        self.cf = cf
        self.subtree_raising = subtree_raising
        self.collapse_tree = collapse_tree
        self.use_mdl_correction = use_mdl_correction
        self.make_split_point_actual_value = make_split_point_actual_value
        self.feature_names = feature_names
        self.categorical_features = categorical_features

    def _policy(self) -> ResamplingPolicy:
        return ResamplingPolicy(
            replacement=bool(self.replacement),
            bag_size_percent=self.bag_size_percent,
            minority_distribution=self.minority_distribution,
            n_samples=self.n_samples,
            coverage=self.coverage,
        )

    def _pruner(self) -> ConsolidatedPruner:
        return ConsolidatedPruner(cf=float(self.cf), subtree_raising=self.subtree_raising,
                                  collapse_tree=self.collapse_tree, pruning=self.pruning)

    def _validate_params(self):
        self._validate_tree_params()

    def fit(self, X, y, sample_weight=None, feature_names=None):
        policy = self._policy()
        self._validate_params()
        data = self._prepare(X, y, sample_weight, feature_names)

        rng = check_random_state(self.random_state)
        sample_set = Resampler(policy, min_leaf=int(self.min_samples_leaf)).generate(data, rng)
        self.policy_ = policy
        self.n_samples_ = len(sample_set)
        self.n_samples_by_coverage_ = sample_set.n_samples_by_coverage
        self.true_coverage_ = sample_set.true_coverage
        self.bag_size_ = sample_set.bag_size
        self.diagnostics_ = list(sample_set.diagnostics)

        criterion = self._criterion(data)
        selector = ConsolidatedSplitSelector(criterion, min_leaf=int(self.min_samples_leaf))
        tree = self._grow(data, sample_set, selector, criterion)
        tree.cleanup()
        self.tree_ = tree
        logger.debug("%s: %d nodes, %d leaves from %d samples", type(self).__name__,
                     tree.n_nodes, tree.n_leaves, self.n_samples_)
        return self

    def _grow(self, data, samples, selector, criterion):
        tree = RecursiveTreeBuilder(selector).build(data, samples)
        self._pruner().run(tree)
        return tree

    def _class_probs(self, x):
        return self.tree_.class_probs(x)

    def _measures(self) -> dict:
        out = consolidated_stats(self.tree_).as_dict()
        out["achieved_coverage"] = float(self.true_coverage_)
        out["samples_used_for_coverage"] = float(self.n_samples_by_coverage_)
        out["n_samples"] = float(self.n_samples_)
        return out

    def summary(self) -> str:
        """Short description of the resampling and the fitted tree."""
        check_is_fitted(self, "tree_", msg=_NOT_FITTED)
        lines = [
            type(self).__name__,
            f"Resampling: {self.policy_.describe()}",
            f"Samples: {self.n_samples_} (by coverage: {self.n_samples_by_coverage_}), "
            f"bag size {self.bag_size_}",
            f"True coverage: {self.true_coverage_:.4f}",
            f"Consolidated tree: {self.tree_.n_nodes} nodes, {self.tree_.n_leaves} leaves",
        ]
        lines.extend(f"Warning: {d}" for d in self.diagnostics_)
        return "\n".join(lines)


# -----------------------------------------------------------------------------
# Partially consolidated tree
# -----------------------------------------------------------------------------
class PartiallyConsolidatedTreeClassifier(ConsolidatedTreeClassifier):
    """
    Partially consolidated tree with bagging completion (PCTBagging).

    Only ``consolidation_percent`` of the consolidated tree's internal nodes
    (or levels) are kept; below the resulting truncated leaves each sample
    grows its own standard C4.5 subtree.  Predictions combine the N resulting
    trees.  At 100% no leaf is truncated and the model predicts with the
    consolidated tree; at 0% it is plain bagging of N C4.5 trees.

    Parameters
    ----------
    consolidation_percent : float, default=20.0
        Share of internal nodes (or levels) kept consolidated, in [0, 100].
        With ``consolidation_budget_mode="absolute"`` it is the raw number of
        internal nodes (or levels).
    priority_criterion : str, default="original"
        Which nodes are kept: ``"original"`` keeps the heaviest nodes of the
        full pruned tree; ``"level_by_level"``, ``"preorder"``, ``"size"``,
        ``"gain_ratio"`` and ``"normalized_gain_ratio"`` grow the tree in that
        order until the budget runs out.
    consolidation_budget_mode : {"percentage", "absolute"}, default="percentage"
    vote : {"proba", "majority"}, default="proba"
        Sum the trees' probability vectors, or count their predicted classes.
    n_jobs : int or None, default=None
        Samples completed in parallel.
    **other
        As in :class:`ConsolidatedTreeClassifier`.
    """

    def __init__(
        self,
        *,
        consolidation_percent: float = 20.0,
        priority_criterion: str = "original",
        consolidation_budget_mode: str = "percentage",
        vote: str = "proba",
        n_jobs: int | None = None,
        n_samples: int | None = None,
        coverage: float = 99.0,
        replacement: bool = False,
        bag_size_percent: int | str = "max_size",
        minority_distribution: float | str = 50.0,
        random_state=1,
        min_samples_leaf: int = 2,
        pruning: bool = True,
        cf: float = 0.25,
        subtree_raising: bool = True,
        collapse_tree: bool = True,
        use_mdl_correction: bool = True,
        make_split_point_actual_value: bool = True,
        feature_names: list[str] | None = None,
        categorical_features: list[int | str] | None = None,
    ):
        super().__init__(
            n_samples=n_samples, coverage=coverage, replacement=replacement,
            bag_size_percent=bag_size_percent, minority_distribution=minority_distribution,
            random_state=random_state, min_samples_leaf=min_samples_leaf, pruning=pruning,
            cf=cf, subtree_raising=subtree_raising, collapse_tree=collapse_tree,
            use_mdl_correction=use_mdl_correction,
            make_split_point_actual_value=make_split_point_actual_value,
            feature_names=feature_names, categorical_features=categorical_features,
        )
        self.consolidation_percent = consolidation_percent
        self.priority_criterion = priority_criterion
        self.consolidation_budget_mode = consolidation_budget_mode
        self.vote = vote
        self.n_jobs = n_jobs

    def _validate_params(self):
        self._validate_tree_params()
        if self.priority_criterion not in PRIORITY_CRITERIA:
            raise ConfigurationError(
                f"priority_criterion must be one of {PRIORITY_CRITERIA}, got {self.priority_criterion!r}")
        if self.consolidation_budget_mode not in BUDGET_MODES:
            raise ConfigurationError(
                f"consolidation_budget_mode must be one of {BUDGET_MODES}, "
                f"got {self.consolidation_budget_mode!r}")
        pct = float(self.consolidation_percent)
        if pct < 0 or (self.consolidation_budget_mode == "percentage" and pct > 100):
            raise ConfigurationError(f"consolidation_percent must be in [0, 100], got {pct!r}")
        if self.consolidation_budget_mode == "absolute" and pct != int(pct):
            raise ConfigurationError(f"an absolute budget must be a whole number of nodes, got {pct!r}")
        if self.vote not in VOTES:
            raise ConfigurationError(f"vote must be one of {VOTES}, got {self.vote!r}")

    def _grow(self, data, samples, selector, criterion):
        controller = PartialConsolidationController(
            selector, self._pruner(),
            consolidation_percent=float(self.consolidation_percent),
            priority_criterion=self.priority_criterion,
            budget_mode=self.consolidation_budget_mode,
        )
        tree = controller.build(data, samples)
        self.n_inner_nodes_target_ = controller.n_inner_nodes_target_
        self.n_inner_nodes_kept_ = controller.n_inner_nodes_kept_
        completion = BaggingCompletion(self._tree_builder(criterion), n_jobs=self.n_jobs)
        self.n_truncated_leaves_ = completion.complete(tree)
        return tree

    def _class_probs(self, x):
        if self.n_truncated_leaves_ == 0:
            return self.tree_.class_probs(x)
        acc = np.zeros(len(self.classes_))
        for i in range(self.tree_.n_samples):
            p = self.tree_.class_probs(x, sample=i)
            if self.vote == "majority":
                acc[int(np.argmax(p))] += 1.0
            else:
                s = p.sum()
                if s > 0:
                    acc += p / s
        return acc

    def shadow_stats(self) -> list:
        """Measures of each of the N shadow trees (grafts included)."""
        check_is_fitted(self, "tree_", msg=_NOT_FITTED)
        return [consolidated_stats(self.tree_, sample=i) for i in range(self.tree_.n_samples)]

    def _measures(self) -> dict:
        out = super()._measures()
        per_tree = [s.as_dict() for s in self.shadow_stats()]
        for name in TREE_MEASURES:
            agg = aggregate([d[name] for d in per_tree])
            for stat in AGGREGATES:
                out[f"{stat}_{name}"] = agg[stat]
        out["consolidated_inner_nodes"] = float(self.n_inner_nodes_kept_)
        out["truncated_leaves"] = float(self.n_truncated_leaves_)
        return out

    def summary(self) -> str:
        text = super().summary()
        return text + (
            f"\nPartial consolidation: {self.consolidation_percent}% "
            f"({self.priority_criterion}, {self.consolidation_budget_mode}), "
            f"{self.n_inner_nodes_kept_} internal nodes kept, "
            f"{self.n_truncated_leaves_} truncated leaves completed with {self.n_samples_} trees"
        )
