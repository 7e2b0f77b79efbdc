# -*- coding: utf-8 -*-
"""
ctcpy.resampling
================

Generation of the N resampled samples that every consolidated tree is built
from.

Three distribution modes are supported:

* **stratified** (``minority_distribution="stratified"``): every class keeps
  its proportion in each sample.
* **free** (``minority_distribution="free"``): rows are drawn without regard
  to class.
* **changed minority distribution** (a float in (0, 100)): the minority class
  makes up that percentage of each sample (two-class data), or every class gets
  the size of the minority class (more than two classes, only ``50`` allowed).

The number of samples is either fixed or derived from a coverage target: the
smallest N such that the expected fraction of distinct rows of the most
disfavoured class appearing in at least one sample reaches ``coverage``.
"""

from __future__ import annotations
import logging
import math
from dataclasses import dataclass
from typing import Optional, Union

import numpy as np
from sklearn.utils import check_random_state

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

BAG_SIZE_SYMBOLS = ("max_size", "min_class")
DISTRIBUTION_SYMBOLS = ("stratified", "free")


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


# -----------------------------------------------------------------------------
# Policy
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class ResamplingPolicy:
    """How the samples are drawn.

    Parameters
    ----------
    replacement : bool, default=False
        Draw with replacement (bootstrap-like) instead of subsampling.
    bag_size_percent : int or {"max_size", "min_class"}, default="max_size"
        Sample size as a percentage (1..100) of the data, or a symbolic size:
        ``"max_size"`` is the largest sample compatible with the requested
        class distribution and ``"min_class"`` the size of the minority class.
    minority_distribution : float or {"stratified", "free"}, default=50.0
        Target percentage of the minority class in each sample, or one of the
        two symbolic modes.
    n_samples : int or None, default=None
        Fixed number of samples.  ``None`` derives it from ``coverage``.
    coverage : float, default=99.0
        Target coverage percentage in (0, 100).
    reduce_bag_size_percent : int, default=75
        Sample size used instead when all samples would be identical.
    min_class_percent : float, default=2.0
        Classes smaller than this percentage of the data are oversampled.
    min_samples : int, default=3
        Lower bound on a coverage-derived number of samples.
    """

    replacement: bool = False
    bag_size_percent: Union[int, str] = "max_size"
    minority_distribution: Union[float, str] = 50.0
    n_samples: Optional[int] = None
    coverage: float = 99.0
    reduce_bag_size_percent: int = 75
    min_class_percent: float = 2.0
    min_samples: int = 3

    def __post_init__(self):
        bag = self.bag_size_percent
        if isinstance(bag, str):
            if bag not in BAG_SIZE_SYMBOLS:
                raise ConfigurationError(
                    f"bag_size_percent must be an integer in [1, 100] or one of {BAG_SIZE_SYMBOLS}, got {bag!r}")
        elif isinstance(bag, bool) or int(bag) != bag or not 1 <= bag <= 100:
            raise ConfigurationError(f"bag_size_percent must be an integer in [1, 100], got {bag!r}")

        dist = self.minority_distribution
        if isinstance(dist, str):
            if dist not in DISTRIBUTION_SYMBOLS:
                raise ConfigurationError(
                    f"minority_distribution must be a percentage or one of {DISTRIBUTION_SYMBOLS}, got {dist!r}")
            if isinstance(bag, str):
                raise ConfigurationError(
                    f"bag_size_percent={bag!r} needs a minority class percentage; "
                    f"with minority_distribution={dist!r} use a numeric bag size")
        else:
            if not 0 < float(dist) < 100:
                raise ConfigurationError(
                    f"minority_distribution must be in (0, 100), got {dist!r}")
            if self.replacement:
                raise ConfigurationError(
                    "Changing the class distribution is not compatible with sampling with replacement")

        if self.n_samples is not None and (isinstance(self.n_samples, bool) or int(self.n_samples) < 1):
            raise ConfigurationError(f"n_samples must be a positive integer or None, got {self.n_samples!r}")
        if not 0 < float(self.coverage) < 100:
            raise ConfigurationError(f"coverage must be in (0, 100), got {self.coverage!r}")
        if not 1 <= int(self.reduce_bag_size_percent) <= 100:
            raise ConfigurationError("reduce_bag_size_percent must be in [1, 100]")
        if not 0 <= float(self.min_class_percent) <= 100:
            raise ConfigurationError("min_class_percent must be in [0, 100]")
        if int(self.min_samples) < 1:
            raise ConfigurationError("min_samples must be at least 1")

    @property
    def changes_distribution(self) -> bool:
        return not isinstance(self.minority_distribution, str)

    def describe(self) -> str:
        if self.minority_distribution == "stratified":
            dist = "stratified class distribution"
        elif self.minority_distribution == "free":
            dist = "free class distribution"
        else:
            dist = f"minority class distribution {self.minority_distribution:g}%"
        count = (f"{self.n_samples} samples" if self.n_samples is not None
                 else f"coverage {self.coverage:g}%")
        how = "with" if self.replacement else "without"
        return f"{count}, {dist}, bag size {self.bag_size_percent}, {how} replacement"


# -----------------------------------------------------------------------------
# Samples
# -----------------------------------------------------------------------------
class SampleSet:
    """The resampled datasets plus the figures that describe them.

    Behaves like a read-only sequence of :class:`~ctcpy.dataset.Dataset`.

    Attributes
    ----------
    samples : list[Dataset]
    n_samples_by_coverage : int
        Sample count derived from the coverage target (0 when fixed).
    true_coverage : float
        Expected fraction of distinct rows covered by the samples.
    bag_size : int
        Rows per sample.
    class_bag_sizes : ndarray
        Rows per class in each sample.
    diagnostics : list[str]
        Corrections applied to the request.
    """

    def __init__(self, samples, *, n_samples_by_coverage=0, true_coverage=0.0,
                 bag_size=0, class_bag_sizes=None, diagnostics=None):
        self.samples = list(samples)
        self.n_samples_by_coverage = int(n_samples_by_coverage)
        self.true_coverage = float(true_coverage)
        self.bag_size = int(bag_size)
        self.class_bag_sizes = np.zeros(0, dtype=int) if class_bag_sizes is None \
            else np.asarray(class_bag_sizes, dtype=int)
        self.diagnostics = list(diagnostics or [])

    def __len__(self):
        return len(self.samples)

    def __getitem__(self, i):
        return self.samples[i]

    def __iter__(self):
        return iter(self.samples)

    def __repr__(self):
        return (f"SampleSet(n_samples={len(self)}, bag_size={self.bag_size}, "
                f"true_coverage={self.true_coverage:.4f})")


# -----------------------------------------------------------------------------
# Resampler
# -----------------------------------------------------------------------------
class Resampler:
    """Draw a :class:`SampleSet` according to a :class:`ResamplingPolicy`.

    Parameters
    ----------
    policy : ResamplingPolicy
    min_leaf : int, default=2
        Minimum objects per leaf of the trees built on the samples.  No
        non-empty class is left with fewer rows than this.
    """

    def __init__(self, policy: ResamplingPolicy | None = None, min_leaf: int = 2):
        self.policy = policy if policy is not None else ResamplingPolicy()
        self.min_leaf = int(min_leaf)

    def generate(self, data, random_state=None) -> SampleSet:
        """Draw the samples from ``data`` (rows with a missing class are dropped)."""
        policy = self.policy
        rng = check_random_state(random_state)
        data = data.without_missing_class()
        diagnostics: list[str] = []
        if policy.changes_distribution and data.n_classes > 2 and policy.minority_distribution != 50:
            raise ConfigurationError(
                "With more than two classes the minority class distribution can only be 50 "
                "(every class gets the size of the minority class)")
        if data.n_rows == 0:
            self._note(diagnostics, "Original data size is 0")

        if policy.changes_distribution:
            index_pool, class_bags = self._changed_distribution_bags(data, rng, diagnostics)
            replacement = False
        else:
            index_pool, class_bags = self._plain_bags(data, diagnostics)
            replacement = policy.replacement

        sizes = np.array([len(ix) for ix in index_pool], dtype=int)
        with np.errstate(divide="ignore", invalid="ignore"):
            ratios = np.where(sizes > 0, class_bags / np.where(sizes > 0, sizes, 1), np.inf)
        logger.debug("class sizes %s, class bag sizes %s, bag:sample ratios %s",
                     sizes.tolist(), class_bags.tolist(), ratios.tolist())

        n_by_coverage = 0
        if policy.n_samples is not None:
            n = int(policy.n_samples)
        else:
            n = n_by_coverage = self.number_of_samples(ratios, replacement)
            logger.info("%d samples needed for a coverage of %g%%", n, policy.coverage)
            if n < policy.min_samples:
                self._note(diagnostics, f"The number of samples derived from the coverage ({n}) "
                                        f"is below {policy.min_samples}; using {policy.min_samples}")
                n = int(policy.min_samples)
        true_cov = self.true_coverage(sizes, ratios, n, replacement)

        samples = [self._draw(data, index_pool, class_bags, replacement, rng) for _ in range(n)]
        return SampleSet(samples, n_samples_by_coverage=n_by_coverage, true_coverage=true_cov,
                         bag_size=int(class_bags.sum()), class_bag_sizes=class_bags,
                         diagnostics=diagnostics)

    # ------------------------------------------------------------------
    # Coverage
    # ------------------------------------------------------------------
    def number_of_samples(self, ratios, replacement: bool) -> int:
        """Smallest N reaching the coverage target for the most disfavoured class.

        ``ratios`` are the per-class bag:class-size ratios; the first minimum
        decides.  With replacement ``N = ceil(-ln(1-c) / r)``, without
        ``N = ceil(ln(1-c) / ln(1-r))``.
        """
        ratios = np.asarray(ratios, dtype=float)
        if ratios.size == 0:
            return 0
        r = float(ratios[int(np.argmin(ratios))])
        c = float(self.policy.coverage) / 100.0
        if not np.isfinite(r) or r <= 0:
            return 0
        if replacement:
            return int(math.ceil(-math.log(1 - c) / r))
        if r >= 1:
            return 1
        return int(math.ceil(math.log(1 - c) / math.log(1 - r)))

    @staticmethod
    def true_coverage(sizes, ratios, n: int, replacement: bool) -> float:
        """Expected fraction of distinct rows present in at least one sample."""
        sizes = np.asarray(sizes, dtype=float)
        total = sizes.sum()
        if total <= 0:
            return 0.0
        cov = 0.0
        for size, r in zip(sizes, ratios):
            if size <= 0:
                continue
            if replacement:
                covered = 1 - math.exp(-r * n)
            else:
                covered = 1 - (1 - min(max(r, 0.0), 1.0)) ** n
            cov += size / total * covered
        return float(cov)

    # ------------------------------------------------------------------
    # Bag sizes
    # ------------------------------------------------------------------
    def _plain_bags(self, data, diagnostics):
        """Index pools and bag sizes for the stratified and free modes."""
        policy = self.policy
        n = data.n_rows
        pct = int(policy.bag_size_percent)
        bag = n * pct // 100
        if bag == n and not policy.replacement:
            pct = int(policy.reduce_bag_size_percent)
            bag = n * pct // 100
            self._note(diagnostics, f"Sampling without replacement with a bag of the data size "
                                    f"would make every sample identical; bag size reduced to {pct}%")
        if n > 0 and bag == 0:
            self._note(diagnostics, "The bag size is 0")

        if policy.minority_distribution == "free":
            return [np.arange(n)], np.array([bag], dtype=int)

        index_pool = data.by_class()
        sizes = np.array([len(ix) for ix in index_pool], dtype=int)
        class_bags = np.zeros(len(sizes), dtype=int)
        non_empty = np.flatnonzero(sizes > 0)
        if non_empty.size == 0:
            return index_pool, class_bags
        i_min = int(non_empty[np.argmin(sizes[non_empty])])
        for c in non_empty:
            if c != i_min:
                class_bags[c] = _round_half_up(sizes[c] * pct / 100.0)
        class_bags[i_min] = min(max(bag - int(class_bags.sum()), 0), sizes[i_min])
        return index_pool, class_bags

    def _changed_distribution_bags(self, data, rng, diagnostics):
        """Index pools and bag sizes when the minority percentage is imposed."""
        policy = self.policy
        target = float(policy.minority_distribution)
        K = data.n_classes
        index_pool = data.by_class()
        sizes = np.array([len(ix) for ix in index_pool], dtype=int)
        n = int(sizes.sum())
        class_bags = np.zeros(K, dtype=int)
        non_empty = np.flatnonzero(sizes > 0)
        if non_empty.size < 2:
            if n > 0:
                self._note(diagnostics, "Fewer than two non-empty classes; "
                                        "the class distribution is left unchanged")
            pct = int(policy.reduce_bag_size_percent)
            for c in non_empty:
                class_bags[c] = sizes[c] * pct // 100
            return index_pool, class_bags

        i_min = int(non_empty[np.argmin(sizes[non_empty])])
        i_maj = int(np.argmax(sizes))
        if i_maj == i_min:
            i_maj = K - 1
        distr_min = 100.0 * sizes[i_min] / n

        # too small classes are oversampled up to a floor
        min_examples = max(int(math.ceil(n * policy.min_class_percent / 100.0)), self.min_leaf)
        for c in non_empty:
            if sizes[c] < min_examples:
                extra = rng.choice(index_pool[c], size=min_examples - sizes[c], replace=True)
                index_pool[c] = np.concatenate([index_pool[c], extra])
                self._note(diagnostics, f"Class '{data.classes[c]}' has only {sizes[c]} rows; "
                                        f"oversampled to {min_examples}")
                sizes[c] = min_examples
        n = int(sizes.sum())

        max_bags = np.zeros(K, dtype=int)
        if K == 2:
            if target > distr_min:
                max_bags[i_min] = sizes[i_min]
                max_bags[i_maj] = _round_half_up(sizes[i_min] * (100 - target) / target)
            else:
                max_bags[i_maj] = sizes[i_maj]
                max_bags[i_min] = _round_half_up(sizes[i_maj] * target / (100 - target))
        else:
            max_bags[:] = sizes[i_min]

        force_reduce = False
        bag_size = policy.bag_size_percent
        if bag_size == "max_size":
            if K == 2 and abs(target - distr_min) < 1e-6:
                force_reduce = True
            elif K > 2 and np.all(sizes[non_empty] == sizes[i_min]):
                force_reduce = True
            if not force_reduce:
                class_bags = np.where(sizes > 0, max_bags, 0)
        else:
            if bag_size == "min_class":
                bag = int(sizes[i_min])
            else:
                bag = n * int(bag_size) // 100
                if bag == n:
                    force_reduce = True

        if bag_size != "max_size" or force_reduce:
            if force_reduce:
                self._note(diagnostics, "Samples of maximum size with this class distribution "
                                        "would all be identical; bag size reduced to "
                                        f"{policy.reduce_bag_size_percent}%")
            if K == 2:
                if force_reduce:
                    bag = n * int(policy.reduce_bag_size_percent) // 100
                class_bags[i_min] = _round_half_up(target * bag / 100.0)
                class_bags[i_maj] = bag - class_bags[i_min]
            else:
                if bag_size == "min_class":
                    pct = 50
                elif force_reduce:
                    pct = int(policy.reduce_bag_size_percent)
                else:
                    pct = int(bag_size)
                class_size = int(pct * sizes[i_min] / 100)
                class_bags = np.where(sizes > 0, class_size, 0)

        for c in range(K):
            if class_bags[c] > sizes[c]:
                raise ConfigurationError(
                    f"Not enough rows of class '{data.classes[c]}' ({sizes[c]}) for samples "
                    f"needing {class_bags[c]}; lower bag_size_percent or change minority_distribution")
        return index_pool, class_bags.astype(int)

    # ------------------------------------------------------------------
    # Drawing
    # ------------------------------------------------------------------
    def _draw(self, data, index_pool, class_bags, replacement, rng):
        parts = []
        for idx, size in zip(index_pool, class_bags):
            if size <= 0 or len(idx) == 0:
                continue
            if replacement:
                w = data.weights[idx]
                p = w / w.sum() if w.sum() > 0 else None
                idx = rng.choice(idx, size=len(idx), replace=True, p=p)
            idx = rng.permutation(idx)
            parts.append(idx[:size])
        rows = np.concatenate(parts) if parts else np.empty(0, dtype=int)
        return data.subset(rng.permutation(rows))

    @staticmethod
    def _note(diagnostics: list, message: str) -> None:
        diagnostics.append(message)
        logger.warning(message)
