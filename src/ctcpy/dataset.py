# -*- coding: utf-8 -*-
"""
ctcpy.dataset
=============

Tabular data container shared by every tree builder in the package.

A :class:`Dataset` holds a float matrix of attribute values (nominal columns
store category codes), integer class codes, per-row weights and the schema
needed to interpret them.  Missing attribute values are ``NaN``; a missing
class is the code ``-1``.  Datasets are never modified in place: filtering
and partitioning always produce new instances that share the schema.
"""

from __future__ import annotations
import numpy as np


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------
def _isnan_scalar(v) -> bool:
    if v is None:
        return True
    try:
        return bool(np.isnan(v))
    except (TypeError, ValueError):
        return False


def _sorted_categories(values) -> tuple:
    uniq = set(values)
    try:
        return tuple(sorted(uniq))
    except TypeError:
        # mixed types, fall back to their text form
        return tuple(sorted(uniq, key=str))


# -----------------------------------------------------------------------------
# Schema
# -----------------------------------------------------------------------------
class Attribute:
    """Description of one input column.

    Parameters
    ----------
    name : str
        Column name.
    values : tuple or None, default=None
        Category labels of a nominal attribute, in code order.  ``None``
        marks a numeric attribute.
    """

    __slots__ = ("name", "values")

    def __init__(self, name: str, values: tuple | None = None):
        self.name = str(name)
        self.values = None if values is None else tuple(values)

    @property
    def is_nominal(self) -> bool:
        return self.values is not None

    @property
    def n_values(self) -> int:
        return 0 if self.values is None else len(self.values)

    def __repr__(self) -> str:
        kind = f"nominal({self.n_values})" if self.is_nominal else "numeric"
        return f"Attribute({self.name!r}, {kind})"


# -----------------------------------------------------------------------------
# Dataset
# -----------------------------------------------------------------------------
class Dataset:
    """Weighted rows of encoded attribute values plus a class column.

    Parameters
    ----------
    X : ndarray of shape (n_rows, n_attributes)
        Encoded attribute values (float, ``NaN`` for missing).
    y : ndarray of shape (n_rows,)
        Class codes in ``[0, n_classes)``; ``-1`` for a missing class.
    weights : ndarray of shape (n_rows,)
        Row weights.
    attributes : list[Attribute]
        Schema of the columns of ``X``.
    classes : ndarray
        Original class labels, indexed by class code.
    """

    __slots__ = ("X", "y", "weights", "attributes", "classes")

    def __init__(self, X, y, weights, attributes, classes):
        self.X = np.asarray(X, dtype=float)
        if self.X.ndim != 2:
            self.X = self.X.reshape(len(self.X), len(attributes))
        self.y = np.asarray(y, dtype=int)
        self.weights = np.asarray(weights, dtype=float)
        self.attributes = list(attributes)
        self.classes = np.asarray(classes)
        if not (len(self.X) == len(self.y) == len(self.weights)):
            raise ValueError("X, y and weights must have the same number of rows")

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------
    @classmethod
    def from_arrays(cls, X, y, sample_weight=None, *, feature_names=None,
                    categorical_features=None, classes=None) -> "Dataset":
        """Encode raw arrays the way the estimators receive them.

        Columns listed in ``categorical_features`` (indices, or names when
        ``feature_names`` is given) become nominal attributes whose categories
        are the sorted distinct known values.  Every other column is converted
        to float.  ``None`` and ``NaN`` are treated as missing in both kinds of
        column and in ``y``.
        """
        X = np.asarray(X, dtype=object)
        if X.ndim == 1:
            X = X.reshape(-1, 1)
        y = np.asarray(y, dtype=object)
        n, m = X.shape
        if len(y) != n:
            raise ValueError("X and y must have the same number of rows")
        if sample_weight is None:
            w = np.ones(n, dtype=float)
        else:
            w = np.asarray(sample_weight, dtype=float)
            if len(w) != n:
                raise ValueError("sample_weight must have the same length as y")

        if feature_names is None:
            feature_names = [f"f{i}" for i in range(m)]
        elif len(feature_names) != m:
            raise ValueError("feature_names length must match X.shape[1]")
        cats = set()
        if categorical_features is not None:
            cf = list(categorical_features)
            if len(cf) and isinstance(cf[0], str):
                name_to_idx = {nm: i for i, nm in enumerate(feature_names)}
                try:
                    cf = [name_to_idx[c] for c in cf]
                except KeyError as exc:
                    raise ValueError(f"unknown categorical feature {exc.args[0]!r}") from None
            cats = set(int(i) for i in cf)

        attributes = []
        Xf = np.empty((n, m), dtype=float)
        for j in range(m):
            col = X[:, j]
            missing = np.array([_isnan_scalar(v) for v in col], dtype=bool)
            if j in cats:
                values = _sorted_categories(col[~missing])
                code_of = {v: k for k, v in enumerate(values)}
                Xf[:, j] = [np.nan if miss else code_of[v] for v, miss in zip(col, missing)]
                attributes.append(Attribute(feature_names[j], values))
            else:
                Xf[:, j] = [np.nan if miss else float(v) for v, miss in zip(col, missing)]
                attributes.append(Attribute(feature_names[j]))

        y_missing = np.array([_isnan_scalar(v) for v in y], dtype=bool)
        if classes is None:
            classes = np.unique(y[~y_missing].tolist()) if (~y_missing).any() else np.array([])
        classes = np.asarray(classes)
        code_of = {c: k for k, c in enumerate(classes.tolist())}
        try:
            y_codes = np.array([-1 if miss else code_of[v] for v, miss in zip(y.tolist(), y_missing)],
                               dtype=int)
        except KeyError as exc:
            raise ValueError(f"unknown class label {exc.args[0]!r}") from None
        return cls(Xf, y_codes, w, attributes, classes)

    def encode_rows(self, X) -> np.ndarray:
        """Encode raw prediction inputs with this dataset's schema.

        Unseen categories of a nominal attribute are treated as missing.
        """
        X = np.asarray(X, dtype=object)
        if X.ndim == 1:
            X = X.reshape(1, -1)
        if X.shape[1] != self.n_attributes:
            raise ValueError(f"X has {X.shape[1]} features, expected {self.n_attributes}")
        out = np.empty(X.shape, dtype=float)
        for j, att in enumerate(self.attributes):
            col = X[:, j]
            if att.is_nominal:
                code_of = {v: k for k, v in enumerate(att.values)}
                out[:, j] = [np.nan if _isnan_scalar(v) else code_of.get(v, np.nan) for v in col]
            else:
                out[:, j] = [np.nan if _isnan_scalar(v) else float(v) for v in col]
        return out

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------
    def subset(self, indices, weights=None) -> "Dataset":
        """Rows ``indices`` (repetitions allowed), optionally re-weighted."""
        indices = np.asarray(indices, dtype=int)
        w = self.weights[indices] if weights is None else np.asarray(weights, dtype=float)
        return Dataset(self.X[indices], self.y[indices], w, self.attributes, self.classes)

    take = subset

    def empty(self) -> "Dataset":
        return self.subset(np.empty(0, dtype=int))

    def without_missing_class(self) -> "Dataset":
        keep = self.y >= 0
        if keep.all():
            return self
        return self.subset(np.flatnonzero(keep))

    def by_class(self) -> list[np.ndarray]:
        """Row indices of each class, in class-code order."""
        return [np.flatnonzero(self.y == k) for k in range(self.n_classes)]

    def class_counts(self) -> np.ndarray:
        known = self.y >= 0
        return np.bincount(self.y[known], minlength=self.n_classes)

    def class_weights(self) -> np.ndarray:
        known = self.y >= 0
        return np.bincount(self.y[known], weights=self.weights[known],
                           minlength=self.n_classes).astype(float)

    def is_numeric(self, j: int) -> bool:
        return not self.attributes[j].is_nominal

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------
    @property
    def n_rows(self) -> int:
        return len(self.y)

    @property
    def n_attributes(self) -> int:
        return len(self.attributes)

    @property
    def n_classes(self) -> int:
        return len(self.classes)

    @property
    def sum_of_weights(self) -> float:
        return float(self.weights.sum())

    def __len__(self) -> int:
        return self.n_rows

    def __repr__(self) -> str:
        return (f"Dataset(n_rows={self.n_rows}, n_attributes={self.n_attributes}, "
                f"n_classes={self.n_classes})")
