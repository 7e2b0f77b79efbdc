# -*- coding: utf-8 -*-
"""Exceptions raised by ctcpy."""

from __future__ import annotations


class ConfigurationError(ValueError):
    """Invalid or contradictory estimator / resampling options.

    Raised before any tree is built.  Subclasses :class:`ValueError` so that
    scikit-learn style parameter checks keep working.
    """


class BuildCancelled(RuntimeError):
    """Tree construction was stopped by a ``should_stop`` callback."""
