"""
This module contains the numerical primitives shared by the density, cumulative and random variate functions: the shape-parameter branch threshold and numerically stable versions of `log(1 + x)` and `log(1 - exp(x))`.
"""
from __future__ import annotations

import typing as t

import numpy as np

BRANCH_THRESHOLD = 1e-15
"""Shape values with absolute value at or below this constant are treated as exactly zero, and the exponential limit formulas are used instead of the general ones. It is tuned to double precision; see `branch_threshold` for other floating point types."""

_LOG_HALF = -np.log(2.0)


def branch_threshold(dtype: t.Any = np.float64) -> float:
    """Re-derives the branch threshold for a given floating point precision, keeping the same multiple of machine epsilon that `BRANCH_THRESHOLD` represents in double precision.

    Args:
        dtype (t.Any, optional): numpy floating point type

    Returns:
        float: threshold for the given precision

    Raises:
        TypeError: if dtype is not a floating point type
    """
    dtype = np.dtype(dtype)
    if not np.issubdtype(dtype, np.floating):
        raise TypeError(f"Branch threshold is only defined for floating point types, got {dtype}")

    if dtype == np.float64:
        return BRANCH_THRESHOLD

    ratio = BRANCH_THRESHOLD / np.finfo(np.float64).eps
    return float(ratio * np.finfo(dtype).eps)


def is_exponential_limit(k: float, threshold: float = BRANCH_THRESHOLD) -> bool:
    """Returns True if the shape parameter is close enough to zero for the exponential limit formulas to be used"""
    return abs(k) <= threshold


def scaled_log1p(z: np.ndarray, k: float, sigma: float) -> np.ndarray:
    """Computes `log1p(z * k / sigma)` elementwise; this is the term shared by all tail formulas.

    Args:
        z (np.ndarray): excesses over the lower bound
        k (float): shape parameter
        sigma (float): scale parameter

    Returns:
        np.ndarray
    """
    return np.log1p(z * (k / sigma))


def log1mexp(x: t.Union[float, np.ndarray]) -> t.Union[float, np.ndarray]:
    """Computes `log(1 - exp(x))` for non-positive x without losing precision when `exp(x)` is close to 0 or 1. Uses `log(-expm1(x))` for x above `-log(2)` and `log1p(-exp(x))` below it.

    Args:
        x (t.Union[float, np.ndarray]): non-positive values

    Returns:
        t.Union[float, np.ndarray]: values of the same shape as x
    """
    x = np.asarray(x, dtype=np.float64)
    with np.errstate(divide="ignore", invalid="ignore"):
        out = np.where(x > _LOG_HALF, np.log(-np.expm1(x)), np.log1p(-np.exp(x)))

    if out.ndim == 0:
        return float(out)
    return out
