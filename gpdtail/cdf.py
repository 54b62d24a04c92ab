"""
Cumulative probabilities of the generalised Pareto distribution over a vector of observations. All three functions come from the same per-element log complementary CDF; the log forms are summed, as they make up a total log-likelihood, while the linear scale CDF is multiplied, as it is the joint probability of independent elements. Inputs are assumed to be validated.
"""
from __future__ import annotations

import typing as t

import numpy as np

from gpdtail.numeric import (
    BRANCH_THRESHOLD,
    is_exponential_limit,
    log1mexp,
    scaled_log1p,
)


def pointwise_lccdf(
    y: t.Union[float, np.ndarray],
    ymin: float,
    k: float,
    sigma: float,
    threshold: float = BRANCH_THRESHOLD,
) -> np.ndarray:
    """Per-element log complementary CDF, in the same order as the observations"""
    z = np.atleast_1d(np.asarray(y, dtype=np.float64)) - ymin

    if is_exponential_limit(k, threshold):
        return -z / sigma

    return -scaled_log1p(z, k, sigma) / k


def lccdf(
    y: t.Union[float, np.ndarray],
    ymin: float,
    k: float,
    sigma: float,
    threshold: float = BRANCH_THRESHOLD,
) -> float:
    """Sum of log complementary CDF values, \\( -(1/k) \\sum_i \\log(1 + k (y_i - y_{min})/\\sigma) \\), or \\( -\\sum_i (y_i - y_{min})/\\sigma \\) in the exponential limit.

    Args:
        y (t.Union[float, np.ndarray]): observations strictly above ymin
        ymin (float): lower bound
        k (float): shape parameter
        sigma (float): positive scale parameter
        threshold (float, optional): branch threshold for the shape parameter

    Returns:
        float
    """
    z = np.asarray(y, dtype=np.float64) - ymin

    if is_exponential_limit(k, threshold):
        return float(-np.sum(z) / sigma)

    return float(-np.sum(scaled_log1p(z, k, sigma)) / k)


def lcdf(
    y: t.Union[float, np.ndarray],
    ymin: float,
    k: float,
    sigma: float,
    threshold: float = BRANCH_THRESHOLD,
) -> float:
    """Sum of log CDF values, each one computed as `log1mexp` of the corresponding log complementary CDF so that precision is kept when the complementary probability is close to 1.

    Args:
        y (t.Union[float, np.ndarray]): observations strictly above ymin
        ymin (float): lower bound
        k (float): shape parameter
        sigma (float): positive scale parameter
        threshold (float, optional): branch threshold for the shape parameter

    Returns:
        float
    """
    return float(np.sum(log1mexp(pointwise_lccdf(y, ymin, k, sigma, threshold))))


def cdf(
    y: t.Union[float, np.ndarray],
    ymin: float,
    k: float,
    sigma: float,
    threshold: float = BRANCH_THRESHOLD,
) -> float:
    """Product of CDF values.

    Args:
        y (t.Union[float, np.ndarray]): observations strictly above ymin
        ymin (float): lower bound
        k (float): shape parameter
        sigma (float): positive scale parameter
        threshold (float, optional): branch threshold for the shape parameter

    Returns:
        float
    """
    return float(np.prod(-np.expm1(pointwise_lccdf(y, ymin, k, sigma, threshold))))
