"""
Aggregate log-density of the generalised Pareto distribution over a vector of observations. Inputs are assumed to have passed `gpdtail.validation`; see `gpdtail.functions` for the gated version.
"""
from __future__ import annotations

import typing as t

import numpy as np

from gpdtail.numeric import BRANCH_THRESHOLD, is_exponential_limit, scaled_log1p


def lpdf(
    y: t.Union[float, np.ndarray],
    ymin: float,
    k: float,
    sigma: float,
    threshold: float = BRANCH_THRESHOLD,
) -> float:
    """Returns the sum of log-densities of the observations. For shape values away from zero this is

    $$ -(1 + 1/k) \\sum_i \\log(1 + k (y_i - y_{min})/\\sigma) - N \\log \\sigma $$

    and in the exponential limit \\( |k| \\leq \\) `threshold` it is \\( -\\sum_i (y_i - y_{min})/\\sigma - N \\log \\sigma \\).

    Args:
        y (t.Union[float, np.ndarray]): observations strictly above ymin
        ymin (float): lower bound
        k (float): shape parameter
        sigma (float): positive scale parameter
        threshold (float, optional): branch threshold for the shape parameter

    Returns:
        float: summed log-density
    """
    z = np.asarray(y, dtype=np.float64) - ymin
    n = z.size

    if is_exponential_limit(k, threshold):
        return float(-np.sum(z) / sigma - n * np.log(sigma))

    coef = 1 + 1 / k
    if coef == 0:
        # k = -1 is uniform on the support, including the endpoint
        return float(-n * np.log(sigma))

    return float(-coef * np.sum(scaled_log1p(z, k, sigma)) - n * np.log(sigma))
