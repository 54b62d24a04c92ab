"""
Inverse transform sampling from the generalised Pareto distribution. The generator does not own any randomness: `rng` maps a uniform value supplied by the caller to a single draw, which keeps it deterministic for a fixed input; `draw` is a convenience wrapper around a numpy random generator.
"""
from __future__ import annotations

import math
import typing as t

import numpy as np

from gpdtail.numeric import BRANCH_THRESHOLD, is_exponential_limit
from gpdtail.validation import ContractViolationError, check_parameter


def rng(
    ymin: float,
    k: float,
    sigma: float,
    u: float,
    threshold: float = BRANCH_THRESHOLD,
) -> float:
    """Maps a uniform value in (0,1) to a single draw, \\( y_{min} + (\\sigma/k)(u^{-k} - 1) \\), or \\( y_{min} - \\sigma \\log u \\) in the exponential limit. Parameters are not subject to proposal rejection here; the caller must have validated them.

    Args:
        ymin (float): lower bound
        k (float): shape parameter
        sigma (float): positive scale parameter
        u (float): uniform value in the open interval (0,1)
        threshold (float, optional): branch threshold for the shape parameter

    Returns:
        float: random variate

    Raises:
        ContractViolationError: if sigma is not positive, any input is not finite or u is outside (0,1)
    """
    ymin = check_parameter("ymin", ymin)
    k = check_parameter("k", k)
    sigma = check_parameter("sigma", sigma)
    u = check_parameter("u", u)

    if sigma <= 0:
        raise ContractViolationError(
            f"sigma must be positive when generating random variates; found sigma = {sigma}"
        )
    if not 0 < u < 1:
        raise ContractViolationError(f"u must be in the open interval (0,1); found u = {u}")

    if is_exponential_limit(k, threshold):
        return ymin - sigma * math.log(u)

    # (u**-k - 1) / k through expm1
    return float(ymin + sigma * np.expm1(-k * math.log(u)) / k)


def draw(
    ymin: float,
    k: float,
    sigma: float,
    random_state: t.Optional[t.Union[int, np.random.Generator]] = None,
    threshold: float = BRANCH_THRESHOLD,
) -> float:
    """Produces a single draw using a uniform value from a numpy random generator.

    Args:
        ymin (float): lower bound
        k (float): shape parameter
        sigma (float): positive scale parameter
        random_state (t.Optional[t.Union[int, np.random.Generator]], optional): generator or seed
        threshold (float, optional): branch threshold for the shape parameter

    Returns:
        float
    """
    gen = np.random.default_rng(random_state)
    u = gen.random()
    # Generator.random samples [0,1)
    while u == 0.0:
        u = gen.random()
    return rng(ymin, k, sigma, u, threshold)
