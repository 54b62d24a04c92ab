"""
The five functions consumed by host samplers and downstream analysis code. Each vectorised function checks the calling contract, runs the admissibility checks from `gpdtail.validation` and only then evaluates; an inadmissible proposal is returned as a `RejectProposal` value instead of a number, so a sampling loop can discard it cheaply and carry on. Valid results can be exactly 0.0, so rejections are told apart by type, never by truthiness::

    res = gpareto_lpdf(y, ymin, k, sigma)
    if is_rejection(res):
        ...  # discard proposal, res.reason says why

A length-1 observation vector (or a scalar) gives the per-observation values needed for cross-validation log-likelihood matrices.
"""
from __future__ import annotations

import typing as t

import numpy as np

from gpdtail import cdf as _cdf
from gpdtail import density as _density
from gpdtail import variates as _variates
from gpdtail.numeric import BRANCH_THRESHOLD
from gpdtail.validation import RejectProposal, check_contract, validate

Evaluation = t.Union[float, RejectProposal]


def is_rejection(res: Evaluation) -> bool:
    """Returns True if an evaluation result is a `RejectProposal` rather than a number"""
    return isinstance(res, RejectProposal)


def _gated(engine: t.Callable, y, ymin, k, sigma, threshold) -> Evaluation:
    y = check_contract(y, ymin, k, sigma)
    verdict = validate(y, ymin, k, sigma)
    if isinstance(verdict, RejectProposal):
        return verdict
    return engine(y, ymin, k, sigma, threshold)


def gpareto_lpdf(
    y: t.Union[float, np.ndarray],
    ymin: float,
    k: float,
    sigma: float,
    threshold: float = BRANCH_THRESHOLD,
) -> Evaluation:
    """Summed log-density of the observations, or a `RejectProposal`"""
    return _gated(_density.lpdf, y, ymin, k, sigma, threshold)


def gpareto_cdf(
    y: t.Union[float, np.ndarray],
    ymin: float,
    k: float,
    sigma: float,
    threshold: float = BRANCH_THRESHOLD,
) -> Evaluation:
    """Product of the observations' CDF values, or a `RejectProposal`"""
    return _gated(_cdf.cdf, y, ymin, k, sigma, threshold)


def gpareto_lcdf(
    y: t.Union[float, np.ndarray],
    ymin: float,
    k: float,
    sigma: float,
    threshold: float = BRANCH_THRESHOLD,
) -> Evaluation:
    """Summed log CDF of the observations, or a `RejectProposal`"""
    return _gated(_cdf.lcdf, y, ymin, k, sigma, threshold)


def gpareto_lccdf(
    y: t.Union[float, np.ndarray],
    ymin: float,
    k: float,
    sigma: float,
    threshold: float = BRANCH_THRESHOLD,
) -> Evaluation:
    """Summed log complementary CDF of the observations, or a `RejectProposal`"""
    return _gated(_cdf.lccdf, y, ymin, k, sigma, threshold)


def gpareto_rng(
    ymin: float,
    k: float,
    sigma: float,
    u: float,
    threshold: float = BRANCH_THRESHOLD,
) -> float:
    """Single random draw from a caller-supplied uniform value in (0,1); see `gpdtail.variates.rng`.

    Raises:
        ContractViolationError: if sigma is not positive or inputs are invalid
    """
    return _variates.rng(ymin, k, sigma, u, threshold)
