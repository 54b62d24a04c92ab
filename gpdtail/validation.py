"""
This module gates every evaluation of the generalised Pareto functions. Two failure classes are kept apart: inadmissible parameter proposals, which are a routine event while a sampler explores parameter space and are returned as a `RejectProposal` value, and violations of the calling contract (non-finite inputs, malformed observation vectors, observations outside the modelled range), which raise `ContractViolationError`.
"""
from __future__ import annotations

import logging
import math
import typing as t

import numpy as np

logger = logging.getLogger(__name__)


class ContractViolationError(ValueError):

    """Raised when the calling code breaks the functions' usage contract. This is a programming error, not part of the expected sampling dynamics."""


class Accept:

    """Verdict for an admissible parameter proposal. Use the `ACCEPT` instance."""

    __slots__ = ()

    accepted = True

    def __eq__(self, other):
        return isinstance(other, Accept)

    def __hash__(self):
        return hash(Accept)

    def __repr__(self):
        return "Accept()"


ACCEPT = Accept()


class RejectProposal(t.NamedTuple):

    """Verdict for an inadmissible parameter proposal; the caller is expected to discard the proposal and carry on.

    Args:
        reason (str): diagnostic message
    """

    reason: str

    accepted = False


Verdict = t.Union[Accept, RejectProposal]


def as_observations(observations: t.Any) -> np.ndarray:
    """Coerces observations to a one-dimensional float array; scalars become length-1 vectors.

    Args:
        observations (t.Any): scalar or one-dimensional array-like

    Returns:
        np.ndarray

    Raises:
        ContractViolationError: if observations are not numeric or not one-dimensional
    """
    try:
        y = np.asarray(observations, dtype=np.float64)
    except (TypeError, ValueError) as e:
        raise ContractViolationError(f"Observations must be numeric: {e}") from e

    if y.ndim == 0:
        return y.reshape(1)
    if y.ndim != 1:
        raise ContractViolationError(
            f"Observations must be a one-dimensional vector, got array with shape {y.shape}"
        )
    return y


def check_parameter(name: str, value: t.Any) -> float:
    """Checks that a scalar parameter is a finite real number and returns it as float

    Raises:
        ContractViolationError: if the value is not a finite real number
    """
    try:
        value = float(value)
    except (TypeError, ValueError) as e:
        raise ContractViolationError(f"{name} must be a real number, got {value!r}") from e

    if not math.isfinite(value):
        raise ContractViolationError(f"{name} must be finite, got {value}")
    return value


def check_contract(
    observations: t.Any, ymin: float, k: float, sigma: float
) -> np.ndarray:
    """Checks the calling contract of the vectorised functions: finite parameters, a one-dimensional vector of finite observations, all of them strictly above ymin. An empty vector is allowed.

    Args:
        observations (t.Any): observation vector
        ymin (float): lower bound
        k (float): shape parameter
        sigma (float): scale parameter

    Returns:
        np.ndarray: observations as a float array

    Raises:
        ContractViolationError: on any violation
    """
    ymin = check_parameter("ymin", ymin)
    check_parameter("k", k)
    check_parameter("sigma", sigma)

    y = as_observations(observations)
    if y.size == 0:
        return y

    if not np.all(np.isfinite(y)):
        raise ContractViolationError("Observations must be finite")

    if np.min(y) <= ymin:
        raise ContractViolationError(
            f"Observations must be strictly above ymin = {ymin}; found minimum {np.min(y)}"
        )
    return y


def validate(observations: t.Any, ymin: float, k: float, sigma: float) -> Verdict:
    """Checks whether a parameter proposal is admissible for the given observations. The checks run on every call, since floating point evaluation can transiently break constraints that a sampler declares as guaranteed.

    A proposal is rejected if sigma is not positive, or if k is negative and some observation falls beyond the upper endpoint `ymin - sigma/k`.

    Args:
        observations (t.Any): observation vector
        ymin (float): lower bound
        k (float): shape parameter
        sigma (float): scale parameter

    Returns:
        Verdict: `ACCEPT` or a `RejectProposal` carrying the reason
    """
    if not sigma > 0:
        reason = f"sigma<=0; found sigma = {sigma}"
        logger.debug("Rejected proposal: %s", reason)
        return RejectProposal(reason)

    if k < 0:
        y = np.asarray(observations, dtype=np.float64)
        # same rounding as the log1p argument in the tail formulas
        if y.size > 0 and np.max(y - ymin) * (k / sigma) < -1:
            reason = f"k<0 and max(y-ymin)/sigma > -1/k; found k, sigma = {k}, {sigma}"
            logger.debug("Rejected proposal: %s", reason)
            return RejectProposal(reason)

    return ACCEPT
