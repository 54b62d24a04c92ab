"""
This package implements the probability functions of the generalised Pareto distribution in the form needed by sampling engines: summed log-density, product of CDF values, summed log CDF and log complementary CDF, and single random draws by inverse transform. Every vectorised evaluation is gated by admissibility checks that return a `RejectProposal` value for inadmissible parameters instead of raising, so a sampler can discard the proposal and carry on; misuse of the functions raises `ContractViolationError`. A shape parameter within `BRANCH_THRESHOLD` of zero switches to the exponential limit formulas.

Tail models with maximum likelihood and Bayesian (`emcee`) fitting are available in `gpdtail.univariate`.
"""
__version__ = "1.0.0-dev"

from gpdtail.numeric import BRANCH_THRESHOLD, branch_threshold, log1mexp
from gpdtail.validation import (
    ACCEPT,
    Accept,
    ContractViolationError,
    RejectProposal,
    check_contract,
    validate,
)
from gpdtail.functions import (
    gpareto_cdf,
    gpareto_lccdf,
    gpareto_lcdf,
    gpareto_lpdf,
    gpareto_rng,
    is_rejection,
)
