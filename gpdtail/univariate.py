"""
This module contains generalised Pareto tail models built on the functions in `gpdtail.functions`: `GPTail`, a fixed-parameter model with regularised maximum likelihood fitting, and `BayesianGPTail`, which keeps a sample from the posterior distribution of the scale and shape parameters obtained with `emcee`. Posterior samples can be turned into the per-observation log-likelihood matrix used by leave-one-out cross-validation tools, and into replicated data for posterior predictive checks.
"""
from __future__ import annotations

import logging
import typing as t
import warnings
from multiprocessing import Pool

import numpy as np
import scipy as sp
import emcee

from scipy.stats import genpareto as gpdist
from scipy.optimize import LinearConstraint, minimize

from pydantic import BaseModel, ConfigDict, PositiveFloat, field_validator

from gpdtail.functions import (
    Evaluation,
    gpareto_cdf,
    gpareto_lccdf,
    gpareto_lcdf,
    gpareto_lpdf,
)
from gpdtail.validation import Verdict, validate
from gpdtail.variates import draw

logger = logging.getLogger(__name__)

GRADIENT_SHAPE_TOL = 1e-6
"""Shape values closer than this to zero use the series limit of the log-likelihood derivatives; the derivative formulas lose precision well before the density itself does."""


def _as_float(res: Evaluation) -> float:
    return res if isinstance(res, float) else -np.inf


def log_penalty(params: t.Sequence[float]) -> t.Tuple[float, np.ndarray, np.ndarray]:
    """Log-density of the weak prior that regularises maximum likelihood fits, \\( -0.5 \\log \\sigma - 0.5 \\xi^2 \\), with its gradient and Hessian in (scale, shape)."""
    scale, shape = params
    value = -0.5 * np.log(scale) - 0.5 * shape**2
    grad = np.array([-0.5 / scale, -shape])
    hess = np.array([[0.5 / scale**2, 0.0], [0.0, -1.0]])
    return value, grad, hess


def log_probability(
    theta: t.Sequence[float],
    data: np.ndarray,
    threshold: float,
    log_prior: t.Optional[t.Callable] = None,
) -> float:
    """Unnormalised log posterior for a generalised Pareto model, in the form expected by `emcee.EnsembleSampler`. Rejected proposals map to `-np.inf`, which the sampler treats as a point outside the support.

    Args:
        theta (t.Sequence[float]): scale and shape parameters, in that order
        data (np.ndarray): exceedance data above threshold
        threshold (float): model threshold
        log_prior (t.Optional[t.Callable], optional): function of theta returning the prior log-density; if None, a flat prior over the admissible region is used.

    Returns:
        float
    """
    scale, shape = theta
    prior = 0.0 if log_prior is None else log_prior(theta)
    if not np.isfinite(prior):
        return -np.inf

    return prior + _as_float(gpareto_lpdf(data, threshold, shape, scale))


class GPTail(BaseModel):
    """Generalised Pareto exceedance model. Its density is given by

    $$ f(x) = \\frac{1}{\\sigma} \\left( 1 + \\xi \\left( \\frac{x - \\mu}{\\sigma} \\right) \\right)_{+}^{-(1 + 1/\\xi)} $$

    where \\( \\mu, \\sigma, \\xi \\) are the threshold (lower endpoint), scale and shape parameters. The `log*` and `cdf` methods take a vector of points and return the aggregated value, or a `RejectProposal` if a point lies beyond the upper endpoint.

    Args:
        threshold (float): modeling threshold
        shape (float): shape parameter
        scale (float): scale parameter
        data (np.array, optional): exceedance data
    """

    threshold: float
    shape: float
    scale: PositiveFloat
    data: t.Optional[np.ndarray] = None

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def __repr__(self):
        return f"Generalised Pareto tail model with (mu, scale, shape) = ({self.threshold},{self.scale},{self.shape}) components"

    def __str__(self):
        return self.__repr__()

    @property
    def endpoint(self) -> float:
        return self.threshold - self.scale / self.shape if self.shape < 0 else np.inf

    def check_parameters(self) -> Verdict:
        """Checks the parameters against the model's exceedance data, if any"""
        data = self.data if self.data is not None else np.empty((0,))
        return validate(data, self.threshold, self.shape, self.scale)

    def logpdf(self, x: t.Union[float, np.ndarray]) -> Evaluation:
        return gpareto_lpdf(x, self.threshold, self.shape, self.scale)

    def logcdf(self, x: t.Union[float, np.ndarray]) -> Evaluation:
        return gpareto_lcdf(x, self.threshold, self.shape, self.scale)

    def logsf(self, x: t.Union[float, np.ndarray]) -> Evaluation:
        return gpareto_lccdf(x, self.threshold, self.shape, self.scale)

    def cdf(self, x: t.Union[float, np.ndarray]) -> Evaluation:
        return gpareto_cdf(x, self.threshold, self.shape, self.scale)

    def simulate(
        self,
        size: int,
        random_state: t.Optional[t.Union[int, np.random.Generator]] = None,
    ) -> np.ndarray:
        """Produces simulated values from the model, one inverse transform draw at a time

        Args:
            size (int): Number of samples
            random_state (t.Optional[t.Union[int, np.random.Generator]], optional): generator or seed
        """
        gen = np.random.default_rng(random_state)
        return np.array(
            [draw(self.threshold, self.shape, self.scale, gen) for _ in range(size)]
        )

    def mle_cov(self) -> np.ndarray:
        """Returns the estimated parameter covariance matrix evaluated at the fitted parameters

        Returns:
            np.ndarray: Covariance matrix
        """

        if self.data is None:
            raise ValueError(
                "exceedance data not provided for this instance of GPTail; covariance matrix can't be estimated"
            )
        else:
            hess = self.loglik_hessian(
                [self.scale, self.shape], threshold=self.threshold, data=self.data
            )
            return np.linalg.inv(-hess)

    @classmethod
    def loglik(cls, params: t.List[float], threshold: float, data: np.ndarray) -> float:
        """Returns the log-likelihood for a Generalised Pareto model; inadmissible parameters give `-np.inf`

        Args:
            params (t.List[float]): Vector parameter with scale and shape values, in that order
            threshold (float): model threshold
            data (np.ndarray): exceedance data

        Returns:
            float
        """
        return log_probability(params, data, threshold)

    @classmethod
    def loglik_grad(
        cls, params: t.List[float], threshold: float, data: np.ndarray
    ) -> np.ndarray:
        """Gradient of `loglik` with respect to (scale, shape)"""
        scale, shape = params
        z = data - threshold
        denom = scale + shape * z

        d_scale = np.sum((z - scale) / (scale * denom))
        if abs(shape) <= GRADIENT_SHAPE_TOL:
            # series limit as shape -> 0
            d_shape = np.sum(z * (z - 2 * scale)) / (2 * scale**2)
        else:
            d_shape = np.sum(
                np.log1p(shape * z / scale) / shape**2
                - (1 + shape) * z / (shape * denom)
            )

        return np.array([d_scale, d_shape])

    @classmethod
    def loglik_hessian(
        cls, params: t.List[float], threshold: float, data: np.ndarray
    ) -> np.ndarray:
        """Hessian of `loglik` with respect to (scale, shape). Only the second shape derivative needs a separate form near zero shape.

        Args:
            params (t.List[float]): scale and shape, in that order
            threshold (float): model threshold
            data (np.ndarray): exceedance data above the threshold

        Returns:
            np.ndarray: 2x2 matrix
        """
        scale, shape = params
        z = data - threshold
        denom = scale + shape * z

        d2_scale = np.sum((scale**2 - 2 * scale * z - shape * z**2) / (scale * denom) ** 2)
        d_scale_shape = np.sum(z * (scale - z) / (scale * denom**2))

        if abs(shape) <= GRADIENT_SHAPE_TOL:
            d2_shape = np.sum(z**2 * (3 * scale - 2 * z)) / (3 * scale**3)
        else:
            d2_shape = np.sum(
                z * (2 * scale + 3 * shape * z + shape**2 * z) / (shape * denom) ** 2
                - 2 * np.log1p(shape * z / scale) / shape**3
            )

        return np.array([[d2_scale, d_scale_shape], [d_scale_shape, d2_shape]])

    @classmethod
    def objective(
        cls, threshold: float, data: np.ndarray
    ) -> t.Tuple[t.Callable, t.Callable, t.Callable]:
        """Builds the loss minimised by `fit`, the penalised negative log-likelihood per data point, together with its gradient and Hessian.

        Args:
            threshold (float): model threshold
            data (np.ndarray): exceedance data above threshold

        Returns:
            t.Tuple[t.Callable, t.Callable, t.Callable]: loss, gradient and Hessian as functions of (scale, shape)
        """
        n = len(data)

        def loss(params):
            return -(cls.loglik(params, threshold, data) + log_penalty(params)[0]) / n

        def loss_grad(params):
            return -(cls.loglik_grad(params, threshold, data) + log_penalty(params)[1]) / n

        def loss_hessian(params):
            return -(cls.loglik_hessian(params, threshold, data) + log_penalty(params)[2]) / n

        return loss, loss_grad, loss_hessian

    @classmethod
    def fit(
        cls,
        data: np.ndarray,
        threshold: float,
        x0: np.ndarray = None,
        return_opt_results: bool = False,
    ) -> t.Union[GPTail, sp.optimize.OptimizeResult]:
        """Fits a Generalised Pareto tail model using a constrained trust region method

        Args:
            data (np.ndarray): observational data; only values above threshold are used
            threshold (float): Model threshold
            x0 (np.ndarray, optional): Initial guess (scale, shape) for rescaled data; if None, the result of scipy.stats.genpareto.fit is used as a starting point.
            return_opt_results (bool, optional): If True, return the OptimizeResult object; otherwise return fitted instance of GPTail

        Returns:
            t.Union[GPTail, sp.optimize.OptimizeResult]
        """
        data = np.asarray(data, dtype=np.float64)
        exceedances = data[data > threshold]
        if len(exceedances) < len(data):
            warnings.warn(
                f"Dropping {len(data) - len(exceedances)} observations at or below the threshold.",
                stacklevel=2,
            )
        if len(exceedances) < 2:
            raise ValueError("At least two exceedances are needed to fit a tail model.")

        # rescaling the data rescales threshold and scale, and leaves the shape unchanged; it keeps both parameters on a similar scale
        sdev = np.std(exceedances)

        norm_exceedances = exceedances / sdev
        norm_threshold = threshold / sdev

        norm_max = max(norm_exceedances)

        # scale >= 0 and shape >= -scale / max excess
        constraints = LinearConstraint(
            A=np.array([[1 / (norm_max - norm_threshold), 1], [1, 0]]),
            lb=np.zeros((2,)),
            ub=np.inf,
        )

        if x0 is None:
            shape, _, scale = gpdist.fit(norm_exceedances, floc=norm_threshold)
            x0 = np.array([scale, shape])

        loss, loss_grad, loss_hessian = cls.objective(norm_threshold, norm_exceedances)
        res = minimize(
            fun=loss,
            x0=x0,
            method="trust-constr",
            jac=loss_grad,
            hess=loss_hessian,
            constraints=[constraints],
        )
        logger.info("Tail model optimisation finished: %s", res.message)

        if return_opt_results:
            warnings.warn(
                "Returning raw results for rescaled exceedance data (sdev ~ 1).",
                stacklevel=2,
            )
            return res

        scale, shape = list(res.x)
        return cls(
            threshold=threshold,
            scale=sdev * scale,
            shape=shape,
            data=exceedances,
        )


class BayesianGPTail(BaseModel):

    """Generalised Pareto tail model fitted through Bayesian inference; it holds a sample from the joint posterior of the scale and shape parameters.

    Args:
        threshold (float): modeling threshold
        scales (np.ndarray): sample from posterior scale distribution
        shapes (np.ndarray): sample from posterior shape distribution
        data (np.array, optional): exceedance data
    """

    threshold: float
    scales: np.ndarray
    shapes: np.ndarray
    data: t.Optional[np.ndarray] = None

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def __repr__(self):
        return f"Bayesian Generalised Pareto tail model with threshold {self.threshold} and {len(self.scales)} posterior samples"

    def __str__(self):
        return self.__repr__()

    @field_validator("shapes")
    @classmethod
    def check_posterior_lengths(cls, shapes, info):
        scales = info.data.get("scales")
        if scales is not None and len(scales) != len(shapes):
            raise ValueError("scales and shapes must have the same number of posterior samples")
        return shapes

    @property
    def n_samples(self) -> int:
        return len(self.scales)

    def posterior_models(self) -> t.List[GPTail]:
        """Returns one `GPTail` instance per posterior sample"""
        return [
            GPTail(threshold=self.threshold, scale=scale, shape=shape, data=self.data)
            for scale, shape in zip(self.scales, self.shapes)
        ]

    def loglik_matrix(self, data: t.Optional[np.ndarray] = None) -> np.ndarray:
        """Per-observation log-likelihood matrix with one row per posterior sample and one column per observation, as consumed by leave-one-out cross-validation tools. Each entry is a log-density evaluation on a single observation.

        Args:
            data (t.Optional[np.ndarray], optional): observations; defaults to the model's exceedance data

        Returns:
            np.ndarray: array of shape (n_samples, n_observations)
        """
        if data is None:
            data = self.data
        if data is None:
            raise ValueError("Exceedance data was not provided for this model.")

        data = np.atleast_1d(np.asarray(data, dtype=np.float64))
        loglik = np.empty((self.n_samples, len(data)))
        for i, (scale, shape) in enumerate(zip(self.scales, self.shapes)):
            for j, y in enumerate(data):
                loglik[i, j] = _as_float(
                    gpareto_lpdf(y, self.threshold, shape, scale)
                )
        return loglik

    def posterior_predictive(
        self,
        size: t.Optional[int] = None,
        random_state: t.Optional[t.Union[int, np.random.Generator]] = None,
    ) -> np.ndarray:
        """Replicated data for posterior predictive checks; each entry is an independent draw using the parameters of its row's posterior sample.

        Args:
            size (t.Optional[int], optional): draws per posterior sample; defaults to the number of observations
            random_state (t.Optional[t.Union[int, np.random.Generator]], optional): generator or seed

        Returns:
            np.ndarray: array of shape (n_samples, size)
        """
        if size is None:
            if self.data is None:
                raise ValueError("size must be given when the model has no exceedance data.")
            size = len(self.data)

        gen = np.random.default_rng(random_state)
        yrep = np.empty((self.n_samples, size))
        for i, (scale, shape) in enumerate(zip(self.scales, self.shapes)):
            for j in range(size):
                yrep[i, j] = draw(self.threshold, shape, scale, gen)
        return yrep

    @classmethod
    def fit(
        cls,
        data: np.ndarray,
        threshold: float,
        max_posterior_samples: int = 1000,
        chain_length: int = 2000,
        x0: np.ndarray = None,
        n_walkers: int = 32,
        n_cores: int = 1,
        burn_in: int = 100,
        thinning: int = None,
        log_prior: t.Callable = None,
        progress: bool = False,
        random_state: t.Optional[int] = None,
    ) -> BayesianGPTail:
        """Fits a Generalised Pareto model through Bayesian inference, sampling from the posterior scale and shape distributions with `emcee.EnsembleSampler`. Proposals rejected by the admissibility checks get zero posterior probability.

        Args:
            data (np.ndarray): observational data
            threshold (float): modeling threshold; lower endpoint of the Generalised Pareto model
            max_posterior_samples (int, optional): Maximum number of posterior samples to keep
            chain_length (int, optional): timesteps in each chain
            x0 (np.ndarray, optional): Starting point (scale, shape) for the chains. If None, MLE estimates are used.
            n_walkers (int, optional): Number of concurrent walkers
            n_cores (int, optional): Number of processes used to evaluate the log posterior
            burn_in (int, optional): Number of initial samples to drop
            thinning (int, optional): Thinning factor to reduce autocorrelation; if None, an estimate from emcee's `get_autocorr_time` is used.
            log_prior (t.Callable, optional): Function of a length-2 iterable with scale and shape parameters returning the prior log-density. If None, a flat prior on the admissible region is used.
            progress (bool, optional): show emcee's progress bar
            random_state (t.Optional[int], optional): seed for walker initialisation and sampling

        Returns:
            BayesianGPTail: fitted model
        """
        data = np.asarray(data, dtype=np.float64)
        exceedances = data[data > threshold]
        ndim = 2

        if x0 is None:
            mle_model = GPTail.fit(data=exceedances, threshold=threshold)
            x0 = np.array([mle_model.scale, mle_model.shape])

        rs = np.random.RandomState(random_state)
        pos = x0 + 1e-4 * rs.randn(n_walkers, ndim)

        def run(pool):
            sampler = emcee.EnsembleSampler(
                nwalkers=n_walkers,
                ndim=ndim,
                log_prob_fn=log_probability,
                args=(exceedances, threshold, log_prior),
                pool=pool,
            )
            sampler.random_state = rs.get_state()
            sampler.run_mcmc(pos, chain_length, progress=progress)
            return sampler

        if n_cores > 1:
            with Pool(n_cores) as pool:
                sampler = run(pool)
        else:
            sampler = run(None)

        if thinning is None:
            tau = sampler.get_autocorr_time(quiet=True)
            thinning = int(np.round(np.mean(tau))) if np.all(np.isfinite(tau)) else 1
            thinning = max(thinning, 1)
            logger.info(
                "Using a thinning factor of %s (from emcee.EnsembleSampler.get_autocorr_time)",
                thinning,
            )
        flat_samples = sampler.get_chain(discard=burn_in, thin=thinning, flat=True)

        if flat_samples.shape[0] > max_posterior_samples:
            rs.shuffle(flat_samples)
            flat_samples = flat_samples[0:max_posterior_samples, :]

        logger.info("Got %s posterior samples.", flat_samples.shape[0])

        return cls(
            threshold=threshold,
            scales=flat_samples[:, 0],
            shapes=flat_samples[:, 1],
            data=exceedances,
        )
