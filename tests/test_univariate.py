import pytest as pt
import numpy as np
import scipy as sp
from scipy.optimize import approx_fprime

from gpdtail import ACCEPT, RejectProposal, gpareto_lpdf, validate
from gpdtail.univariate import BayesianGPTail, GPTail, log_penalty, log_probability

tol = 1e-6
np.random.seed(1)


def gp_data(k, sigma, ymin=0.0, size=5000, seed=1):
  return sp.stats.genpareto.rvs(c=k, loc=ymin, scale=sigma, size=size, random_state=seed)


def test_gp_tail_methods():
  dist = GPTail(threshold=1.0, shape=-0.5, scale=2.0)
  assert dist.endpoint == 5.0
  assert GPTail(threshold=1.0, shape=0.1, scale=2.0).endpoint == np.inf

  x = np.array([2.0, 3.0])
  ref = sp.stats.genpareto(c=-0.5, loc=1.0, scale=2.0)
  assert np.isclose(dist.logpdf(x), np.sum(ref.logpdf(x)))
  assert np.isclose(dist.logsf(x), np.sum(ref.logsf(x)))
  assert np.isclose(dist.logcdf(x), np.sum(ref.logcdf(x)))
  assert np.isclose(dist.cdf(x), np.prod(ref.cdf(x)))

  assert isinstance(dist.logpdf([6.0]), RejectProposal)
  assert "Generalised Pareto" in repr(dist)


def test_gp_tail_parameter_checks():
  dist = GPTail(threshold=0.0, shape=-1.0, scale=1.0, data=np.array([0.5, 2.0]))
  assert isinstance(dist.check_parameters(), RejectProposal)
  assert GPTail(threshold=0.0, shape=-1.0, scale=1.0).check_parameters() is ACCEPT

  with pt.raises(ValueError):
    GPTail(threshold=0.0, shape=0.1, scale=-1.0)
  with pt.raises(ValueError):
    GPTail(threshold=0.0, shape=0.1, scale=0.0)


def test_gp_tail_simulation():
  dist = GPTail(threshold=1.0, shape=-0.5, scale=2.0)
  sample = dist.simulate(1000, random_state=3)
  assert sample.shape == (1000,)
  assert np.all(sample > dist.threshold)
  assert np.all(sample <= dist.endpoint)
  assert np.allclose(sample, dist.simulate(1000, random_state=3))


def test_log_probability():
  data = np.array([0.5, 1.5])
  assert log_probability([1.0, -1.0], data, 0.0) == -np.inf
  assert log_probability([0.0, 0.5], data, 0.0) == -np.inf
  assert log_probability([-1.0, 0.5], data, 0.0) == -np.inf
  assert np.isclose(log_probability([1.0, 0.5], data, 0.0), gpareto_lpdf(data, 0.0, 0.5, 1.0))

  log_prior = lambda theta: -0.5 * theta[1] ** 2
  assert np.isclose(
    log_probability([1.0, 0.5], data, 0.0, log_prior),
    gpareto_lpdf(data, 0.0, 0.5, 1.0) - 0.125)
  assert log_probability([1.0, 0.5], data, 0.0, lambda theta: -np.inf) == -np.inf


@pt.mark.parametrize("scale,shape", [(1.0, 0.3), (2.0, -0.2), (1.5, 0.0)])
def test_loglik_derivatives(scale, shape):
  data = gp_data(shape, scale, size=200)
  params = np.array([scale, shape])
  f = lambda p: GPTail.loglik(p, 0.0, data)

  grad = GPTail.loglik_grad(params, 0.0, data)
  num_grad = approx_fprime(params, f, 1e-7)
  assert np.allclose(grad, num_grad, rtol=1e-3, atol=1e-3)

  if shape == 0.0:
    # the series limit of the gradient does not depend on the shape
    return

  hess = GPTail.loglik_hessian(params, 0.0, data)
  g = lambda p: GPTail.loglik_grad(p, 0.0, data)
  num_hess = np.array([approx_fprime(params, lambda p: g(p)[i], 1e-7) for i in range(2)])
  assert np.allclose(hess, num_hess, rtol=1e-3, atol=1e-2)


@pt.mark.parametrize("scale,shape", [(1.0, 0.3), (2.0, -0.2)])
def test_fit_objective_derivatives(scale, shape):
  data = gp_data(shape, scale, size=200, seed=4)
  params = np.array([scale, shape])
  loss, loss_grad, loss_hessian = GPTail.objective(0.0, data)

  assert np.allclose(loss_grad(params), approx_fprime(params, loss, 1e-7), rtol=1e-3, atol=1e-4)
  num_hess = np.array([approx_fprime(params, lambda p: loss_grad(p)[i], 1e-7) for i in range(2)])
  assert np.allclose(loss_hessian(params), num_hess, rtol=1e-3, atol=1e-4)

  value, grad, hess = log_penalty(params)
  assert np.isclose(value, -0.5 * np.log(scale) - 0.5 * shape**2)
  assert np.allclose(grad, approx_fprime(params, lambda p: log_penalty(p)[0], 1e-7), atol=1e-5)


@pt.mark.parametrize("shape,scale", [(0.2, 1.0), (-0.2, 2.0)])
def test_gp_tail_fit(shape, scale):
  data = gp_data(shape, scale)
  dist = GPTail.fit(data, 0.0)

  assert isinstance(dist, GPTail)
  assert abs(dist.shape - shape) < 0.1
  assert abs(dist.scale - scale) < 0.1 * scale
  assert dist.check_parameters() is ACCEPT

  cov = dist.mle_cov()
  assert cov.shape == (2, 2)
  assert np.all(np.diag(cov) > 0)


def test_gp_tail_fit_drops_data_below_threshold():
  data = np.concatenate([gp_data(0.1, 1.0, ymin=1.0, size=1000), np.array([0.0, 0.5])])
  with pt.warns(UserWarning):
    dist = GPTail.fit(data, 1.0)
  assert len(dist.data) == 1000

  with pt.raises(ValueError):
    GPTail.fit(np.array([0.0, 2.0]), 1.0)


def test_mle_cov_requires_data():
  with pt.raises(ValueError):
    GPTail(threshold=0.0, shape=0.1, scale=1.0).mle_cov()


def test_bayesian_posterior_consumers():
  data = np.array([0.5, 1.0, 2.5])
  scales = np.array([1.0, 2.0, 1.5])
  shapes = np.array([0.1, -0.2, 0.0])
  model = BayesianGPTail(threshold=0.0, scales=scales, shapes=shapes, data=data)

  loglik = model.loglik_matrix()
  assert loglik.shape == (3, 3)
  for i in range(3):
    assert np.isclose(np.sum(loglik[i]), gpareto_lpdf(data, 0.0, shapes[i], scales[i]))
    assert np.isclose(loglik[i, 2], gpareto_lpdf([2.5], 0.0, shapes[i], scales[i]))

  # 12 lies beyond the endpoint 10 of the second sample
  new_loglik = model.loglik_matrix(np.array([1.0, 12.0]))
  assert new_loglik.shape == (3, 2)
  assert new_loglik[1, 1] == -np.inf
  assert np.isfinite(new_loglik[0, 1])

  yrep = model.posterior_predictive(random_state=1)
  assert yrep.shape == (3, 3)
  assert np.all(yrep > 0)
  assert np.all(yrep[1] <= 10.0)
  assert model.posterior_predictive(size=5, random_state=1).shape == (3, 5)

  assert len(model.posterior_models()) == 3


def test_bayesian_model_checks():
  with pt.raises(ValueError):
    BayesianGPTail(threshold=0.0, scales=np.ones(3), shapes=np.ones(2))

  model = BayesianGPTail(threshold=0.0, scales=np.ones(2), shapes=np.zeros(2))
  with pt.raises(ValueError):
    model.loglik_matrix()
  with pt.raises(ValueError):
    model.posterior_predictive()


def test_bayesian_fit():
  shape, scale = 0.1, 1.0
  data = gp_data(shape, scale, size=500, seed=2)
  model = BayesianGPTail.fit(
    data,
    0.0,
    chain_length=300,
    n_walkers=16,
    burn_in=100,
    thinning=5,
    random_state=1)

  assert model.n_samples == 640
  assert len(model.shapes) == len(model.scales)
  assert abs(np.mean(model.shapes) - shape) < 0.2
  assert abs(np.mean(model.scales) - scale) < 0.3

  for s, k in zip(model.scales, model.shapes):
    assert validate(model.data, 0.0, k, s) is ACCEPT

  loglik = model.loglik_matrix()
  assert loglik.shape == (640, 500)
  assert np.all(np.isfinite(loglik))
