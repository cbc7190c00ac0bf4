"""Series-expansion Wiener first-passage density.

The density of reaching the lower boundary at decision time ``t`` is

    f(t | v, a, w) = exp(-v a w - v^2 t / 2) / a^2 * f01(t / a^2 | w)

where ``f01`` is the standardized density (zero drift, unit separation),
evaluated with whichever of the small-time and large-time series of
Navarro & Fuss (2009) needs fewer terms for the requested precision. The
upper boundary follows from the symmetry ``v -> -v``, ``w -> 1 - w``.

Normally distributed drift (``sv``) is integrated in closed form. Uniform
ranges of bias (``sw``) and residual time (``st0``) are integrated with
Gauss-Legendre quadrature. Everything is computed on the log scale so that
densities far in the tails underflow to ``-inf`` only when they are truly
negligible.
"""

import numpy as np
from scipy import integrate
from scipy.special import logsumexp

from ddmfit.config import get_default_density_config


def _n_terms(u: np.ndarray, eps: float) -> tuple[np.ndarray, np.ndarray]:
    """Terms needed by the small- and large-time series at precision ``eps``."""
    with np.errstate(divide="ignore", invalid="ignore"):
        large = np.where(
            np.pi * u * eps < 1,
            np.sqrt(-2.0 * np.log(np.pi * u * eps) / (np.pi**2 * u)),
            0.0,
        )
        large = np.maximum(large, 1.0 / (np.pi * np.sqrt(u)))

        arg = 2.0 * np.sqrt(2.0 * np.pi * u) * eps
        small = np.where(arg < 1, 2.0 + np.sqrt(-2.0 * u * np.log(arg)), 2.0)
        small = np.maximum(small, np.sqrt(u) + 1.0)
    return small, large


def _log_f01_small(u: np.ndarray, w: np.ndarray, n_half: int) -> np.ndarray:
    k = np.arange(-n_half, n_half + 1, dtype=float)
    wk = w[:, None] + 2.0 * k[None, :]
    exponent = -(wk**2) / (2.0 * u[:, None])
    with np.errstate(divide="ignore"):
        log_sum, sign = logsumexp(exponent, b=wk, axis=1, return_sign=True)
    log_f = log_sum - 0.5 * np.log(2.0 * np.pi * u**3)
    return np.where(sign > 0, log_f, -np.inf)


def _log_f01_large(u: np.ndarray, w: np.ndarray, n_terms: int) -> np.ndarray:
    k = np.arange(1, n_terms + 1, dtype=float)
    exponent = -(k[None, :] ** 2) * np.pi**2 * u[:, None] / 2.0
    b = k[None, :] * np.sin(k[None, :] * np.pi * w[:, None])
    with np.errstate(divide="ignore"):
        log_sum, sign = logsumexp(exponent, b=b, axis=1, return_sign=True)
    return np.where(sign > 0, log_sum + np.log(np.pi), -np.inf)


def _p_lower_fixed(a: np.ndarray, v: np.ndarray, w: np.ndarray) -> np.ndarray:
    """Probability of absorption at the lower boundary for fixed v and w."""
    flip = v < 0
    speed = np.abs(v)
    z = np.where(flip, a * (1.0 - w), a * w)
    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        p = np.exp(-2.0 * speed * z) * np.expm1(-2.0 * speed * (a - z)) / np.expm1(
            -2.0 * speed * a
        )
    p = np.where(speed * a < 1e-12, (a - z) / a, p)
    return np.where(flip, 1.0 - p, p)


class NavarroFussDensity:
    """Wiener first-passage density with trial-to-trial variability.

    Implements :class:`~ddmfit.likelihood.protocols.WienerDensityProtocol`.

    Parameters
    ----------
    eps : float, optional
        Truncation error allowed in the standardized series.
    max_terms : int, optional
        Cap on the number of series terms.
    n_sv_nodes : int, optional
        Gauss-Hermite nodes used to integrate choice probabilities over ``sv``.
    n_sw_nodes, n_st0_nodes : int, optional
        Gauss-Legendre nodes used to integrate over ``sw`` and ``st0``.

    Defaults come from :func:`ddmfit.config.get_default_density_config`.

    Examples
    --------
    >>> density = NavarroFussDensity()
    >>> p = density.density(rt=0.8, upper=True, a=2.0, v=0.5, w=0.5, t0=0.2)
    >>> bool(p > 0)
    True
    """

    def __init__(
        self,
        eps: float | None = None,
        max_terms: int | None = None,
        n_sv_nodes: int | None = None,
        n_sw_nodes: int | None = None,
        n_st0_nodes: int | None = None,
    ):
        config = get_default_density_config()
        self.eps = float(eps if eps is not None else config["eps"])
        self.max_terms = int(max_terms if max_terms is not None else config["max_terms"])
        self.n_sv_nodes = int(n_sv_nodes or config["n_sv_nodes"])
        self.n_sw_nodes = int(n_sw_nodes or config["n_sw_nodes"])
        self.n_st0_nodes = int(n_st0_nodes or config["n_st0_nodes"])
        if not 0 < self.eps < 1:
            raise ValueError(f"eps must lie in (0, 1), got {self.eps}")

        self._sw_rule = np.polynomial.legendre.leggauss(self.n_sw_nodes)
        self._st0_rule = np.polynomial.legendre.leggauss(self.n_st0_nodes)
        nodes, weights = np.polynomial.hermite_e.hermegauss(self.n_sv_nodes)
        self._sv_rule = (nodes, weights / np.sqrt(2.0 * np.pi))

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(eps={self.eps:g}, max_terms={self.max_terms}, "
            f"n_sv_nodes={self.n_sv_nodes}, n_sw_nodes={self.n_sw_nodes}, "
            f"n_st0_nodes={self.n_st0_nodes})"
        )

    def _log_f01(self, u: np.ndarray, w: np.ndarray) -> np.ndarray:
        """Log standardized lower-boundary density (flat arrays)."""
        out = np.full(u.shape, -np.inf)
        valid = np.flatnonzero((u > 0) & (w > 0) & (w < 1))
        if valid.size == 0:
            return out

        small, large = _n_terms(u[valid], self.eps)
        use_small = small < large

        idx = valid[use_small]
        if idx.size:
            n_half = int(np.ceil((small[use_small].max() - 1.0) / 2.0))
            n_half = min(max(n_half, 1), self.max_terms)
            out[idx] = _log_f01_small(u[idx], w[idx], n_half)

        idx = valid[~use_small]
        if idx.size:
            n_terms = int(np.ceil(large[~use_small].max()))
            n_terms = min(max(n_terms, 1), self.max_terms)
            out[idx] = _log_f01_large(u[idx], w[idx], n_terms)
        return out

    def _log_density_lower(self, t, a, v, w, sv) -> np.ndarray:
        """Log lower-boundary density at decision time ``t`` (flat arrays)."""
        out = np.full(t.shape, -np.inf)
        pos = t > 0
        if not np.any(pos):
            return out
        t, a, v, w, sv = (x[pos] for x in (t, a, v, w, sv))
        sv2t = sv**2 * t
        out[pos] = (
            self._log_f01(t / a**2, w)
            - 2.0 * np.log(a)
            + ((a * w * sv) ** 2 - 2.0 * a * v * w - v**2 * t) / (2.0 * (1.0 + sv2t))
            - 0.5 * np.log1p(sv2t)
        )
        return out

    def log_density(self, rt, upper, a, v, w, t0, sv=0.0, sw=0.0, st0=0.0) -> np.ndarray:
        """Log joint density of (choice, RT).

        Returns ``-inf`` where the density is zero (e.g. ``rt <= t0``) and
        NaN where the parameters are outside their domain (``a <= 0``,
        ``w`` outside (0, 1), negative ``t0`` or variabilities).
        """
        rt, upper = np.asarray(rt, dtype=float), np.asarray(upper, dtype=bool)
        arrays = np.broadcast_arrays(
            rt, upper, *(np.asarray(x, dtype=float) for x in (a, v, w, t0, sv, sw, st0))
        )
        shape = arrays[0].shape
        rt, upper, a, v, w, t0, sv, sw, st0 = (x.ravel() for x in arrays)
        n = rt.shape[0]

        ok = (
            np.isfinite(rt)
            & np.isfinite(a) & (a > 0)
            & np.isfinite(v)
            & (w > 0) & (w < 1)
            & np.isfinite(t0) & (t0 >= 0)
            & np.isfinite(sv) & (sv >= 0)
            & np.isfinite(sw) & (sw >= 0)
            & np.isfinite(st0) & (st0 >= 0)
        )

        # Bias nodes, shape (n, k_sw), averaging over the (clipped) range of w
        if np.any(sw[ok] > 0):
            x, weights = self._sw_rule
            lo = np.maximum(0.0, w - sw / 2.0)
            hi = np.minimum(1.0, w + sw / 2.0)
            w_nodes = ((lo + hi) / 2.0)[:, None] + ((hi - lo) / 2.0)[:, None] * x[None, :]
            log_w_weights = np.broadcast_to(np.log(weights / 2.0), (n, x.size))
        else:
            w_nodes = w[:, None]
            log_w_weights = np.zeros((n, 1))

        # Residual-time nodes, shape (n, k_st0); t0' beyond rt contributes nothing
        if np.any(st0[ok] > 0):
            x, weights = self._st0_rule
            has_st0 = st0 > 0
            span = np.clip(np.minimum(t0 + st0, rt) - t0, 0.0, None)
            span = np.where(has_st0, span, 0.0)
            frac = np.where(has_st0, span / np.where(has_st0, st0, 1.0), 1.0)
            t0_nodes = t0[:, None] + span[:, None] * (x[None, :] + 1.0) / 2.0
            with np.errstate(divide="ignore"):
                log_t_weights = np.log(weights / 2.0)[None, :] + np.log(frac)[:, None]
        else:
            t0_nodes = t0[:, None]
            log_t_weights = np.zeros((n, 1))

        grid_shape = (n, w_nodes.shape[1], t0_nodes.shape[1])
        t_dec = rt[:, None, None] - t0_nodes[:, None, :]
        w_grid = np.where(upper[:, None, None], 1.0 - w_nodes[:, :, None], w_nodes[:, :, None])
        v_grid = np.where(upper, -v, v)[:, None, None]
        t_dec, w_grid, v_grid, a_grid, sv_grid = (
            np.broadcast_to(x, grid_shape).ravel()
            for x in (t_dec, w_grid, v_grid, a[:, None, None], sv[:, None, None])
        )
        safe = np.broadcast_to(ok[:, None, None], grid_shape).ravel()
        log_f = np.full(t_dec.shape, -np.inf)
        log_f[safe] = self._log_density_lower(
            t_dec[safe], a_grid[safe], v_grid[safe], w_grid[safe], sv_grid[safe]
        )
        log_f = log_f.reshape(grid_shape)

        log_weights = log_w_weights[:, :, None] + log_t_weights[:, None, :]
        with np.errstate(divide="ignore", invalid="ignore"):
            total = logsumexp(log_f + log_weights, axis=(1, 2))
        total = np.where(ok, total, np.nan)
        return total.reshape(shape)

    def density(self, rt, upper, a, v, w, t0, sv=0.0, sw=0.0, st0=0.0) -> np.ndarray:
        """Joint density of (choice, RT); NaN for out-of-domain parameters."""
        return np.exp(self.log_density(rt, upper, a, v, w, t0, sv, sw, st0))

    def choice_probability(self, upper, a, v, w, sv=0.0, sw=0.0) -> np.ndarray:
        """Probability of eventually reaching the selected boundary.

        Closed form for fixed drift and bias, integrated over ``sv``
        (Gauss-Hermite) and over the clipped ``sw`` range (Gauss-Legendre).
        """
        arrays = np.broadcast_arrays(
            np.asarray(upper, dtype=bool),
            *(np.asarray(x, dtype=float) for x in (a, v, w, sv, sw)),
        )
        shape = arrays[0].shape
        upper, a, v, w, sv, sw = (x.ravel() for x in arrays)

        if np.any(sv > 0):
            x, weights = self._sv_rule
            v_nodes = v[:, None] + sv[:, None] * x[None, :]
            v_weights = np.broadcast_to(weights, v_nodes.shape)
        else:
            v_nodes, v_weights = v[:, None], np.ones((v.size, 1))

        if np.any(sw > 0):
            x, weights = self._sw_rule
            lo = np.maximum(0.0, w - sw / 2.0)
            hi = np.minimum(1.0, w + sw / 2.0)
            w_nodes = ((lo + hi) / 2.0)[:, None] + ((hi - lo) / 2.0)[:, None] * x[None, :]
            w_weights = np.broadcast_to(weights / 2.0, w_nodes.shape)
        else:
            w_nodes, w_weights = w[:, None], np.ones((w.size, 1))

        p_lower = _p_lower_fixed(a[:, None, None], v_nodes[:, :, None], w_nodes[:, None, :])
        p_lower = np.sum(p_lower * v_weights[:, :, None] * w_weights[:, None, :], axis=(1, 2))
        p = np.where(upper, 1.0 - p_lower, p_lower)
        return p.reshape(shape)

    def _cdf_scalar(self, rt, upper, a, v, w, t0, sv, sw, st0) -> float:
        if not np.isfinite(rt):
            return float(self.choice_probability(upper, a, v, w, sv, sw)) if rt > 0 else 0.0
        if rt <= t0:
            return 0.0

        def integrand(t):
            return float(self.density(t, upper, a, v, w, t0, sv, sw, st0))

        points = [p for p in (t0 + st0,) if t0 < p < rt] or None
        value, _ = integrate.quad(integrand, t0, rt, points=points, limit=200)
        total = float(self.choice_probability(upper, a, v, w, sv, sw))
        return min(max(value, 0.0), total)

    def cdf(self, rt, upper, a, v, w, t0, sv=0.0, sw=0.0, st0=0.0) -> np.ndarray:
        """Defective CDF P(choice, RT <= rt) by adaptive quadrature of the density."""
        arrays = np.broadcast_arrays(
            np.asarray(rt, dtype=float),
            np.asarray(upper, dtype=bool),
            *(np.asarray(x, dtype=float) for x in (a, v, w, t0, sv, sw, st0)),
        )
        out = np.empty(arrays[0].shape)
        for i in np.ndindex(out.shape):
            out[i] = self._cdf_scalar(*(x[i] for x in arrays))
        return out
