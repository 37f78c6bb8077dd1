"""Two-dimensional Gaussian peak models
======================================

A single elliptical Gaussian peak on a constant background, sampled on a
``maxx × maxy`` pixel grid. Sample index ``i`` addresses pixel
``x = i % maxx``, ``y = i // maxx``; pixel ``x`` covers ``[x, x+1]`` so its
centre is ``x + 0.5``.

Point-sampled model (evaluated at the pixel centre):

    f(x, y) = B + S / (2π σx σy) · exp(-(x+0.5-x0)²/(2σx²) - (y+0.5-y0)²/(2σy²))

Pixel-integrated model, exact for a Gaussian PSF:

    f(x, y) = B + S · Ex(x) · Ey(y)
    Ex(x) = ½ [erf((x+1-x0)/(√2 σx)) - erf((x-x0)/(√2 σx))]

Coefficient layout (both models):

    BACKGROUND=0, SIGNAL=1, X_POSITION=2, Y_POSITION=3, X_SD=4, Y_SD=5

``SIGNAL`` is the integrated intensity of the peak.

Fit modes select the fitted coefficients:
- fixed: background, signal, x, y (widths held)
- circular: as fixed plus one shared width stored in X_SD
- free: all six coefficients
"""

import math

import numpy as np
from scipy.special import erf

from peakfit.core.functions import NonLinearFunction
from peakfit.utils.logging import get_logger

logger = get_logger(__name__)

BACKGROUND = 0
SIGNAL = 1
X_POSITION = 2
Y_POSITION = 3
X_SD = 4
Y_SD = 5

PARAMETER_NAMES = ["background", "signal", "x_position", "y_position", "x_sd", "y_sd"]

FIT_MODES = {
    "fixed": (BACKGROUND, SIGNAL, X_POSITION, Y_POSITION),
    "circular": (BACKGROUND, SIGNAL, X_POSITION, Y_POSITION, X_SD),
    "free": (BACKGROUND, SIGNAL, X_POSITION, Y_POSITION, X_SD, Y_SD),
}

_ONE_OVER_ROOT2 = 1.0 / math.sqrt(2.0)
_ONE_OVER_ROOT2PI = 1.0 / math.sqrt(2.0 * math.pi)


class Gaussian2DFunction(NonLinearFunction):
    """Point-sampled 2D Gaussian.

    The full value and Jacobian images are computed once in
    :meth:`initialise`; per-index evaluation reads from them.

    Args:
        maxx: Grid width in pixels
        maxy: Grid height in pixels
        fit_mode: One of ``"fixed"``, ``"circular"``, ``"free"``
        noise_variance: Optional per-pixel read-noise variance. When given,
            the expected variance of each pixel is ``f(i) + noise_variance[i]``
            and weighted fitting is enabled.
    """

    def __init__(self, maxx: int, maxy: int, fit_mode: str = "free", noise_variance=None):
        if fit_mode not in FIT_MODES:
            raise ValueError(
                f"fit_mode must be one of {list(FIT_MODES)}, got: {fit_mode}"
            )
        if maxx < 1 or maxy < 1:
            raise ValueError(f"Grid size must be positive, got: {maxx}x{maxy}")
        super().__init__(name=f"gaussian2d_{fit_mode}", parameter_names=PARAMETER_NAMES)

        self.maxx = int(maxx)
        self.maxy = int(maxy)
        self.size = self.maxx * self.maxy
        self.fit_mode = fit_mode
        self._indices = np.array(FIT_MODES[fit_mode], dtype=int)

        if noise_variance is not None:
            noise_variance = np.asarray(noise_variance, dtype=float).ravel()
            if noise_variance.size != self.size:
                raise ValueError(
                    f"noise_variance must have {self.size} values, "
                    f"got: {noise_variance.size}"
                )
        self.noise_variance = noise_variance

        self._values = None
        self._jacobian = None

    def gradient_indices(self) -> np.ndarray:
        return self._indices

    def can_compute_weights(self) -> bool:
        return self.noise_variance is not None

    def _widths(self, a: np.ndarray) -> tuple[float, float]:
        sx = a[X_SD]
        sy = a[X_SD] if self.fit_mode == "circular" else a[Y_SD]
        return sx, sy

    def _axis_terms(self, centre: float, sd: float, length: int):
        """Per-axis factor and its derivatives w.r.t. centre and width."""
        u = np.arange(length) + 0.5 - centre
        e = np.exp(-0.5 * u * u / (sd * sd))
        norm = _ONE_OVER_ROOT2PI / sd
        factor = norm * e
        d_centre = factor * u / (sd * sd)
        d_sd = factor * (u * u / (sd * sd) - 1.0) / sd
        return factor, d_centre, d_sd

    def initialise(self, a: np.ndarray) -> None:
        a = np.asarray(a, dtype=float)
        background = a[BACKGROUND]
        signal = a[SIGNAL]
        sx, sy = self._widths(a)

        with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
            fx, dfx_dx0, dfx_dsx = self._axis_terms(a[X_POSITION], sx, self.maxx)
            fy, dfy_dy0, dfy_dsy = self._axis_terms(a[Y_POSITION], sy, self.maxy)

            shape = np.outer(fy, fx)
            columns = [
                np.ones(self.size),
                shape.ravel(),
                (signal * np.outer(fy, dfx_dx0)).ravel(),
                (signal * np.outer(dfy_dy0, fx)).ravel(),
            ]
            if self.fit_mode == "circular":
                d_s = np.outer(fy, dfx_dsx) + np.outer(dfy_dsy, fx)
                columns.append((signal * d_s).ravel())
            elif self.fit_mode == "free":
                columns.append((signal * np.outer(fy, dfx_dsx)).ravel())
                columns.append((signal * np.outer(dfy_dsy, fx)).ravel())

            self._values = background + signal * shape.ravel()
        self._jacobian = np.column_stack(columns)

    def eval(self, i: int) -> float:
        return float(self._values[i])

    def eval_with_gradient(self, i: int) -> tuple[float, np.ndarray]:
        return float(self._values[i]), self._jacobian[i].copy()

    def variance(self, i: int) -> float:
        return float(self._values[i] + self.noise_variance[i])

    def values(self, n: int) -> np.ndarray:
        return self._values[:n].copy()

    def values_with_gradient(self, n: int) -> tuple[np.ndarray, np.ndarray]:
        return self._values[:n].copy(), self._jacobian[:n].copy()

    def variances(self, n: int) -> np.ndarray:
        return self._values[:n] + self.noise_variance[:n]


class ErfGaussian2DFunction(Gaussian2DFunction):
    """Pixel-integrated 2D Gaussian using the error function.

    Each pixel's expected value is the Gaussian integrated over the pixel
    area, so the sum over an unbounded grid equals ``SIGNAL``.
    """

    def __init__(self, maxx: int, maxy: int, fit_mode: str = "free", noise_variance=None):
        super().__init__(maxx, maxy, fit_mode=fit_mode, noise_variance=noise_variance)
        self.name = f"erf_gaussian2d_{fit_mode}"

    def _axis_terms(self, centre: float, sd: float, length: int):
        # Pixel edges 0..length
        u = np.arange(length + 1) - centre
        scaled = u * (_ONE_OVER_ROOT2 / sd)
        cdf = 0.5 * erf(scaled)
        factor = np.diff(cdf)

        density = np.exp(-scaled * scaled) * (_ONE_OVER_ROOT2PI / sd)
        # d/dcentre Ex = density(lower edge) - density(upper edge)
        d_centre = density[:-1] - density[1:]
        # d/dsd Ex = [u_lo·density(lo) - u_hi·density(hi)] / sd
        weighted = u * density / sd
        d_sd = weighted[:-1] - weighted[1:]
        return factor, d_centre, d_sd


def create_function(
    maxx: int,
    maxy: int,
    fit_mode: str = "free",
    integrated: bool = True,
    noise_variance=None,
) -> Gaussian2DFunction:
    """Create a single-peak 2D Gaussian model.

    Args:
        maxx: Grid width in pixels
        maxy: Grid height in pixels
        fit_mode: One of ``"fixed"``, ``"circular"``, ``"free"``
        integrated: Use the pixel-integrated (erf) model
        noise_variance: Optional per-pixel read-noise variance

    Returns:
        The configured model.
    """
    cls = ErfGaussian2DFunction if integrated else Gaussian2DFunction
    function = cls(maxx, maxy, fit_mode=fit_mode, noise_variance=noise_variance)
    logger.debug(f"Created {function!r} on {maxx}x{maxy} grid")
    return function
