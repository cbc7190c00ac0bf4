"""Protocol for Wiener first-passage density oracles.

The likelihood evaluator, the fitting engine and the quantile-probability
summarizer only talk to the density through this interface, so any
implementation (series expansions, numerical PDE solutions, lookup tables)
can be plugged in via their ``density=`` argument.
"""

from typing import Protocol, runtime_checkable

import numpy as np


@runtime_checkable
class WienerDensityProtocol(Protocol):
    """First-passage time distribution of the Wiener diffusion model.

    All methods are vectorized: arguments broadcast against each other.
    ``upper`` is a boolean (array) selecting the boundary; ``rt`` includes
    the residual time.
    """

    def log_density(
        self,
        rt: np.ndarray,
        upper: np.ndarray,
        a: np.ndarray,
        v: np.ndarray,
        w: np.ndarray,
        t0: np.ndarray,
        sv: np.ndarray = 0.0,
        sw: np.ndarray = 0.0,
        st0: np.ndarray = 0.0,
    ) -> np.ndarray:
        """Log of the joint density of (choice, RT); ``-inf`` where it is zero."""
        ...

    def density(
        self,
        rt: np.ndarray,
        upper: np.ndarray,
        a: np.ndarray,
        v: np.ndarray,
        w: np.ndarray,
        t0: np.ndarray,
        sv: np.ndarray = 0.0,
        sw: np.ndarray = 0.0,
        st0: np.ndarray = 0.0,
    ) -> np.ndarray:
        """Joint density of (choice, RT)."""
        ...

    def cdf(
        self,
        rt: np.ndarray,
        upper: np.ndarray,
        a: np.ndarray,
        v: np.ndarray,
        w: np.ndarray,
        t0: np.ndarray,
        sv: np.ndarray = 0.0,
        sw: np.ndarray = 0.0,
        st0: np.ndarray = 0.0,
    ) -> np.ndarray:
        """Defective CDF: P(choice, RT <= rt). Tends to the choice probability."""
        ...

    def choice_probability(
        self,
        upper: np.ndarray,
        a: np.ndarray,
        v: np.ndarray,
        w: np.ndarray,
        sv: np.ndarray = 0.0,
        sw: np.ndarray = 0.0,
    ) -> np.ndarray:
        """Probability of eventually reaching the selected boundary."""
        ...
