"""
Ellipsoid gates in two or more dimensions.

An event ``x`` is in the gate when its squared Mahalanobis distance from the
means is within the threshold::

    transpose(x - mu) * inverse(C) * (x - mu) <= D^2

The covariance matrix ``C`` is factored once at construction (``C = L L^T``);
gating whitens each mean-subtracted event by forward substitution with ``L``
and sums the squares of the result.
"""

import math

import numpy as np

from cytogate.core.bitset import BitSet
from cytogate.core.gates import Gate, GatingFailure, GatingResult
from cytogate.core.population import Population


def cholesky_lower(matrix):
    """
    Lower-triangular Cholesky factor of a symmetric positive-definite matrix,
    or ``None`` if the matrix is not one.
    """
    a = np.asarray(matrix, dtype=np.float64)
    if not np.all(np.isfinite(a)):
        return None
    if not np.allclose(a, a.T, rtol=1e-7, atol=0.0):
        return None
    try:
        return np.linalg.cholesky(a)
    except np.linalg.LinAlgError:
        return None


def forward_substitute(lower, rhs):
    """
    Solve ``lower @ b = rhs`` for ``b``.

    ``rhs`` has one row per dimension and one column per event, so each step
    works on every event at once.
    """
    d = lower.shape[0]
    b = np.empty_like(rhs)
    for k in range(d):
        acc = rhs[k].copy()
        for j in range(k):
            acc -= lower[k, j] * b[j]
        b[k] = acc / lower[k, k]
    return b


def ellipse_axes(covariances, distance_squared):
    """
    Semi-axis lengths and rotation (radians) of a 2-D ellipse gate, or
    ``(None, None)`` if the matrix is not symmetric positive-definite.

    The rotation of a circle is 0/0 and comes back as NaN.
    """
    a, b, c, d = (float(v) for v in covariances)
    tr = a + d
    det = a * d - b * c
    if not (b == c and tr > 0 and det > 0):
        return None, None

    spread = math.sqrt(tr * tr / 4 - det)
    l1 = tr / 2 + spread
    l2 = tr / 2 - spread
    half_axes = (math.sqrt(l1 * distance_squared), math.sqrt(l2 * distance_squared))
    with np.errstate(divide="ignore", invalid="ignore"):
        rotation = float(np.arctan(np.float64(c) / np.float64(l1 - d)))
    return half_axes, rotation


class EllipsoidGate(Gate):
    """
    An ellipsoid defined by a vector of means, a covariance matrix (row-major,
    ``d * d`` values) and a squared Mahalanobis distance.

    A covariance matrix that is not symmetric positive-definite is accepted,
    but every gating attempt then fails with
    ``GatingFailure.NON_POSITIVE_DEFINITE_COVARIANCE``.

    For two dimensions, ``half_axes`` and ``rotation`` describe the ellipse;
    they are informational and play no part in gating.
    """

    gate_type = "ellipsoid"

    def __init__(self, dimensions, means, covariances, distance_squared, name=None):
        super().__init__(name)
        dimensions = tuple(dimensions)
        means = np.array(means, dtype=np.float64).ravel()
        covariances = np.array(covariances, dtype=np.float64).ravel()
        d = len(dimensions)

        if d < 2:
            raise ValueError(f"EllipsoidGate needs at least 2 dimensions, got {d}")
        if means.size != d:
            raise ValueError(f"EllipsoidGate needs {d} means, got {means.size}")
        if covariances.size != d * d:
            raise ValueError(
                f"EllipsoidGate needs a {d}x{d} covariance matrix ({d * d} values), "
                f"got {covariances.size}"
            )

        means.setflags(write=False)
        covariances.setflags(write=False)
        self._dimensions = dimensions
        self._means = means
        self._covariances = covariances
        self._distance_squared = float(distance_squared)
        self._lower = cholesky_lower(covariances.reshape(d, d))

        if d == 2:
            self._half_axes, self._rotation = ellipse_axes(covariances, self._distance_squared)
        else:
            self._half_axes, self._rotation = None, None

    @property
    def dimensions(self):
        return self._dimensions

    @property
    def means(self):
        return self._means

    @property
    def covariances(self):
        return self._covariances

    @property
    def distance_squared(self):
        return self._distance_squared

    @property
    def is_positive_definite(self):
        return self._lower is not None

    @property
    def half_axes(self):
        return self._half_axes

    @property
    def rotation(self):
        return self._rotation

    def mahalanobis_squared(self, population):
        """Squared Mahalanobis distance of every root event."""
        if self._lower is None:
            raise ValueError(
                f"{self.describe()} has a covariance matrix that is not "
                f"symmetric positive-definite"
            )
        centered = np.vstack([
            population.root[dim].astype(np.float64) - mu
            for dim, mu in zip(self._dimensions, self._means)
        ])
        whitened = forward_substitute(self._lower, centered)
        return np.einsum("ij,ij->j", whitened, whitened)

    def _evaluate(self, population):
        if self._lower is None:
            return GatingResult.failed(GatingFailure.NON_POSITIVE_DEFINITE_COVARIANCE)

        missing = self._missing_dimension(population)
        if missing is not None:
            return missing

        inside = self.mahalanobis_squared(population) <= self._distance_squared
        return GatingResult.success(Population(population, BitSet.from_bool_array(inside)))
