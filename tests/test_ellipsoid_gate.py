import math

import numpy as np
import pytest

from cytogate.core.ellipsoid import EllipsoidGate, cholesky_lower, forward_substitute
from cytogate.core.gates import GatingFailure, RectangularGate
from cytogate.core.population import Population
from cytogate.core.sample import Sample


def test_unit_circle_membership_includes_boundary():
    sample = Sample({"X": [0, 2, 1, 0.5], "Y": [0, 0, 0, -0.5]})
    gate = EllipsoidGate(["X", "Y"], [0, 0], [1, 0, 0, 1], 1)
    assert str(gate.masking(sample).mask) == "1011"


def test_mahalanobis_matches_explicit_inverse():
    rng = np.random.default_rng(4)
    events = rng.normal(size=(3, 50)) * 5
    sample = Sample({"A": events[0], "B": events[1], "C": events[2]})
    means = [1.0, -2.0, 0.5]
    cov = np.array([[4.0, 1.0, 0.5], [1.0, 3.0, -0.4], [0.5, -0.4, 2.0]])
    gate = EllipsoidGate(["A", "B", "C"], means, cov.ravel(), 3.0)

    centered = np.vstack([sample[d].astype(np.float64) for d in "ABC"]) - np.array(means)[:, None]
    expected = np.einsum("ij,ik,kj->j", centered, np.linalg.inv(cov), centered)
    got = gate.mahalanobis_squared(gate.masking(sample))
    assert got == pytest.approx(expected, rel=1e-9)

    pop = gate.masking(sample)
    assert pop.to_bool_array().tolist() == (expected <= 3.0).tolist()


def test_three_dimensional_gate():
    sample = Sample({"X": [1, 2], "Y": [1, 1], "Z": [1, 0]})
    gate = EllipsoidGate(["X", "Y", "Z"], [0, 0, 0], np.eye(3).ravel(), 4)
    assert str(gate.masking(sample).mask) == "10"
    assert gate.half_axes is None
    assert gate.rotation is None


def test_ellipsoid_gates_within_parent(grid_sample):
    parent = RectangularGate(["X"], [(6, None)]).masking(grid_sample)
    gate = EllipsoidGate(["X", "Y"], [6, 6], [1, 0, 0, 1], 1)
    # (6,6), (6,5), (6,7) and (7,6) survive; (5,6) is outside the parent
    assert gate.masking(parent).count == 4


# -----------------------------
# Covariance checks
# -----------------------------
def test_asymmetric_covariance_fails_gating():
    gate = EllipsoidGate(["X", "Y"], [0, 0], [1, 2, 3, 4], 1)
    assert not gate.is_positive_definite
    result = gate.evaluate(Sample({"X": [0.0], "Y": [0.0]}))
    assert result.population is None
    assert result.failure is GatingFailure.NON_POSITIVE_DEFINITE_COVARIANCE
    assert gate.half_axes is None


def test_mahalanobis_needs_positive_definite_covariance():
    gate = EllipsoidGate(["X", "Y"], [0, 0], [1, 2, 2, 1], 1)
    with pytest.raises(ValueError, match="positive-definite"):
        gate.mahalanobis_squared(Population(Sample({"X": [0.0], "Y": [0.0]})))


def test_indefinite_covariance_fails_before_dimension_lookup():
    gate = EllipsoidGate(["X", "Q"], [0, 0], [1, 2, 2, 1], 1)
    result = gate.evaluate(Sample({"X": [0.0]}))
    assert result.failure is GatingFailure.NON_POSITIVE_DEFINITE_COVARIANCE


def test_missing_dimension():
    gate = EllipsoidGate(["X", "Q"], [0, 0], [1, 0, 0, 1], 1)
    result = gate.evaluate(Sample({"X": [0.0]}))
    assert result.failure is GatingFailure.MISSING_DIMENSION
    assert gate.masking(Sample({"X": [0.0]})) is None


def test_cholesky_and_forward_substitution():
    a = np.array([[4.0, 2.0], [2.0, 3.0]])
    lower = cholesky_lower(a)
    assert lower @ lower.T == pytest.approx(a)
    rhs = np.array([[2.0, 4.0], [1.0, -1.0]])
    b = forward_substitute(lower, rhs)
    assert lower @ b == pytest.approx(rhs)

    assert cholesky_lower([[1.0, 0.0], [0.0, -1.0]]) is None
    assert cholesky_lower([[1.0, np.nan], [np.nan, 1.0]]) is None


@pytest.mark.parametrize(
    "means, covariances",
    [([0], [1]), ([0, 0, 0], [1, 0, 0, 1]), ([0, 0], [1, 0, 0])],
)
def test_shape_errors(means, covariances):
    dims = ["X"] if len(covariances) == 1 else ["X", "Y"]
    with pytest.raises(ValueError):
        EllipsoidGate(dims, means, covariances, 1)


# -----------------------------
# Ellipse geometry
# -----------------------------
def test_axis_aligned_ellipse():
    gate = EllipsoidGate(["X", "Y"], [0, 0], [400, 0, 0, 306.25], 100)
    assert gate.half_axes == pytest.approx((200.0, 175.0))
    assert gate.rotation == 0.0


def test_rotated_ellipse():
    gate = EllipsoidGate(["X", "Y"], [0, 0], [1134.5, -234.5, -234.5, 1134.5], 1)
    assert gate.half_axes == pytest.approx((37.0, 30.0))
    assert gate.rotation == pytest.approx(-math.pi / 4)


def test_circle_has_undefined_rotation():
    gate = EllipsoidGate(["X", "Y"], [0, 0], [1, 0, 0, 1], 0.2)
    assert gate.half_axes == pytest.approx((math.sqrt(0.2), math.sqrt(0.2)))
    assert math.isnan(gate.rotation)
