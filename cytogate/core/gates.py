"""
Gates: predicates over event dimensions that derive sub-populations.

Every gate is an immutable value object. ``evaluate()`` returns a
``GatingResult`` that either carries the gated ``Population`` or names the
reason gating failed; ``masking()`` is the plain optional form. Failures that
depend on the data (a dimension missing from the sample, a covariance matrix
that is not positive-definite, an upstream gate failing) are reported this
way and never raised. Malformed gate parameters are rejected at construction
with ``ValueError``.
"""

import math
import operator
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import numpy as np

from cytogate.core.bitset import BitSet
from cytogate.core.population import Population
from cytogate.core.sample import Sample
from cytogate.utils.logging import get_logger

logger = get_logger(__name__)


class GatingFailure(Enum):
    MISSING_DIMENSION = "missing dimension"
    NON_POSITIVE_DEFINITE_COVARIANCE = "covariance matrix is not symmetric positive-definite"
    UPSTREAM_GATE_FAILURE = "referenced gate failed"


@dataclass(frozen=True)
class GatingResult:
    population: Optional[Population] = None
    failure: Optional[GatingFailure] = None
    detail: str = ""

    @classmethod
    def success(cls, population):
        return cls(population=population)

    @classmethod
    def failed(cls, failure, detail=""):
        return cls(failure=failure, detail=detail or failure.value)

    @property
    def ok(self):
        return self.failure is None

    def __bool__(self):
        return self.ok


def as_population(source):
    if isinstance(source, Population):
        return source
    if isinstance(source, Sample):
        return Population(source)
    raise TypeError(f"Cannot gate a {type(source).__name__}; expected Sample or Population")


class Gate(ABC):
    """
    Base class for all gates.

    Subclasses declare ``dimensions`` and implement ``_evaluate()`` against a
    ``Population``; sample wrapping, logging of failures and the optional
    ``masking()`` form are shared here.
    """

    gate_type = "gate"

    def __init__(self, name=None):
        self._name = name

    @property
    def name(self):
        return self._name

    @property
    @abstractmethod
    def dimensions(self):
        """Names of the dimensions this gate reads."""

    @abstractmethod
    def _evaluate(self, population):
        ...

    def evaluate(self, source):
        """Gate a ``Sample`` or ``Population`` and report how it went."""
        population = as_population(source)
        result = self._evaluate(population)
        if not result:
            logger.debug(f"{self.describe()} failed: {result.detail}")
        return result

    def masking(self, source):
        """Gated population, or ``None`` if gating failed."""
        return self.evaluate(source).population

    def describe(self):
        label = f"'{self._name}'" if self._name else "<unnamed>"
        return f"{self.gate_type} gate {label}"

    def __repr__(self):
        return f"{type(self).__name__}(name={self._name!r}, dimensions={list(self.dimensions)})"

    # ------------------------------------------------------------------
    # Helpers for subclasses
    # ------------------------------------------------------------------

    def _missing_dimension(self, population):
        missing = [d for d in self.dimensions if d not in population.root]
        if not missing:
            return None
        return GatingResult.failed(
            GatingFailure.MISSING_DIMENSION,
            f"dimension(s) {missing} not found in sample "
            f"(available: {list(population.root.dimensions)})",
        )


# ======================================================================
# RectangularGate
# ======================================================================

def _bound(value, default):
    if value is None:
        return default
    return float(value)


class RectangularGate(Gate):
    """
    An axis-aligned box in one or more dimensions.

    Each range is half-open, ``lo <= value < hi``. A ``None`` bound leaves
    that side open.
    """

    gate_type = "rectangle"

    def __init__(self, dimensions, ranges, name=None):
        super().__init__(name)
        dimensions = tuple(dimensions)
        ranges = tuple(ranges)
        if len(dimensions) != len(ranges):
            raise ValueError(
                f"RectangularGate needs one range per dimension "
                f"({len(dimensions)} dimensions, {len(ranges)} ranges)"
            )
        if not dimensions:
            raise ValueError("RectangularGate needs at least one dimension")

        bounds = []
        for dim, rng in zip(dimensions, ranges):
            lo, hi = rng
            lo, hi = _bound(lo, -math.inf), _bound(hi, math.inf)
            if lo > hi:
                raise ValueError(f"Range for '{dim}' has lower bound {lo} above upper bound {hi}")
            bounds.append((lo, hi))

        self._dimensions = dimensions
        self._ranges = tuple(bounds)

    @property
    def dimensions(self):
        return self._dimensions

    @property
    def ranges(self):
        return self._ranges

    def _evaluate(self, population):
        missing = self._missing_dimension(population)
        if missing is not None:
            return missing

        mask = None
        for dim, (lo, hi) in zip(self._dimensions, self._ranges):
            values = population.root[dim]
            inside = (values >= np.float32(lo)) & (values < np.float32(hi))
            bits = BitSet.from_bool_array(inside)
            if mask is None:
                mask = bits
            else:
                mask &= bits

        return GatingResult.success(Population(population, mask))


# ======================================================================
# BooleanGate
# ======================================================================

class Operation(Enum):
    NOT = "not"
    AND = "and"
    OR = "or"
    XOR = "xor"


_COMBINE = {
    Operation.AND: operator.and_,
    Operation.OR: operator.or_,
    Operation.XOR: operator.xor,
}


class BooleanGate(Gate):
    """
    A logical combination of other gates.

    ``NOT`` takes exactly one gate and subsets the population it is given:
    the complement is only meaningful relative to what was already being
    considered. ``AND``/``OR``/``XOR`` take two or more gates, evaluate each
    against the same input population, combine the resulting masks, and
    describe the result relative to the root sample so the input mask is not
    applied once per combined gate.
    """

    gate_type = "boolean"

    def __init__(self, operation, gates, name=None):
        super().__init__(name)
        operation = Operation(operation)
        gates = tuple(gates)
        if operation is Operation.NOT and len(gates) != 1:
            raise ValueError(f"A NOT gate references exactly one gate, got {len(gates)}")
        if operation is not Operation.NOT and len(gates) < 2:
            raise ValueError(
                f"An {operation.name} gate references at least two gates, got {len(gates)}"
            )
        for g in gates:
            if not isinstance(g, Gate):
                raise TypeError(f"BooleanGate operands must be gates, got {type(g).__name__}")

        self._operation = operation
        self._gates = gates

    @property
    def operation(self):
        return self._operation

    @property
    def gates(self):
        return self._gates

    @property
    def dimensions(self):
        seen = {}
        for g in self._gates:
            for d in g.dimensions:
                seen.setdefault(d, None)
        return tuple(seen)

    def _operand_mask(self, gate, population):
        result = gate.evaluate(population)
        if not result:
            return None, GatingResult.failed(
                GatingFailure.UPSTREAM_GATE_FAILURE,
                f"{gate.describe()} failed: {result.detail}",
            )
        mask = result.population.mask
        if mask is None:
            mask = BitSet.ones(population.root.count)
        return mask, None

    def _evaluate(self, population):
        mask, failure = self._operand_mask(self._gates[0], population)
        if failure is not None:
            return failure

        if self._operation is Operation.NOT:
            return GatingResult.success(Population(population, ~mask))

        combine = _COMBINE[self._operation]
        for gate in self._gates[1:]:
            other, failure = self._operand_mask(gate, population)
            if failure is not None:
                return failure
            mask = combine(mask, other)

        return GatingResult.success(Population(population.root, mask))
