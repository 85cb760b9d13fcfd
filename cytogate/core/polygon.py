"""
Two-dimensional polygon gates.

The polygon closes itself (the last vertex joins the first), its interior is
decided by the even-odd rule, and events on its boundary are inside.

Membership is computed for all events at once: the loops below walk the
vertices, and every step updates per-event state arrays. For one event the
walk is:

  1. Reject it if it lies outside the bounding box of the vertices.
  2. Translate the vertices so the event sits at the origin and cast a ray
     along the positive x-axis, counting edges that cross it.
  3. Vertices level with the event (translated y == 0) are skipped rather
     than treated as crossings. While skipping, an accumulator grows by the
     vertex count for a vertex on the positive side and shrinks by one for a
     vertex on the negative side. When the next off-axis vertex is reached,
     a positive accumulator that is not a multiple of the vertex count means
     the skipped run straddles the event, so the event lies on a horizontal
     edge; any other positive value counts as one crossing.
  4. A vertex at the event, or an edge passing through it, puts the event on
     the boundary.
"""

import numpy as np

from cytogate.core.bitset import BitSet
from cytogate.core.gates import Gate, GatingResult
from cytogate.core.population import Population


def points_in_polygon(vertices, x, y):
    """
    Boolean membership of points ``(x[i], y[i])`` in a closed polygon.

    Boundary points are inside. Points with a NaN coordinate are outside.
    Fewer than two vertices enclose nothing.
    """
    x = np.asarray(x, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)
    inside = np.zeros(x.shape, dtype=bool)

    v = np.asarray(vertices, dtype=np.float64).reshape(-1, 2)
    n = len(v)
    if n < 2 or x.size == 0:
        return inside
    vx, vy = v[:, 0], v[:, 1]

    # Bounding box; comparisons are False for NaN, so NaN events stay out
    candidate = (
        (x >= vx.min()) & (x <= vx.max()) & (y >= vy.min()) & (y <= vy.max())
    )
    idx = np.flatnonzero(candidate)
    if idx.size == 0:
        return inside
    px_ev, py_ev = x[idx], y[idx]
    m = idx.size

    decided = np.zeros(m, dtype=bool)
    result = np.zeros(m, dtype=bool)

    # ------------------------------------------------------------------
    # Pass 1: walk backwards from the last vertex to find, per event, the
    # last vertex not level with it
    # ------------------------------------------------------------------
    searching = np.ones(m, dtype=bool)
    skipped_tail = np.zeros(m, dtype=np.int64)
    last_off_axis = np.full(m, -1, dtype=np.int64)
    prev_x = np.full(m, np.nan)
    prev_y = np.full(m, np.nan)

    for k in range(n - 1, -1, -1):
        if not searching.any():
            break
        cx = vx[k] - px_ev
        cy = vy[k] - py_ev

        level = searching & (cy == 0)
        at_vertex = level & (cx == 0)
        result[at_vertex] = True
        decided[at_vertex] = True
        searching &= ~at_vertex

        level &= ~at_vertex
        skipped_tail[level] += np.where(cx[level] < 0, -1, n)

        found = searching & (cy != 0)
        last_off_axis[found] = k
        prev_x[found] = cx[found]
        prev_y[found] = cy[found]
        searching &= ~found

    # Every vertex is level with the event: it is inside only if it sits on
    # one of the horizontal edges
    all_level = searching & ~decided
    on_flat_edge = all_level & (skipped_tail > 0) & (skipped_tail % n > 0)
    result[on_flat_edge] = True
    decided[all_level] = True

    # ------------------------------------------------------------------
    # Pass 2: walk forwards up to that vertex, counting crossings of the
    # positive x-axis
    # ------------------------------------------------------------------
    first_found = np.zeros(m, dtype=bool)
    skipped = np.zeros(m, dtype=np.int64)
    crossings = np.zeros(m, dtype=np.int64)

    for i in range(n):
        active = ~decided & (i <= last_off_axis)
        if not active.any():
            break
        cx = vx[i] - px_ev
        cy = vy[i] - py_ev

        level = active & (cy == 0)
        at_vertex = level & (cx == 0)
        result[at_vertex] = True
        decided[at_vertex] = True

        level &= ~at_vertex
        skipped[level] += np.where(cx[level] < 0, -1, n)

        off = active & (cy != 0)
        first = off & ~first_found
        skipped[first] += skipped_tail[first]
        first_found |= first

        on_flat_edge = off & (skipped > 0) & (skipped % n > 0)
        result[on_flat_edge] = True
        decided[on_flat_edge] = True
        off &= ~on_flat_edge

        straddles = off & ((cy < 0) != (prev_y < 0))
        # Sign of (cy - py) * (px * cy - cx * py) says whether the edge from
        # the previous vertex meets the axis at positive x; zero means the
        # edge runs through the event. After a skipped run the previous
        # vertex is not adjacent, so there is no such edge to lie on.
        test = (cy - prev_y) * (prev_x * cy - cx * prev_y)

        through = straddles & (skipped == 0) & (test == 0)
        result[through] = True
        decided[through] = True

        counted = straddles & ~through & (((skipped == 0) & (test > 0)) | (skipped > 0))
        crossings[counted] += 1

        advance = off & ~through
        skipped[advance] = 0
        prev_x[advance] = cx[advance]
        prev_y[advance] = cy[advance]

    odd = ~decided & (crossings % 2 == 1)
    result[odd] = True

    inside[idx] = result
    return inside


class PolygonGate(Gate):
    """
    A polygon in exactly two dimensions.

    Args:
        dimensions: the x and y dimension names
        vertices: ``(x, y)`` pairs; edges join consecutive vertices and the
            last vertex back to the first
    """

    gate_type = "polygon"

    def __init__(self, dimensions, vertices, name=None):
        super().__init__(name)
        dimensions = tuple(dimensions)
        if len(dimensions) != 2:
            raise ValueError(f"PolygonGate needs exactly 2 dimensions, got {len(dimensions)}")

        # Rounded to the float32 grid of the event values, so events on an
        # edge compare equal to it
        verts = []
        for vertex in vertices:
            vx, vy = vertex
            verts.append((float(np.float32(vx)), float(np.float32(vy))))

        self._dimensions = dimensions
        self._vertices = tuple(verts)

    @property
    def dimensions(self):
        return self._dimensions

    @property
    def vertices(self):
        return self._vertices

    @property
    def bounds(self):
        """``((x_min, x_max), (y_min, y_max))``, or ``None`` without vertices."""
        if not self._vertices:
            return None
        xs = [v[0] for v in self._vertices]
        ys = [v[1] for v in self._vertices]
        return (min(xs), max(xs)), (min(ys), max(ys))

    def _evaluate(self, population):
        missing = self._missing_dimension(population)
        if missing is not None:
            return missing

        x = population.root[self._dimensions[0]]
        y = population.root[self._dimensions[1]]
        inside = points_in_polygon(self._vertices, x, y)
        return GatingResult.success(Population(population, BitSet.from_bool_array(inside)))
