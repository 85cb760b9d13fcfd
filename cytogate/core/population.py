import numpy as np

from cytogate.core.bitset import BitSet
from cytogate.core.sample import Sample


class Population:
    """
    An immutable subset of a root sample's events.

    ``mask`` is ``None`` when every event of the root is included. A
    population is always described relative to its root sample: building one
    from a parent population intersects the parent's mask with the new one
    and keeps the parent's root.

    Args:
        source: the root ``Sample`` or a parent ``Population``
        mask: an optional ``BitSet`` with one bit per root event
    """

    __slots__ = ("_root", "_mask", "_count")

    def __init__(self, source, mask=None):
        if isinstance(source, Population):
            root = source.root
            parent_mask = source._mask
        elif isinstance(source, Sample):
            root = source
            parent_mask = None
        else:
            raise TypeError(
                f"Population source must be a Sample or Population, got {type(source).__name__}"
            )

        if mask is not None and mask.count != root.count:
            raise ValueError(
                f"Mask length {mask.count} does not match sample event count {root.count}"
            )

        if parent_mask is not None and mask is not None:
            combined = parent_mask & mask
        elif parent_mask is not None:
            combined = parent_mask
        elif mask is not None:
            combined = mask.copy()
        else:
            combined = None

        self._root = root
        self._mask = combined
        self._count = combined.cardinality() if combined is not None else root.count

    @property
    def root(self):
        return self._root

    @property
    def mask(self):
        """A copy of the membership mask, or ``None`` for the whole sample."""
        return None if self._mask is None else self._mask.copy()

    @property
    def count(self):
        return self._count

    @property
    def is_root(self):
        return self._mask is None

    def __len__(self):
        return self._count

    def __repr__(self):
        return f"Population(count={self._count}, total={self._root.count})"

    def to_bool_array(self):
        if self._mask is None:
            return np.ones(self._root.count, dtype=bool)
        return self._mask.to_bool_array()

    def events(self, dimension):
        """Values of one dimension for the member events only."""
        values = self._root[dimension]
        if self._mask is None:
            return values
        return values[self._mask.to_bool_array()]

    def fraction_of(self, other):
        """Share of ``other``'s events that fall in this population."""
        if other.count == 0:
            return 0.0
        return self._count / other.count
