"""
Word-packed boolean vectors used as event masks.

Bits are stored in 32-bit words, most significant bit first: bit ``i`` lives
in word ``i // 32`` at position ``31 - i % 32``. Bits past ``count`` in the
last word are always zero; every operation that can touch them re-masks the
tail word.
"""

from enum import IntEnum

import numpy as np

WORD_BITS = 32
WORD_MAX = 0xFFFFFFFF

_ALL_ONES = np.uint32(WORD_MAX)

# Leading zeros of a 4-bit value
_NIBBLE_LEADING_ZEROS = (4, 3, 2, 2, 1, 1, 1, 1, 0, 0, 0, 0, 0, 0, 0, 0)


class Bit(IntEnum):
    ZERO = 0
    ONE = 1


# ----------------------------------------------------------------------
# Word-level helpers
# ----------------------------------------------------------------------

def _word_count(count):
    return (count + WORD_BITS - 1) // WORD_BITS


def _bit_mask(index):
    return 1 << (WORD_BITS - (index % WORD_BITS) - 1)


def _range_offsets(start, stop):
    """First word touched and one past the last word touched."""
    return start // WORD_BITS, (stop + WORD_BITS - 1) // WORD_BITS


def _range_masks(start, stop):
    """Masks selecting the in-range bits of the first and last word."""
    first = WORD_MAX >> (start % WORD_BITS)
    last = (WORD_MAX << ((WORD_BITS - stop % WORD_BITS) % WORD_BITS)) & WORD_MAX
    return first, last


def _tail_mask(count):
    return _range_masks(0, count)[1]


def popcount_words(words):
    """
    SWAR population count of every word in a uint32 array.

    Pairs of bits are counted by subtract-and-mask, then summed into nibbles
    and bytes; the final multiply gathers the byte sums into the top byte.
    """
    v = np.asarray(words, dtype=np.uint32)
    v = v - ((v >> np.uint32(1)) & np.uint32(0x55555555))
    v = (v & np.uint32(0x33333333)) + ((v >> np.uint32(2)) & np.uint32(0x33333333))
    v = (v + (v >> np.uint32(4))) & np.uint32(0x0F0F0F0F)
    return (v * np.uint32(0x01010101)) >> np.uint32(24)


def popcount(word):
    v = word - ((word >> 1) & 0x55555555)
    v = (v & 0x33333333) + ((v >> 2) & 0x33333333)
    return ((((v + (v >> 4)) & 0x0F0F0F0F) * 0x01010101) & WORD_MAX) >> 24


def leading_zeros(word):
    """
    Number of zeros above the most significant one bit of a 32-bit word.

    Narrows by halves, bytes and nibbles, then finishes with a lookup on the
    top nibble. Returns 32 for zero.
    """
    v = int(word) & WORD_MAX
    if v & 0xFFFF0000 == 0:
        c = 16
        v = (v << 16) & WORD_MAX
    else:
        c = 0
    if v & 0xFF000000 == 0:
        c += 8
        v = (v << 8) & WORD_MAX
    if v & 0xF0000000 == 0:
        c += 4
        v = (v << 4) & WORD_MAX
    return c + _NIBBLE_LEADING_ZEROS[v >> 28]


def trailing_zeros(word):
    """Number of zeros below the least significant one bit; 32 for zero."""
    v = int(word) & WORD_MAX
    lowest = v & (-v) & WORD_MAX
    return popcount((lowest - 1) & WORD_MAX)


def shift_words_left(words, shift):
    """
    Shift a word array left by ``shift`` bits (0 <= shift < 32), pulling the
    high bits of each following word into the vacated low bits.
    """
    if not 0 <= shift < WORD_BITS:
        raise ValueError(f"Shift must be in [0, {WORD_BITS}), got {shift}")
    words = np.asarray(words, dtype=np.uint32)
    if shift == 0:
        return words.copy()

    result = words << np.uint32(shift)
    result[:-1] |= words[1:] >> np.uint32(WORD_BITS - shift)
    return result


# ----------------------------------------------------------------------
# BitSet
# ----------------------------------------------------------------------

class BitSet:
    """
    A fixed-length vector of bits packed into 32-bit words.

    BitSets are plain values: binary operators return new instances, and the
    in-place operators and ``set``/``clear``/``flip`` mutate only ``self``.
    Use ``copy()`` before mutating a BitSet that other code holds on to.
    """

    __slots__ = ("_words", "_count")

    def __init__(self, count=0, value=Bit.ZERO):
        if count < 0:
            raise ValueError(f"BitSet count must be >= 0, got {count}")
        fill = WORD_MAX if Bit(value) is Bit.ONE else 0
        self._count = int(count)
        self._words = np.full(_word_count(self._count), fill, dtype=np.uint32)
        self._mask_tail()

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def zeros(cls, count):
        return cls(count, Bit.ZERO)

    @classmethod
    def ones(cls, count):
        return cls(count, Bit.ONE)

    @classmethod
    def from_words(cls, words, count):
        """
        Build a BitSet of ``count`` bits from packed words.

        Extra words are dropped, missing words are zero-filled, and stray bits
        past ``count`` are cleared.
        """
        if count < 0:
            raise ValueError(f"BitSet count must be >= 0, got {count}")
        src = np.asarray(words, dtype=np.uint32).ravel()
        n = _word_count(count)

        buf = np.zeros(n, dtype=np.uint32)
        k = min(n, src.size)
        buf[:k] = src[:k]
        return cls._wrap(buf, count)

    @classmethod
    def from_bytes(cls, values):
        """
        Build a BitSet from a sequence of small integers, one per bit.

        Each value contributes ``value % 2``.
        """
        arr = np.asarray(values, dtype=np.uint8).ravel()
        return cls.from_bool_array((arr % 2).astype(bool))

    @classmethod
    def from_bool_array(cls, mask):
        """Pack a boolean numpy array (or anything array-like) into words."""
        arr = np.asarray(mask, dtype=bool).ravel()
        count = arr.size
        packed = np.packbits(arr)
        padding = (-packed.size) % 4
        if padding:
            packed = np.concatenate([packed, np.zeros(padding, dtype=np.uint8)])
        words = packed.view(">u4").astype(np.uint32)
        return cls._wrap(words, count)

    @classmethod
    def _wrap(cls, words, count):
        bits = cls.__new__(cls)
        bits._words = words
        bits._count = int(count)
        bits._mask_tail()
        return bits

    def copy(self):
        return BitSet._wrap(self._words.copy(), self._count)

    # ------------------------------------------------------------------
    # Basic properties
    # ------------------------------------------------------------------

    @property
    def count(self):
        return self._count

    @property
    def words(self):
        """A copy of the packed word array."""
        return self._words.copy()

    def __len__(self):
        return self._count

    def __iter__(self):
        for value in self.to_bool_array():
            yield Bit.ONE if value else Bit.ZERO

    def __eq__(self, other):
        if not isinstance(other, BitSet):
            return NotImplemented
        return self._count == other._count and np.array_equal(self._words, other._words)

    __hash__ = None

    def __str__(self):
        return "".join("1" if v else "0" for v in self.to_bool_array())

    def __repr__(self):
        return f"BitSet(count={self._count}, cardinality={self.cardinality()})"

    def to_bool_array(self):
        raw = self._words.astype(">u4").view(np.uint8)
        return np.unpackbits(raw)[: self._count].astype(bool)

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    def _check_index(self, index):
        if not 0 <= index < self._count:
            raise IndexError(f"Bit index {index} out of range for BitSet of {self._count}")

    def _check_range(self, start, stop):
        if start < 0 or stop > self._count or start > stop:
            raise IndexError(
                f"Bit range [{start}, {stop}) out of range for BitSet of {self._count}"
            )

    def _bounds(self, bounds):
        if bounds is None:
            return 0, self._count
        if isinstance(bounds, range):
            if bounds.step != 1:
                raise ValueError("Bit ranges must have step 1")
            start, stop = bounds.start, bounds.stop
        else:
            start, stop = bounds
        self._check_range(start, stop)
        return start, stop

    def __getitem__(self, key):
        if isinstance(key, slice):
            if key.step not in (None, 1):
                raise ValueError("Bit slices must have step 1")
            start = 0 if key.start is None else key.start
            stop = self._count if key.stop is None else key.stop
            return self.subset(start, stop)

        index = int(key)
        self._check_index(index)
        word = int(self._words[index // WORD_BITS])
        return Bit.ONE if word & _bit_mask(index) else Bit.ZERO

    def __setitem__(self, index, bit):
        self.set_bit(index, bit)

    def subset(self, start, stop):
        """
        Return bits ``[start, stop)`` as a new BitSet.

        The covered words are shifted left by the start offset, so no bit is
        visited individually.
        """
        self._check_range(start, stop)
        a, b = _range_offsets(start, stop)
        shifted = shift_words_left(self._words[a:b], start % WORD_BITS)
        return BitSet.from_words(shifted, stop - start)

    def contains(self, bit):
        return self.index_of(bit) is not None

    def index_of(self, bit):
        """Index of the first bit equal to ``bit``, or ``None``."""
        if Bit(bit) is Bit.ONE:
            hits = np.flatnonzero(self._words)
            if hits.size == 0:
                return None
            k = int(hits[0])
            return k * WORD_BITS + leading_zeros(self._words[k])

        hits = np.flatnonzero(self._words != _ALL_ONES)
        if hits.size == 0:
            return None
        k = int(hits[0])
        v = k * WORD_BITS + leading_zeros(~int(self._words[k]) & WORD_MAX)
        # zero padding past ``count`` is not a real bit
        return v if v < self._count else None

    def last_index_of(self, bit):
        """Index of the last bit equal to ``bit``, or ``None``."""
        if self._count == 0:
            return None
        if Bit(bit) is Bit.ONE:
            candidates = self._words
        else:
            candidates = np.invert(self._words)
            candidates[-1] &= np.uint32(_tail_mask(self._count))

        hits = np.flatnonzero(candidates)
        if hits.size == 0:
            return None
        k = int(hits[-1])
        return k * WORD_BITS + WORD_BITS - 1 - trailing_zeros(candidates[k])

    def cardinality(self):
        """Number of one bits."""
        if self._words.size == 0:
            return 0
        return int(popcount_words(self._words).sum(dtype=np.int64))

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def set_bit(self, index, bit):
        if Bit(bit) is Bit.ONE:
            self.set(index)
        else:
            self.clear(index)

    def set(self, bounds=None):
        """Set one bit (``int``), a half-open ``range``, or every bit."""
        self._update(bounds, "set")

    def clear(self, bounds=None):
        """Clear one bit (``int``), a half-open ``range``, or every bit."""
        self._update(bounds, "clear")

    def flip(self, bounds=None):
        """Flip one bit (``int``), a half-open ``range``, or every bit."""
        self._update(bounds, "flip")

    def _update(self, bounds, op):
        if isinstance(bounds, (int, np.integer)) and not isinstance(bounds, bool):
            index = int(bounds)
            self._check_index(index)
            self._apply_word(index // WORD_BITS, _bit_mask(index), op)
            return

        start, stop = self._bounds(bounds)
        if stop - start <= 0:
            return
        a, b = _range_offsets(start, stop)
        m0, m1 = _range_masks(start, stop)

        if a == b - 1:
            self._apply_word(a, m0 & m1, op)
            return

        self._apply_word(a, m0, op)
        interior = self._words[a + 1 : b - 1]
        if op == "set":
            interior[:] = _ALL_ONES
        elif op == "clear":
            interior[:] = 0
        else:
            np.invert(interior, out=interior)
        self._apply_word(b - 1, m1, op)

    def _apply_word(self, offset, mask, op):
        word = int(self._words[offset])
        if op == "set":
            word |= mask
        elif op == "clear":
            word &= ~mask & WORD_MAX
        else:
            word ^= mask
        self._words[offset] = word

    def _mask_tail(self):
        if self._words.size:
            self._words[-1] &= np.uint32(_tail_mask(self._count))

    # ------------------------------------------------------------------
    # Bitwise operators
    # ------------------------------------------------------------------

    def _check_same_length(self, other):
        if not isinstance(other, BitSet):
            raise TypeError(f"Expected BitSet, got {type(other).__name__}")
        if other._count != self._count:
            raise ValueError(
                f"BitSet length mismatch: {self._count} vs {other._count}"
            )

    def __and__(self, other):
        self._check_same_length(other)
        return BitSet._wrap(self._words & other._words, self._count)

    def __or__(self, other):
        self._check_same_length(other)
        return BitSet._wrap(self._words | other._words, self._count)

    def __xor__(self, other):
        self._check_same_length(other)
        return BitSet._wrap(self._words ^ other._words, self._count)

    def __invert__(self):
        return BitSet._wrap(np.invert(self._words), self._count)

    def __iand__(self, other):
        self._check_same_length(other)
        np.bitwise_and(self._words, other._words, out=self._words)
        return self

    def __ior__(self, other):
        self._check_same_length(other)
        np.bitwise_or(self._words, other._words, out=self._words)
        return self

    def __ixor__(self, other):
        self._check_same_length(other)
        np.bitwise_xor(self._words, other._words, out=self._words)
        return self
