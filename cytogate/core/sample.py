import numpy as np
import pandas as pd
from pathlib import Path

from cytogate.utils.logging import log_info, log_warn


class Sample:
    """
    An immutable event table: one float32 array per dimension, all of the
    same length.

    Dimension names can be parameter short names, detector names, or
    fluorochrome names after compensation. CytoGate never rescales or
    compensates the values; whatever is stored here is what gates see.
    """

    def __init__(self, events, keywords=None, count=None):
        arrays = {}
        lengths = set()

        for name, values in events.items():
            arr = np.array(values, dtype=np.float32)
            if arr.ndim != 1:
                raise ValueError(
                    f"Dimension '{name}' must be one-dimensional, got shape {arr.shape}"
                )
            arr.setflags(write=False)
            arrays[str(name)] = arr
            lengths.add(arr.size)

        if len(lengths) > 1:
            detail = ", ".join(f"{k}={v.size}" for k, v in arrays.items())
            raise ValueError(f"All dimensions must have the same event count: {detail}")

        n = lengths.pop() if lengths else 0
        if count is not None and arrays and count != n:
            raise ValueError(f"Declared count {count} does not match event arrays ({n})")

        self._events = arrays
        self._count = n if arrays else int(count or 0)
        self._keywords = dict(keywords or {})

    @property
    def count(self):
        return self._count

    @property
    def dimensions(self):
        return tuple(self._events)

    @property
    def keywords(self):
        return dict(self._keywords)

    @property
    def events(self):
        return dict(self._events)

    def get(self, name, default=None):
        return self._events.get(name, default)

    def __getitem__(self, name):
        return self._events[name]

    def __contains__(self, name):
        return name in self._events

    def __len__(self):
        return self._count

    def __repr__(self):
        return f"Sample(count={self._count}, dimensions={list(self._events)})"

    def to_dataframe(self):
        return pd.DataFrame(self._events)


def _flatten_column(col):
    # flowkit frames use a (pnn, pns) MultiIndex
    if isinstance(col, tuple):
        return str(col[0])
    return str(col)


def sample_from_dataframe(df, keywords=None):
    """
    Build a Sample from a DataFrame, keeping only numeric columns.
    """
    events = {}
    for col in df.columns:
        name = _flatten_column(col)
        series = df[col]
        if not pd.api.types.is_numeric_dtype(series):
            log_warn(f"Skipping non-numeric column '{name}'")
            continue
        if name in events:
            log_warn(f"Duplicate column name '{name}'; keeping the first one")
            continue
        events[name] = series.to_numpy(dtype=np.float32)
    return Sample(events, keywords=keywords, count=len(df))


def load_sample(path, source="raw"):
    """
    Load an event table from disk.

    Supported:
      - .fcs       via flowkit (``source`` selects raw/comp/xform events)
      - .csv/.tsv  via pandas, one column per dimension
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Event file not found: {path}")

    suffix = path.suffix.lower()

    if suffix == ".fcs":
        import flowkit as fk

        fk_sample = fk.Sample(str(path))
        df = fk_sample.as_dataframe(source=source)
        sample = sample_from_dataframe(df, keywords=fk_sample.metadata)

    elif suffix in (".csv", ".tsv", ".txt"):
        sep = "," if suffix == ".csv" else "\t"
        df = pd.read_csv(path, sep=sep)
        sample = sample_from_dataframe(df)

    else:
        raise ValueError(f"Unsupported event file type: {path.suffix}")

    log_info(f"Loaded {sample.count} events x {len(sample.dimensions)} dimensions from {path}")
    return sample
