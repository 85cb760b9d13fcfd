import pytest
from pathlib import Path

from cytogate.core.sample import Sample


@pytest.fixture
def data_dir():
    return Path(__file__).resolve().parent / "data"


@pytest.fixture
def four_events():
    # X,Y = (1,1), (5,5), (9,1), (1,9)
    return Sample({"X": [1, 5, 9, 1], "Y": [1, 5, 1, 9]})


@pytest.fixture
def grid_sample():
    """Points on an integer grid 0..12 x 0..12."""
    xs, ys = [], []
    for x in range(13):
        for y in range(13):
            xs.append(x)
            ys.append(y)
    return Sample({"X": xs, "Y": ys})
