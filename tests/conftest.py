import json
import os

import numpy as np
import pytest

from racetrack_nn.config import SimConfig
from racetrack_nn.evolution import SimulationState
from racetrack_nn.track import Track, default_track

DATA_DIR = os.path.join(os.path.dirname(__file__), "data")


def square_curve(x0, y0, x1, y1):
    """Closed axis-aligned square as four straight Bezier segments."""
    corners = [(x0, y0), (x1, y0), (x1, y1), (x0, y1)]
    segs = []
    for i, start in enumerate(corners):
        end = corners[(i + 1) % 4]
        cp1 = (start[0] + (end[0] - start[0]) / 3, start[1] + (end[1] - start[1]) / 3)
        cp2 = (start[0] + 2 * (end[0] - start[0]) / 3, start[1] + 2 * (end[1] - start[1]) / 3)
        segs.append({"start": list(start), "cp1": list(cp1), "cp2": list(cp2), "end": list(end)})
    return segs


class FixedGenome:
    """Stands in for NeuralNet with a constant action vector."""

    def __init__(self, outputs):
        self.outputs = list(outputs)
        self.calls = 0

    def predict(self, inputs):
        self.calls += 1
        return list(self.outputs)

    def copy(self):
        return FixedGenome(self.outputs)


@pytest.fixture
def rng():
    return np.random.default_rng(1234)


@pytest.fixture
def oval():
    return default_track()


@pytest.fixture
def rect_track_path():
    return os.path.join(DATA_DIR, "rect_track.json")


@pytest.fixture
def rect_track(rect_track_path):
    return Track.from_json(rect_track_path)


@pytest.fixture
def square_track_data():
    return {
        "curves": {
            "outer": square_curve(0, 0, 400, 400),
            "inner": square_curve(100, 100, 300, 300),
        },
        "checkpoints": [
            {"x": 50, "y": 200, "radius": 30},
            {"x": 200, "y": 50, "radius": 30},
            {"x": 350, "y": 200, "radius": 30},
            {"x": 200, "y": 350, "radius": 30},
        ],
    }


@pytest.fixture
def square_track(square_track_data):
    return Track.from_dict(square_track_data, name="square")


@pytest.fixture
def state(oval):
    return SimulationState(track=oval, config=SimConfig(laps=1, stagnation_limit=10))


@pytest.fixture
def write_json(tmp_path):
    def _write(data, name="track.json"):
        path = tmp_path / name
        path.write_text(json.dumps(data))
        return str(path)
    return _write
