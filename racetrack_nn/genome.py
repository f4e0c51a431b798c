"""Fixed-topology feed-forward network used as the evolvable genome."""

import numpy as np

from .errors import DimensionMismatch
from .matrix import Matrix

MUTATION_STEP = 0.2
_default_rng = np.random.default_rng()


def sigmoid(x):
    return 1.0 / (1.0 + np.exp(-x))


class NeuralNet:
    """input -> hidden -> output, sigmoid on both layers.

    Only the four weight/bias matrices ever change; the topology is set once
    in the constructor.
    """

    def __init__(self, input_size, hidden_size, output_size, rng=None):
        self.input_size = input_size
        self.hidden_size = hidden_size
        self.output_size = output_size

        self.weights_ih = Matrix(hidden_size, input_size).randomize(rng)
        self.weights_ho = Matrix(output_size, hidden_size).randomize(rng)
        self.bias_h = Matrix(hidden_size, 1).randomize(rng)
        self.bias_o = Matrix(output_size, 1).randomize(rng)

    @property
    def topology(self):
        return (self.input_size, self.hidden_size, self.output_size)

    def matrices(self):
        return [self.weights_ih, self.weights_ho, self.bias_h, self.bias_o]

    def predict(self, inputs):
        if len(inputs) != self.input_size:
            raise DimensionMismatch(
                f"expected {self.input_size} inputs, got {len(inputs)}")
        x = Matrix.from_array(inputs)

        hidden = Matrix.multiply(self.weights_ih, x)
        hidden.add(self.bias_h)
        hidden.map(sigmoid, vectorized=True)

        outputs = Matrix.multiply(self.weights_ho, hidden)
        outputs.add(self.bias_o)
        outputs.map(sigmoid, vectorized=True)
        return outputs.to_array()

    def copy(self):
        new = NeuralNet.__new__(NeuralNet)
        new.input_size, new.hidden_size, new.output_size = self.topology
        new.weights_ih = self.weights_ih.copy()
        new.weights_ho = self.weights_ho.copy()
        new.bias_h = self.bias_h.copy()
        new.bias_o = self.bias_o.copy()
        return new

    def mutate(self, rate, rng=None):
        """Nudge each cell by U(-0.2, 0.2) with probability ``rate``."""
        rng = rng or _default_rng
        for m in self.matrices():
            mask = rng.random(m.shape) < rate
            noise = rng.uniform(-MUTATION_STEP, MUTATION_STEP, size=m.shape)
            m.data = np.where(mask, m.data + noise, m.data)
        return self

    @staticmethod
    def crossover(parent_a, parent_b, rng=None):
        """Row-wise single-point crossover.

        Every row of every matrix gets its own cut column ``c``: columns
        before ``c`` come from ``parent_a``, the rest from ``parent_b``.
        """
        if parent_a.topology != parent_b.topology:
            raise DimensionMismatch(
                f"cannot cross {parent_a.topology} with {parent_b.topology}")
        rng = rng or _default_rng
        child = parent_a.copy()
        for m_child, m_a, m_b in zip(child.matrices(), parent_a.matrices(), parent_b.matrices()):
            cuts = rng.integers(0, m_a.cols, size=m_a.rows)
            take_a = np.arange(m_a.cols)[None, :] < cuts[:, None]
            m_child.data = np.where(take_a, m_a.data, m_b.data)
        return child

    def save(self, path):
        np.savez(
            path,
            topology=np.array(self.topology),
            weights_ih=self.weights_ih.data,
            weights_ho=self.weights_ho.data,
            bias_h=self.bias_h.data,
            bias_o=self.bias_o.data,
        )

    @staticmethod
    def load(path):
        with np.load(path) as data:
            input_size, hidden_size, output_size = (int(v) for v in data["topology"])
            net = NeuralNet(input_size, hidden_size, output_size)
            for name in ("weights_ih", "weights_ho", "bias_h", "bias_o"):
                m = getattr(net, name)
                values = data[name]
                if values.shape != m.shape:
                    raise DimensionMismatch(
                        f"{name} has shape {values.shape}, expected {m.shape}")
                m.data = values.astype(np.float64)
        return net
