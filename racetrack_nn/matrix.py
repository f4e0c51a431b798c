"""Dense 2D matrix used by the genome."""

import numpy as np

from .errors import DimensionMismatch

_default_rng = np.random.default_rng()


class Matrix:
    __slots__ = ['rows', 'cols', 'data']

    def __init__(self, rows, cols):
        self.rows = rows
        self.cols = cols
        self.data = np.zeros((rows, cols), dtype=np.float64)

    def __repr__(self):
        return f"Matrix({self.rows}x{self.cols})"

    @property
    def shape(self):
        return (self.rows, self.cols)

    def randomize(self, rng=None):
        """Fill every cell with a value drawn uniformly from [-1, 1]."""
        rng = rng or _default_rng
        self.data = rng.uniform(-1.0, 1.0, size=(self.rows, self.cols))
        return self

    @staticmethod
    def from_array(values):
        values = np.asarray(values, dtype=np.float64).ravel()
        m = Matrix(len(values), 1)
        m.data[:, 0] = values
        return m

    @staticmethod
    def from_rows(rows):
        data = np.array(rows, dtype=np.float64)
        if data.ndim != 2:
            raise DimensionMismatch(f"expected a 2D nested sequence, got {data.ndim}D")
        m = Matrix(*data.shape)
        m.data = data
        return m

    def to_array(self):
        return self.data.ravel().tolist()

    @staticmethod
    def multiply(a, b):
        if a.cols != b.rows:
            raise DimensionMismatch(
                f"cannot multiply {a.rows}x{a.cols} by {b.rows}x{b.cols}")
        result = Matrix(a.rows, b.cols)
        result.data = a.data @ b.data
        return result

    def add(self, other):
        """Elementwise add of a same-shaped matrix, or a scalar to every cell."""
        if isinstance(other, Matrix):
            if other.shape != self.shape:
                raise DimensionMismatch(
                    f"cannot add {other.rows}x{other.cols} to {self.rows}x{self.cols}")
            self.data += other.data
        else:
            self.data += float(other)
        return self

    def map(self, fn, vectorized=False):
        """Apply ``fn`` to every cell in place.

        ``vectorized`` marks functions that already accept whole arrays.
        """
        if vectorized or isinstance(fn, np.ufunc):
            self.data = fn(self.data)
        else:
            self.data = np.vectorize(fn, otypes=[np.float64])(self.data)
        return self

    def copy(self):
        m = Matrix(self.rows, self.cols)
        m.data = self.data.copy()
        return m
