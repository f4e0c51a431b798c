"""Batched genome inference on torch.

All genomes of one generation share a topology, so their matrices can be
stacked and evaluated in a single ``bmm`` per layer.
"""

import logging

import numpy as np
import torch

from .errors import DimensionMismatch

log = logging.getLogger(__name__)

_device = None


def setup_device():
    global _device
    if _device is None:
        if torch.cuda.is_available():
            log.info("GPU: %s", torch.cuda.get_device_name(0))
            _device = torch.device("cuda")
        else:
            log.info("CUDA not available, using CPU for batched inference")
            _device = torch.device("cpu")
    return _device


class BatchedBrains:
    """All genomes of a generation stacked for parallel inference."""

    def __init__(self, genomes, device=None):
        if not genomes:
            raise ValueError("BatchedBrains needs at least one genome")
        topologies = {g.topology for g in genomes}
        if len(topologies) != 1:
            raise DimensionMismatch(f"mixed genome topologies: {sorted(topologies)}")
        self.topology = topologies.pop()
        self.n = len(genomes)
        self.device = device or setup_device()

        def stack(name):
            arr = np.stack([getattr(g, name).data for g in genomes])
            return torch.as_tensor(arr, dtype=torch.float64, device=self.device)

        self.w_ih = stack("weights_ih")  # [n, hidden, input]
        self.w_ho = stack("weights_ho")  # [n, output, hidden]
        self.b_h = stack("bias_h")       # [n, hidden, 1]
        self.b_o = stack("bias_o")       # [n, output, 1]

    @torch.no_grad()
    def forward(self, inputs, alive_mask=None):
        """
        inputs: (n, input_size) array
        alive_mask: optional (n,) bool array, dead rows come back as zeros
        Returns: (n, output_size) numpy array
        """
        inputs = np.asarray(inputs, dtype=np.float64)
        input_size, _, output_size = self.topology
        if inputs.shape != (self.n, input_size):
            raise DimensionMismatch(
                f"expected inputs of shape {(self.n, input_size)}, got {inputs.shape}")

        if alive_mask is None:
            idx = np.arange(self.n)
        else:
            idx = np.where(np.asarray(alive_mask, dtype=bool))[0]
        result = np.zeros((self.n, output_size), dtype=np.float64)
        if len(idx) == 0:
            return result

        t_idx = torch.as_tensor(idx, device=self.device)
        x = torch.as_tensor(inputs[idx], device=self.device).unsqueeze(2)  # [k, input, 1]
        h = torch.sigmoid(torch.bmm(self.w_ih[t_idx], x) + self.b_h[t_idx])
        out = torch.sigmoid(torch.bmm(self.w_ho[t_idx], h) + self.b_o[t_idx])

        result[idx] = out.squeeze(2).cpu().numpy()
        return result
