"""
Execution context: where tensors live and where random batches come from.

The numpy engine only computes on the CPU. Accelerator names are recognised
so callers get a BackendError instead of a silent CPU fallback.
"""
import numpy as np
from typing import Optional, Tuple

from cadence.core.tensor import Tensor
from cadence.core.exceptions import DeviceError, validate_backend_available

CPU_DEVICES = ("cpu",)
ACCELERATOR_BACKENDS = {"cuda": "CUDA", "metal": "Metal", "mps": "Metal"}


def _parse_device(device: str) -> str:
    name = str(device).lower()
    kind = name.split(":", 1)[0]
    if kind in CPU_DEVICES:
        return kind
    if kind in ACCELERATOR_BACKENDS:
        validate_backend_available(ACCELERATOR_BACKENDS[kind], False)
    raise DeviceError(
        f"Unknown device '{device}'",
        operation="ExecutionContext",
        suggestion=f"Supported devices: {', '.join(CPU_DEVICES)}"
    )


class ExecutionContext:
    """
    Single capability passed to module placement and batch generation

    Args:
        device: device name, 'cpu' for the numpy backend
        seed: seeds both the context generator (batches) and the global numpy
              RNG (parameter init and dropout masks)
    """

    def __init__(self, device: str = "cpu", seed: Optional[int] = None):
        self.device = _parse_device(device)
        self.seed = seed
        self.rng = np.random.default_rng(seed)
        if seed is not None:
            np.random.seed(seed)

    def __repr__(self):
        return f"ExecutionContext(device='{self.device}', seed={self.seed})"

    def place(self, module):
        """Move every parameter of a layer onto this context's device"""
        return module.to(self.device)

    def zeros(self, shape: Tuple[int, ...], requires_grad: bool = False) -> Tensor:
        return Tensor(np.zeros(shape), requires_grad=requires_grad, device=self.device)

    def bernoulli(self, shape: Tuple[int, ...], p: float = 0.5, requires_grad: bool = False) -> Tensor:
        """Independent 0/1 draws with P(1) = p, as float"""
        data = (self.rng.random(shape) < p).astype(np.float64)
        return Tensor(data, requires_grad=requires_grad, device=self.device)

    def tensor(self, data, requires_grad: bool = False) -> Tensor:
        return Tensor(data, requires_grad=requires_grad, device=self.device)
