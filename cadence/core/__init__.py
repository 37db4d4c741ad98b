from cadence.core.tensor import Tensor, Function
from cadence.core.autograd_engine import no_grad, enable_grad, is_grad_enabled, set_grad_enabled
from cadence.core.ops import stack
from cadence.core.device import ExecutionContext

__all__ = [
    'Tensor', 'Function', 'stack',
    'no_grad', 'enable_grad', 'is_grad_enabled', 'set_grad_enabled',
    'ExecutionContext',
]
