import numpy as np
import uuid

from cadence.core.autograd_engine import is_grad_enabled, backward as _engine_backward
"""
Core Tensor class (with autograd)
Inspired by Torch
"""

class Context:
    def __init__(self):
        self.saved_tensors = ()
        self.saved_data = {}

    def save_for_backwards(self, *tensors):
        self.saved_tensors = tensors

    def save_data(self, **kwargs):
        self.saved_data.update(kwargs)


class Function:
    @staticmethod
    def forward(ctx, *args, **kwargs):
        raise NotImplementedError

    @staticmethod
    def backward(ctx, grad_output):
        raise NotImplementedError

    @classmethod
    def apply(cls, *args, **kwargs):
        ctx = Context()
        result = cls.forward(ctx, *args, **kwargs)

        devices = [arg.device for arg in args if isinstance(arg, Tensor)]
        if devices:
            result.device = devices[0]

        op_requires_grad = is_grad_enabled() and any(
            isinstance(arg, Tensor) and arg.requires_grad for arg in args
        )

        if op_requires_grad:
            result._backward_node = BackwardNode(cls, ctx, args)
            result.requires_grad = True
            result._is_leaf = False
            result._grad_fn = cls.__name__
        else:
            result.requires_grad = False
        return result


class BackwardNode:
    def __init__(self, fn_cls, ctx, inputs):
        self.fn_cls = fn_cls
        self.ctx = ctx
        self.inputs = inputs

    @property
    def next_functions(self):
        return [inp._backward_node for inp in self.inputs
                if isinstance(inp, Tensor) and inp.requires_grad and inp._backward_node]


class Tensor:
    def __init__(self, data, requires_grad=False, device=None, dtype=None):
        self.id = str(uuid.uuid4())
        if isinstance(data, Tensor):
            data = data.data
        if isinstance(data, np.ndarray):
            self.data = data if dtype is None else data.astype(dtype)
        else:
            self.data = np.array(data, dtype=dtype if dtype is not None else np.float64)

        self.requires_grad = requires_grad
        self.grad = None
        self._backward_node = None
        self.device = device or "cpu"

        self._is_leaf = True # user & parameter created tensors
        self._retain_grad = False
        self._grad_fn = None

    @classmethod
    def zeros(cls, *shape, requires_grad=False, device=None):
        if len(shape) == 1 and isinstance(shape[0], (list, tuple)):
            shape = shape[0]
        return cls(np.zeros(shape), requires_grad=requires_grad, device=device)

    @property
    def shape(self):
        return self.data.shape

    @property
    def dtype(self):
        return self.data.dtype

    @property
    def ndim(self):
        return self.data.ndim

    def dim(self):
        return self.data.ndim

    def size(self, dim=None):
        if dim is None:
            return self.data.shape
        return self.data.shape[dim]

    def numel(self):
        return int(self.data.size)

    def item(self):
        return self.data.item()

    def numpy(self):
        return self.data

    def to(self, device):
        """Move to a device; the engine validates device names in ExecutionContext"""
        self.device = device
        if self.grad is not None:
            self.grad.device = device
        return self

    def __len__(self):
        return len(self.data)

    def __repr__(self):
        grad_fn = f", grad_fn=<{self._grad_fn}>" if self._grad_fn else ""
        requires = ", requires_grad=True" if self.requires_grad and not self._grad_fn else ""
        return f"Tensor({self.data}{requires}{grad_fn})"

    def zero_grad(self):
        self.grad = None

    def dropout(self, p: float, training: bool):
        from cadence.core.ops import Dropout
        return Dropout.apply(self, p=p, training=training)

    # Tensor Detach stuff

    def detach(self):
        """
        Return a new tensor detached from computation graph
        Same data but does not require gradients
        """
        return Tensor(self.data.copy(), requires_grad=False, device=self.device)

    def detach_(self):
        """
        Inplace version
        Clears gradient and backward_node
        """
        self.requires_grad = False
        self._backward_node = None
        self.grad = None
        return self

    def clone(self):
        """New leaf tensor with the same data and grad requirement"""
        return Tensor(self.data.copy(), requires_grad=self.requires_grad, device=self.device)

    def retain_grad(self):
        """
        Gradient retention for non-leaf Tensors
        Leaf tensors (user created, parameters) always keep their gradients
        """
        self._retain_grad = True
        return self

    def backward(self, gradient=None, retain_graph=False):
        """
        Compute gradient of tensor w.r.t. graph leaves
        Args:
            gradient: Gradient of the current tensor (default=None, treated as 1.0 for scalars)
            retain_graph: If True, computation graph is kept for future backward calls
        """
        _engine_backward(self, gradient=gradient, retain_graph=retain_graph)

    # Operator overloads

    def __add__(self, other):
        from cadence.core.ops import Add
        return Add.apply(self, _ensure_tensor(other))

    def __radd__(self, other):
        from cadence.core.ops import Add
        return Add.apply(_ensure_tensor(other), self)

    def __sub__(self, other):
        from cadence.core.ops import Sub
        return Sub.apply(self, _ensure_tensor(other))

    def __rsub__(self, other):
        from cadence.core.ops import Sub
        return Sub.apply(_ensure_tensor(other), self)

    def __mul__(self, other):
        from cadence.core.ops import Mul
        return Mul.apply(self, _ensure_tensor(other))

    def __rmul__(self, other):
        from cadence.core.ops import Mul
        return Mul.apply(_ensure_tensor(other), self)

    def __truediv__(self, other):
        from cadence.core.ops import Div
        return Div.apply(self, _ensure_tensor(other))

    def __rtruediv__(self, other):
        from cadence.core.ops import Div
        return Div.apply(_ensure_tensor(other), self)

    def __neg__(self):
        from cadence.core.ops import Neg
        return Neg.apply(self)

    def __pow__(self, power):
        return self.pow(power)

    def __matmul__(self, other):
        return self.matmul(other)

    def __getitem__(self, key):
        from cadence.core.ops import Index
        return Index.apply(self, key=key)

    def matmul(self, other):
        from cadence.core.ops import MatMul
        return MatMul.apply(self, _ensure_tensor(other))

    def relu(self):
        from cadence.core.ops import ReLU
        return ReLU.apply(self)

    def sigmoid(self):
        from cadence.core.ops import Sigmoid
        return Sigmoid.apply(self)

    def tanh(self):
        from cadence.core.ops import Tanh
        return Tanh.apply(self)

    def pow(self, power):
        from cadence.core.ops import Pow
        return Pow.apply(self, power=power)

    def abs(self):
        from cadence.core.ops import Abs
        return Abs.apply(self)

    def reshape(self, *shape):
        from cadence.core.ops import Reshape
        if len(shape) == 1 and isinstance(shape[0], (list, tuple)):
            shape = shape[0]
        return Reshape.apply(self, shape=tuple(shape))

    view = reshape

    def transpose(self):
        from cadence.core.ops import Transpose
        return Transpose.apply(self)

    def t(self):
        return self.transpose()

    def chunk(self, chunks: int, dim: int = -1):
        """Split into equally sized views along dim"""
        dim = dim % self.ndim
        if self.shape[dim] % chunks != 0:
            raise ValueError(f"Dimension {dim} of size {self.shape[dim]} is not divisible into {chunks} chunks")
        step = self.shape[dim] // chunks
        pieces = []
        for i in range(chunks):
            key = [slice(None)] * self.ndim
            key[dim] = slice(i * step, (i + 1) * step)
            pieces.append(self[tuple(key)])
        return pieces

    def sum(self, dim=None, keepdim=False):
        from cadence.core.ops import Sum
        return Sum.apply(self, dim=dim, keepdim=keepdim)

    def mean(self, dim=None, keepdim=False):
        from cadence.core.ops import Mean
        return Mean.apply(self, dim=dim, keepdim=keepdim)

    def norm(self):
        from cadence.core.ops import Norm
        return Norm.apply(self)


def _ensure_tensor(data):
    if isinstance(data, Tensor):
        return data
    return Tensor(data)
