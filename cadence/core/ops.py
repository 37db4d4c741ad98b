import numpy as np
from cadence.core.tensor import Function, Tensor, _ensure_tensor, Context
from typing import Tuple, Sequence
"""
Operations
"""

def _unbroadcast(grad: np.ndarray, shape: Tuple[int, ...]) -> np.ndarray:
    """Sum a broadcast gradient back down to the shape of the input it came from"""
    if grad.shape == tuple(shape):
        return grad
    extra_dims = grad.ndim - len(shape)
    if extra_dims > 0:
        grad = np.sum(grad, axis=tuple(range(extra_dims)))
    sum_dims = tuple(i for i, dim in enumerate(shape) if dim == 1 and grad.shape[i] != 1)
    if sum_dims:
        grad = np.sum(grad, axis=sum_dims, keepdims=True)
    return grad.reshape(shape)


class Transpose(Function):
    @staticmethod
    def forward(ctx: Context, tensor: Tensor) -> Tensor:
        # Swap the last two axes; vectors pass through unchanged
        if tensor.data.ndim < 2:
            return Tensor(tensor.data.copy())
        return Tensor(np.swapaxes(tensor.data, -1, -2).copy())

    @staticmethod
    def backward(ctx: Context, grad_output: Tensor) -> Tensor:
        if grad_output.data.ndim < 2:
            return grad_output
        return Tensor(np.swapaxes(grad_output.data, -1, -2).copy())

class Dropout(Function):
    @staticmethod
    def forward(ctx, tensor: Tensor, p: float, training: bool) -> Tensor:
        mask = None; keep_prob = 1.0 - p
        output_data = tensor.data
        if training and p > 0:
            if keep_prob == 0:
                mask = np.zeros_like(tensor.data)
                output_data = mask.copy()
            else:
                mask = (np.random.rand(*tensor.shape) < keep_prob).astype(tensor.data.dtype)
                output_data = (tensor.data * mask) / keep_prob
        ctx.save_data(mask=mask, keep_prob=keep_prob)
        return Tensor(output_data)

    @staticmethod
    def backward(ctx, grad_output: Tensor) -> Tensor:
        mask = ctx.saved_data['mask']
        keep_prob = ctx.saved_data['keep_prob']
        if mask is None:
            return Tensor(grad_output.data)
        if keep_prob == 0:
            return Tensor(np.zeros_like(grad_output.data))
        return Tensor((grad_output.data * mask) / keep_prob)

class Add(Function):
    @staticmethod
    def forward(ctx, a, b):
        ctx.save_data(a_shape=a.shape, b_shape=b.shape)
        return Tensor(a.data + b.data)

    @staticmethod
    def backward(ctx, grad_output):
        grad = grad_output.data
        return (Tensor(_unbroadcast(grad, ctx.saved_data['a_shape'])),
                Tensor(_unbroadcast(grad, ctx.saved_data['b_shape'])))

class Sub(Function):
    @staticmethod
    def forward(ctx, a, b):
        ctx.save_data(a_shape=a.shape, b_shape=b.shape)
        return Tensor(a.data - b.data)

    @staticmethod
    def backward(ctx, grad_output):
        grad = grad_output.data
        return (Tensor(_unbroadcast(grad, ctx.saved_data['a_shape'])),
                Tensor(_unbroadcast(-grad, ctx.saved_data['b_shape'])))

class Mul(Function):
    @staticmethod
    def forward(ctx, a, b):
        ctx.save_for_backwards(a, b)
        return Tensor(a.data * b.data)

    @staticmethod
    def backward(ctx, grad_output):
        a, b = ctx.saved_tensors
        grad = grad_output.data
        return (Tensor(_unbroadcast(grad * b.data, a.shape)),
                Tensor(_unbroadcast(grad * a.data, b.shape)))

class Div(Function):
    @staticmethod
    def forward(ctx, a, b):
        ctx.save_for_backwards(a, b)
        return Tensor(a.data / b.data)

    @staticmethod
    def backward(ctx, grad_output):
        a, b = ctx.saved_tensors
        grad = grad_output.data
        return (
            Tensor(_unbroadcast(grad / b.data, a.shape)),
            Tensor(_unbroadcast(-grad * a.data / (b.data ** 2), b.shape)),
        )

class Neg(Function):
    @staticmethod
    def forward(ctx, a):
        return Tensor(-a.data)

    @staticmethod
    def backward(ctx, grad_output):
        return Tensor(-grad_output.data)

class MatMul(Function):
    @staticmethod
    def forward(ctx, a, b):
        ctx.save_for_backwards(a, b)
        return Tensor(np.matmul(a.data, b.data))

    @staticmethod
    def backward(ctx, grad_output: Tensor) -> Tuple[Tensor, Tensor]:
        a, b = ctx.saved_tensors
        grad = grad_output.data

        # grad_a = grad_output @ b.T, grad_b = a.T @ grad_output, batched over leading dims
        grad_a = np.matmul(grad, np.swapaxes(b.data, -1, -2))
        grad_b = np.matmul(np.swapaxes(a.data, -1, -2), grad)

        return Tensor(_unbroadcast(grad_a, a.shape)), Tensor(_unbroadcast(grad_b, b.shape))

class Reshape(Function):
    @staticmethod
    def forward(ctx, tensor, shape):
        ctx.save_data(original_shape=tensor.shape)
        return Tensor(tensor.data.reshape(shape))

    @staticmethod
    def backward(ctx, grad_output):
        original_shape = ctx.saved_data['original_shape']
        return Tensor(grad_output.data.reshape(original_shape))

class Index(Function):
    """Basic indexing and slicing; the gradient is scattered back into a zero tensor"""
    @staticmethod
    def forward(ctx: Context, tensor: Tensor, key) -> Tensor:
        ctx.save_data(original_shape=tensor.shape, key=key, dtype=tensor.data.dtype)
        return Tensor(np.array(tensor.data[key], copy=True))

    @staticmethod
    def backward(ctx, grad_output: Tensor) -> Tensor:
        grad_input = np.zeros(ctx.saved_data['original_shape'], dtype=ctx.saved_data['dtype'])
        grad_input[ctx.saved_data['key']] += grad_output.data
        return Tensor(grad_input)

class Stack(Function):
    @staticmethod
    def forward(ctx, *tensors: Tensor, axis: int = 0) -> Tensor:
        if not tensors:
            raise ValueError("Cannot stack empty list")
        ctx.save_data(axis=axis, num_tensors=len(tensors))
        return Tensor(np.stack([t.data for t in tensors], axis=axis))

    @staticmethod
    def backward(ctx, grad_output: Tensor) -> Tuple[Tensor, ...]:
        axis = ctx.saved_data['axis']
        num_tensors = ctx.saved_data['num_tensors']
        return tuple(Tensor(np.take(grad_output.data, i, axis=axis)) for i in range(num_tensors))

def stack(tensors: Sequence[Tensor], axis: int = 0) -> Tensor:
    """Differentiable np.stack over a list of tensors"""
    return Stack.apply(*[_ensure_tensor(t) for t in tensors], axis=axis)

class Sum(Function):
    @staticmethod
    def forward(ctx, tensor, dim=None, keepdim=False):
        ctx.save_data(input_shape=tensor.shape, dim=dim, keepdim=keepdim)
        return Tensor(np.sum(tensor.data, axis=dim, keepdims=keepdim))

    @staticmethod
    def backward(ctx, grad_output):
        input_shape = ctx.saved_data['input_shape']
        dim = ctx.saved_data['dim']
        grad = grad_output.data
        if dim is not None and not ctx.saved_data['keepdim']:
            grad = np.expand_dims(grad, axis=dim)
        return Tensor(np.broadcast_to(grad, input_shape).copy())

class Mean(Function):
    @staticmethod
    def forward(ctx, a, dim=None, keepdim=False):
        ctx.save_data(dim=dim, keepdim=keepdim, input_shape=a.shape)
        return Tensor(np.mean(a.data, axis=dim, keepdims=keepdim))

    @staticmethod
    def backward(ctx, grad_output):
        dim = ctx.saved_data['dim']
        keepdim = ctx.saved_data['keepdim']
        input_shape = ctx.saved_data['input_shape']

        if dim is None:
            numel = int(np.prod(input_shape))
        elif isinstance(dim, int):
            numel = input_shape[dim]
        else:
            numel = int(np.prod([input_shape[d] for d in dim]))

        grad = grad_output.data / numel
        if not keepdim and dim is not None:
            grad = np.expand_dims(grad, axis=dim)
        return Tensor(np.broadcast_to(grad, input_shape).copy())

class Norm(Function):
    """Frobenius norm over all elements"""
    @staticmethod
    def forward(ctx, a):
        norm = np.sqrt(np.sum(a.data ** 2))
        ctx.save_for_backwards(a)
        ctx.save_data(norm=norm)
        return Tensor(norm)

    @staticmethod
    def backward(ctx, grad_output):
        a, = ctx.saved_tensors
        norm = ctx.saved_data['norm']
        if norm == 0:
            return Tensor(np.zeros_like(a.data))
        return Tensor(grad_output.data * a.data / norm)

class Pow(Function):
    @staticmethod
    def forward(ctx, a, power):
        ctx.save_for_backwards(a)
        ctx.save_data(power=power)
        return Tensor(np.power(a.data, power))

    @staticmethod
    def backward(ctx, grad_output):
        a, = ctx.saved_tensors
        power = ctx.saved_data['power']
        return Tensor(grad_output.data * power * np.power(a.data, power - 1))

class Abs(Function):
    @staticmethod
    def forward(ctx, a):
        ctx.save_for_backwards(a)
        return Tensor(np.abs(a.data))

    @staticmethod
    def backward(ctx, grad_output):
        a, = ctx.saved_tensors
        return Tensor(grad_output.data * np.sign(a.data))

class ReLU(Function):
    @staticmethod
    def forward(ctx, a):
        ctx.save_for_backwards(a)
        return Tensor(np.maximum(0, a.data))

    @staticmethod
    def backward(ctx, grad_output):
        a, = ctx.saved_tensors
        return Tensor(grad_output.data * (a.data > 0))

class Sigmoid(Function):
    """
    Forward: f(x) = 1 / (1 + exp(-x))
    Backward: f'(x) = f(x) * (1 - f(x))
    """
    @staticmethod
    def forward(ctx, a):
        # exp(-|x|) never overflows
        x = a.data
        exp_neg = np.exp(-np.abs(x))
        sig = np.where(x >= 0, 1 / (1 + exp_neg), exp_neg / (1 + exp_neg))
        ctx.save_data(sig=sig)
        return Tensor(sig)

    @staticmethod
    def backward(ctx, grad_output):
        sig = ctx.saved_data['sig']
        return Tensor(grad_output.data * sig * (1 - sig))

class Tanh(Function):
    """
    Forward: f(x) = tanh(x)
    Backward: f'(x) = 1 - tanh(x)^2
    """
    @staticmethod
    def forward(ctx, a):
        tanh_val = np.tanh(a.data)
        ctx.save_data(tanh_val=tanh_val)
        return Tensor(tanh_val)

    @staticmethod
    def backward(ctx, grad_output):
        tanh_val = ctx.saved_data['tanh_val']
        return Tensor(grad_output.data * (1 - tanh_val ** 2))
