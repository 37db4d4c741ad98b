import numpy as np
from cadence.core.tensor import Tensor, Function, _ensure_tensor
from cadence.core.exceptions import ShapeError

"""
Loss functions
"""

def _reduce(values: np.ndarray, reduction: str):
    if reduction == 'mean':
        return np.mean(values)
    if reduction == 'sum':
        return np.sum(values)
    if reduction == 'none':
        return values
    raise ValueError(f"Unknown reduction: {reduction}. Use 'mean', 'sum' or 'none'")


class MSELoss(Function):
    """
    Mean squared error
    L = reduce((y_pred - y_true)^2)
    """
    @staticmethod
    def forward(ctx, y_pred, y_true, reduction='mean'):
        if y_pred.shape != y_true.shape:
            raise ShapeError(
                "Prediction and target shapes differ",
                expected_shape=y_true.shape,
                actual_shape=y_pred.shape,
                operation="mse_loss",
                tensors=[y_pred, y_true]
            )
        diff = y_pred.data - y_true.data
        ctx.save_data(diff=diff, reduction=reduction)
        return Tensor(_reduce(diff ** 2, reduction))

    @staticmethod
    def backward(ctx, grad_output):
        diff = ctx.saved_data['diff']
        reduction = ctx.saved_data['reduction']

        grad = 2.0 * diff * grad_output.data
        if reduction == 'mean':
            grad = grad / diff.size

        # Target gradient is dropped by the engine unless the target requires grad
        return Tensor(grad), Tensor(-grad), None


def mse_loss(y_pred: Tensor, y_true: Tensor, reduction: str = 'mean') -> Tensor:
    """Convenience wrapper for MSE Loss"""
    return MSELoss.apply(_ensure_tensor(y_pred), _ensure_tensor(y_true), reduction)
