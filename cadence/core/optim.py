import numpy as np
from typing import Iterable, Tuple

from cadence.core.tensor import Tensor
from cadence.core.exceptions import OptimizerError

"""
Optimizers
"""

class OptimizerBase:
    """
    Base optimizer: owns per-parameter update state, never the parameters.

    Gradients accumulate on each parameter across backward passes until
    zero_grad() clears them; step() consumes whatever is accumulated.
    """

    def __init__(self, params, defaults):
        self.defaults = defaults
        self.state = {}
        self.param_groups = []

        params = list(params)
        if not params:
            raise OptimizerError("optimizer got an empty parameter list",
                                 optimizer_type=type(self).__name__)

        if all(isinstance(p, Tensor) for p in params):
            param_groups = [{'params': params}]
        else:
            param_groups = params

        for param_group in param_groups:
            self.add_param_group(param_group)

    def add_param_group(self, param_group):
        """Add a parameter group to the optimizer"""
        for key, value in self.defaults.items():
            param_group.setdefault(key, value)

        param_group['params'] = list(param_group['params'])
        for p in param_group['params']:
            if not isinstance(p, Tensor):
                raise OptimizerError(f"can only optimize Tensors, got {type(p).__name__}",
                                     optimizer_type=type(self).__name__)
            if not p._is_leaf:
                raise OptimizerError("can't optimize a non-leaf Tensor",
                                     optimizer_type=type(self).__name__)

        self.param_groups.append(param_group)

    @property
    def params(self):
        return [p for group in self.param_groups for p in group['params']]

    def zero_grad(self):
        """Clear gradients for all parameters"""
        for group in self.param_groups:
            for p in group['params']:
                p.zero_grad()

    def step(self):
        raise NotImplementedError

"""
Adam
https://arxiv.org/abs/1412.6980
"""

class Adam(OptimizerBase):
    """
    Implements Adam algorithm.

    Adam is a stochastic gradient-based optimization algorithm that uses
    adaptive estimation of first and second-order moments.
    """
    def __init__(self, params: Iterable[Tensor], lr: float = 0.001,
                 betas: Tuple[float, float] = (0.9, 0.999), eps: float = 1e-8,
                 weight_decay: float = 0):
        """
        Args:
            params: iterable of parameters to optimize
            lr: learning rate
            betas: coefficients used for computing running averages of gradient and its square
            eps: term added to the denominator to improve numerical stability
            weight_decay: weight decay (L2 penalty)
        """
        if lr < 0.0:
            raise OptimizerError(f"Invalid learning rate: {lr}", optimizer_type="Adam")
        if eps < 0.0:
            raise OptimizerError(f"Invalid epsilon value: {eps}", optimizer_type="Adam")
        if not 0.0 <= betas[0] < 1.0 or not 0.0 <= betas[1] < 1.0:
            raise OptimizerError(f"Invalid beta parameters: {betas}", optimizer_type="Adam")
        if weight_decay < 0.0:
            raise OptimizerError(f"Invalid weight_decay value: {weight_decay}", optimizer_type="Adam")

        defaults = dict(lr=lr, betas=betas, eps=eps, weight_decay=weight_decay)
        super().__init__(params, defaults)

    def step(self):
        """Performs a single optimization step."""
        for group in self.param_groups:
            beta1, beta2 = group['betas']

            for param in group['params']:
                if param.grad is None:
                    continue

                grad = param.grad.data

                if group['weight_decay'] != 0:
                    grad = grad + group['weight_decay'] * param.data

                param_id = id(param)
                if param_id not in self.state:
                    self.state[param_id] = {
                        'step': 0,
                        'exp_avg': np.zeros_like(param.data),
                        'exp_avg_sq': np.zeros_like(param.data)
                    }

                state = self.state[param_id]
                state['step'] += 1
                t = state['step']

                # Biased first and second raw moment estimates
                state['exp_avg'] = beta1 * state['exp_avg'] + (1 - beta1) * grad
                state['exp_avg_sq'] = beta2 * state['exp_avg_sq'] + (1 - beta2) * grad * grad

                bias_correction1 = 1 - beta1 ** t
                bias_correction2 = 1 - beta2 ** t

                exp_avg_corrected = state['exp_avg'] / bias_correction1
                exp_avg_sq_corrected = state['exp_avg_sq'] / bias_correction2

                param.data -= group['lr'] * exp_avg_corrected / (np.sqrt(exp_avg_sq_corrected) + group['eps'])
