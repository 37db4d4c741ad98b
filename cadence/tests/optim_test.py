import unittest
import numpy as np

from cadence.core.tensor import Tensor
from cadence.core.optim import Adam
from cadence.core.loss import mse_loss
from cadence.core.nn.layers import Linear
from cadence.core.exceptions import OptimizerError


class TestAdam(unittest.TestCase):

    def test_first_step_moves_by_learning_rate(self):
        p = Tensor([1.0, -2.0, 0.5], requires_grad=True)
        optimizer = Adam([p], lr=0.1)

        (p * Tensor([3.0, -0.5, 0.01])).sum().backward()
        optimizer.step()

        # Bias-corrected moments reduce the first update to lr * sign(g)
        np.testing.assert_allclose(p.data, [0.9, -1.9, 0.4], atol=1e-6)

    def test_step_is_not_idempotent(self):
        p = Tensor([1.0], requires_grad=True)
        optimizer = Adam([p], lr=0.1)
        (p * 2).backward()

        optimizer.step()
        after_one = p.data.copy()
        optimizer.step()

        self.assertLess(p.data[0], after_one[0])
        self.assertEqual(optimizer.state[id(p)]['step'], 2)

    def test_zero_grad_clears_every_parameter(self):
        layer = Linear(3, 2)
        optimizer = Adam(layer.parameters())
        layer(Tensor(np.ones((4, 3)))).sum().backward()
        self.assertTrue(all(p.grad is not None for p in layer.parameters()))

        optimizer.zero_grad()
        self.assertTrue(all(p.grad is None for p in layer.parameters()))

    def test_parameters_without_gradient_are_skipped(self):
        used = Tensor([1.0], requires_grad=True)
        unused = Tensor([5.0], requires_grad=True)
        optimizer = Adam([used, unused], lr=0.1)

        (used * 3).backward()
        optimizer.step()

        self.assertEqual(unused.data[0], 5.0)
        self.assertNotIn(id(unused), optimizer.state)

    def test_fits_linear_regression(self):
        np.random.seed(0)
        X = Tensor(np.linspace(0, 1, 50).reshape(-1, 1))
        y = Tensor(2.0 * X.data + 3.0)
        model = Linear(1, 1)
        optimizer = Adam(model.parameters(), lr=0.05)

        for _ in range(2000):
            loss = mse_loss(model(X), y)
            optimizer.zero_grad()
            loss.backward()
            optimizer.step()

        self.assertLess(loss.item(), 1e-2)
        self.assertLess(abs(model.weight.data.item() - 2.0), 0.2)
        self.assertLess(abs(model.bias.data.item() - 3.0), 0.2)

    def test_invalid_hyperparameters(self):
        p = Tensor([1.0], requires_grad=True)
        for kwargs in (dict(lr=-1.0), dict(eps=-1e-8), dict(betas=(1.0, 0.999)),
                       dict(betas=(0.9, -0.1)), dict(weight_decay=-0.1)):
            with self.subTest(**{k: str(v) for k, v in kwargs.items()}):
                with self.assertRaises(OptimizerError):
                    Adam([p], **kwargs)

    def test_rejects_empty_and_non_leaf_parameters(self):
        with self.assertRaises(OptimizerError):
            Adam([])

        leaf = Tensor([1.0], requires_grad=True)
        with self.assertRaises(OptimizerError):
            Adam([leaf * 2])


if __name__ == "__main__":
    unittest.main()
