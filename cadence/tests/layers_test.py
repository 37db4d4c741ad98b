import unittest
import pytest
import numpy as np

from cadence.core.tensor import Tensor
from cadence.core.nn.layers import Layer, Linear, Dropout, Container
from cadence.core.nn.recurrent import GRU
from cadence.core.nn import init
from conftest import assert_tensors_close


class TestLinear(unittest.TestCase):

    def test_forward(self):
        layer = Linear(3, 2)
        x = np.random.randn(4, 3)
        expected = x @ layer.weight.data.T + layer.bias.data
        assert_tensors_close(layer(Tensor(x)), expected)

    def test_init_bounds(self):
        layer = Linear(16, 8)
        bound = 1.0 / np.sqrt(16)
        self.assertTrue(np.all(np.abs(layer.weight.data) <= bound))
        self.assertTrue(np.all(np.abs(layer.bias.data) <= bound))

    def test_without_bias(self):
        layer = Linear(3, 2, bias=False)
        self.assertEqual(len(layer.parameters()), 1)
        assert_tensors_close(layer(Tensor(np.zeros((1, 3)))), np.zeros((1, 2)))


class TestContainer(unittest.TestCase):

    def build(self):
        container = Container()
        container.add(Linear(1, 4), 'l1')
        container.add(GRU(4, 4, num_layers=2, dropout=0.3), 'rnn')
        container.add(Linear(4, 1), 'lo')
        return container

    def test_parameters_in_registration_order(self):
        container = self.build()
        names = [name for name, _ in container.named_parameters()]
        self.assertEqual(names[:2], ['l1.weight', 'l1.bias'])
        self.assertEqual(names[2], 'rnn.cell_0.weight_ih')
        self.assertEqual(names[-2:], ['lo.weight', 'lo.bias'])
        self.assertEqual(len(container.parameters()), 2 + 8 + 2)

    def test_shared_parameter_listed_once(self):
        container = Container()
        shared = Linear(2, 2)
        container.add(shared, 'a')
        container.add(shared, 'b')
        self.assertEqual(len(container.parameters()), 2)

    def test_duplicate_name(self):
        container = self.build()
        with self.assertRaises(KeyError):
            container.add(Linear(1, 1), 'l1')

    def test_train_eval_propagate(self):
        container = self.build()
        container.eval()
        self.assertFalse(container.rnn.training)
        self.assertFalse(container.rnn.inter_layer_dropout.training)
        container.train()
        self.assertTrue(container.rnn.inter_layer_dropout.training)

    def test_zero_grad(self):
        container = self.build()
        x = Tensor(np.ones((3, 1)))
        container.lo(container.l1(x).tanh()).sum().backward()
        self.assertIsNotNone(container.l1.weight.grad)

        container.zero_grad()
        self.assertTrue(all(p.grad is None for p in container.parameters()))

    def test_repr_lists_children(self):
        text = repr(self.build())
        self.assertIn("(rnn): GRU(4, 4, num_layers=2, dropout=0.3", text)
        self.assertIn("(cell_1): GRUCell(4, 4, bias=True)", text)


def test_only_grad_tensors_become_parameters():
    layer = Layer()
    layer.weight = Tensor(np.ones(3), requires_grad=True)
    layer.constant = Tensor(np.ones(3))
    layer.register_buffer('running', Tensor(np.zeros(3)))
    assert [name for name, _ in layer.named_parameters()] == ['weight']

    del layer.weight
    assert layer.parameters() == []


def test_dropout_layer_validation():
    with pytest.raises(ValueError):
        Dropout(1.5)
    layer = Dropout(0.5).eval()
    x = Tensor(np.random.randn(3, 3))
    assert_tensors_close(layer(x), x)


def test_indexed_initialization():
    t = init.indexed_(Tensor.zeros(2, 3), lambda i, count: i / count)
    assert_tensors_close(t, np.arange(6).reshape(2, 3) / 6)

    layer = init.indexed_parameters_(Linear(2, 2), lambda i, count: count - i)
    assert_tensors_close(layer.weight, [[4, 3], [2, 1]])
    assert_tensors_close(layer.bias, [2, 1])

    init.zeros_(layer.bias)
    assert_tensors_close(layer.bias, [0, 0])
