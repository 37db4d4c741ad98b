"""
Pytest configuration and fixtures for cadence tests.
"""

import pytest
import numpy as np
from cadence.core.tensor import Tensor


# Configure pytest markers
def pytest_configure(config):
    """Register custom pytest markers."""
    config.addinivalue_line("markers", "autograd: tests for autograd engine and operations")
    config.addinivalue_line("markers", "neural_network: tests for neural network layers")
    config.addinivalue_line("markers", "numerical: tests for numerical accuracy")
    config.addinivalue_line("markers", "integration: end to end training tests")
    config.addinivalue_line("markers", "slow: tests that take a long time to run")


# Common fixtures
@pytest.fixture
def simple_tensor():
    """Simple 2D tensor for testing."""
    return Tensor([[1.0, 2.0], [3.0, 4.0]], requires_grad=True)


@pytest.fixture
def random_tensor():
    """Random tensor for testing."""
    np.random.seed(42)
    return Tensor(np.random.randn(3, 4), requires_grad=True)


@pytest.fixture
def sequence():
    """(seq_len=4, batch=3, features=5) input sequence."""
    np.random.seed(7)
    return Tensor(np.random.randn(4, 3, 5), requires_grad=True)


@pytest.fixture
def tolerance():
    """Default numerical tolerance for testing."""
    return 1e-6


# Utility functions for tests
def assert_tensors_close(actual, expected, rtol=1e-7, atol=1e-8):
    """Assert that two tensors are close in value."""
    if isinstance(actual, Tensor):
        actual = actual.data
    if isinstance(expected, Tensor):
        expected = expected.data

    np.testing.assert_allclose(actual, expected, rtol=rtol, atol=atol)


def finite_difference_gradient(func, x, h=1e-5):
    """Central-difference gradient of a scalar-valued func at x."""
    grad = np.zeros_like(x.data)

    for i in range(x.data.size):
        flat_idx = np.unravel_index(i, x.shape)

        x_plus = x.data.copy()
        x_plus[flat_idx] += h
        f_plus = func(Tensor(x_plus))

        x_minus = x.data.copy()
        x_minus[flat_idx] -= h
        f_minus = func(Tensor(x_minus))

        grad[flat_idx] = (f_plus.item() - f_minus.item()) / (2 * h)

    return grad
