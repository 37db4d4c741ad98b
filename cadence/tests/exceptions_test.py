import pytest
import warnings
import numpy as np

from cadence.core.tensor import Tensor
from cadence.core.loss import mse_loss
from cadence.core.exceptions import *


class TestCadenceErrorBase:
    """Base error formatting and metadata"""

    def test_basic_error_creation(self):
        error = CadenceError("Test error message")
        assert "Test error message" in str(error)
        assert error.severity == ErrorSeverity.MEDIUM
        assert error.recoverable is False
        assert error.error_code is None

    def test_error_with_all_parameters(self):
        context = ErrorContext(operation="scan", tensor_shapes=[(3, 4)], layer_name="LSTM")
        error = CadenceError(
            "Complex error",
            severity=ErrorSeverity.HIGH,
            context=context,
            suggestion="Try this fix",
            error_code="TEST_001",
            recoverable=True
        )
        message = str(error)
        assert "HIGH" in message
        assert "Operation: scan" in message
        assert "Layer: LSTM" in message
        assert "Suggestion: Try this fix" in message
        assert "potentially recoverable" in message

    def test_to_dict(self):
        error = CadenceError("boom", error_code="X").add_context(operation="forward", step=3)
        data = error.to_dict()
        assert data["error_type"] == "CadenceError"
        assert data["context"]["operation"] == "forward"
        assert data["context"]["custom_context"] == {"step": 3}


class TestShapeError:

    def test_message_and_suggestion(self):
        error = ShapeError("bad input", expected_shape=(None, 4), actual_shape=(2, 5))
        assert error.error_code == "SHAPE_MISMATCH"
        assert "Expected shape (None, 4), got (2, 5)" in str(error)
        assert "Dimension(s) 1 differ" in error.suggestion

    def test_rank_suggestion(self):
        error = ShapeError("bad input", expected_shape=(None, None, 3), actual_shape=(2, 3))
        assert "2 dimensions where 3 are expected" in error.suggestion

    def test_hierarchy(self):
        assert issubclass(ShapeError, TensorError)
        assert issubclass(TensorError, CadenceError)
        assert issubclass(ConfigurationError, CadenceError)


class TestValidationHelpers:

    def test_validate_tensor_shape_wildcards(self):
        validate_tensor_shape(Tensor(np.zeros((2, 3))), (None, 3))
        with pytest.raises(ShapeError):
            validate_tensor_shape(Tensor(np.zeros((2, 3))), (2, 4))
        with pytest.raises(ShapeError):
            validate_tensor_shape(Tensor(np.zeros((2, 3))), (2, 3, 1))

    def test_validate_tensor_shape_requires_tensor(self):
        with pytest.raises(TensorError):
            validate_tensor_shape([1, 2, 3], (3,))

    def test_backend_unavailable(self):
        with pytest.raises(BackendError) as exc_info:
            validate_backend_available("CUDA", False)
        assert exc_info.value.error_code == "CUDA_ERROR"
        validate_backend_available("CUDA", True)

    def test_degenerate_input_warning(self):
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            warn_degenerate_input("empty sequence")
        assert caught[0].category is DegenerateInputWarning
        assert "empty sequence" in str(caught[0].message)


class TestLossErrors:

    def test_mse_shape_mismatch(self):
        with pytest.raises(ShapeError):
            mse_loss(Tensor(np.zeros((4, 1))), Tensor(np.zeros(4)))

    def test_mse_value_and_gradient(self):
        pred = Tensor([[1.0], [3.0]], requires_grad=True)
        loss = mse_loss(pred, Tensor([[0.0], [1.0]]))
        assert loss.item() == pytest.approx((1 + 4) / 2)
        loss.backward()
        np.testing.assert_allclose(pred.grad.data, [[1.0], [2.0]])

    def test_unknown_reduction(self):
        with pytest.raises(ValueError):
            mse_loss(Tensor([1.0]), Tensor([1.0]), reduction='max')
