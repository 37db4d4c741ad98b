"""
Custom exceptions
"""
import traceback
import threading
import time
import warnings
from enum import Enum
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any, Tuple


class ErrorSeverity(Enum):
    """Error severity levels"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

@dataclass
class ErrorContext:
    """Context information for errors"""
    operation: Optional[str] = None
    tensor_shapes: List[Tuple] = field(default_factory=list)
    tensor_devices: List[str] = field(default_factory=list)
    layer_name: Optional[str] = None
    batch_size: Optional[int] = None
    custom_context: Dict[str, Any] = field(default_factory=dict)

class CadenceError(Exception):
    """
    Base exception class for the cadence framework

    Carries severity, context and a suggestion, all folded into the message
    """

    def __init__(self, message: str,
                 severity: ErrorSeverity = ErrorSeverity.MEDIUM,
                 context: Optional[ErrorContext] = None,
                 suggestion: Optional[str] = None,
                 error_code: Optional[str] = None,
                 cause: Optional[Exception] = None,
                 recoverable: bool = False):
        self.message = message
        self.severity = severity
        self.context = context or ErrorContext()
        self.suggestion = suggestion
        self.error_code = error_code
        self.cause = cause
        self.recoverable = recoverable
        self.timestamp = time.time()
        self.thread_id = threading.get_ident()

        self.stack_trace = traceback.format_stack()[:-1]

        super().__init__(self._format_message())

    def _format_message(self) -> str:
        lines = [f"Cadence {self.severity.value.upper()} Error: {self.message}"]

        if self.error_code:
            lines.append(f"Error Code: {self.error_code}")

        ctx = self.context
        if ctx.operation or ctx.layer_name or ctx.tensor_shapes or ctx.batch_size:
            lines.append("\nContext Information:")
            if ctx.operation:
                lines.append(f"  Operation: {ctx.operation}")
            if ctx.layer_name:
                lines.append(f"  Layer: {ctx.layer_name}")
            if ctx.tensor_shapes:
                lines.append(f"  Tensor Shapes: {ctx.tensor_shapes}")
            if ctx.tensor_devices:
                lines.append(f"  Tensor Devices: {ctx.tensor_devices}")
            if ctx.batch_size:
                lines.append(f"  Batch Size: {ctx.batch_size}")

        if self.suggestion:
            lines.append(f"\nSuggestion: {self.suggestion}")

        if self.cause:
            lines.append(f"\nCaused by: {type(self.cause).__name__}: {self.cause}")

        if self.recoverable:
            lines.append("\nThis error is potentially recoverable.")

        return "\n".join(lines)

    def add_context(self, **kwargs):
        """Add additional context to the error"""
        for key, value in kwargs.items():
            if hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.custom_context[key] = value
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "severity": self.severity.value,
            "error_code": self.error_code,
            "timestamp": self.timestamp,
            "recoverable": self.recoverable,
            "context": {
                "operation": self.context.operation,
                "tensor_shapes": self.context.tensor_shapes,
                "layer_name": self.context.layer_name,
                "batch_size": self.context.batch_size,
                "custom_context": self.context.custom_context
            },
            "suggestion": self.suggestion,
            "cause": str(self.cause) if self.cause else None
        }

# Tensor-related exceptions
class TensorError(CadenceError):
    """Base class for tensor-related errors"""

    def __init__(self, message: str, tensors: List = None, operation: str = None, **kwargs):
        context = kwargs.get('context') or ErrorContext()
        if operation:
            context.operation = operation
        if tensors:
            context.tensor_shapes = [getattr(t, 'shape', None) for t in tensors]
            context.tensor_devices = [getattr(t, 'device', 'unknown') for t in tensors]

        kwargs['context'] = context
        super().__init__(message, **kwargs)

class ShapeError(TensorError):
    """Shape mismatch between tensors, or between a tensor and a layer configuration"""

    def __init__(self, message: str, expected_shape=None, actual_shape=None,
                 operation: str = None, **kwargs):
        self.expected_shape = expected_shape
        self.actual_shape = actual_shape

        if expected_shape is not None and actual_shape is not None:
            shape_msg = f"Expected shape {tuple(expected_shape)}, got {tuple(actual_shape)}"
            message = f"{message}. {shape_msg}" if message else shape_msg
            kwargs.setdefault('suggestion', self._generate_shape_suggestion(expected_shape, actual_shape))

        kwargs.setdefault('error_code', 'SHAPE_MISMATCH')
        super().__init__(message, operation=operation, **kwargs)

    def _generate_shape_suggestion(self, expected, actual) -> str:
        if len(expected) != len(actual):
            return (f"Tensor has {len(actual)} dimensions where {len(expected)} are expected; "
                    f"reshape it or check the argument order")

        mismatched = [i for i, (e, a) in enumerate(zip(expected, actual)) if e is not None and e != a]
        if mismatched:
            dims = ", ".join(str(i) for i in mismatched)
            return f"Dimension(s) {dims} differ; check the layer configuration against the input"
        return "Check tensor dimensions and reshape if necessary"

class DeviceError(TensorError):
    """Device placement and movement errors"""

    def __init__(self, message: str, expected_device=None, actual_device=None, operation: str = None, **kwargs):
        self.expected_device = expected_device
        self.actual_device = actual_device

        if expected_device and actual_device:
            message = f"{message}. Expected device {expected_device}, got {actual_device}"
            kwargs.setdefault('suggestion',
                f"Use .to('{expected_device}') to move tensor to correct device")

        kwargs.setdefault('error_code', 'DEVICE_MISMATCH')
        super().__init__(message, operation=operation, **kwargs)

class GradientError(TensorError):
    """Gradient computation errors"""

    def __init__(self, message: str, operation: str = None, **kwargs):
        kwargs.setdefault('error_code', 'GRADIENT_ERROR')
        kwargs.setdefault('suggestion',
            "Check that tensors require gradients and the computation graph is valid")
        super().__init__(message, operation=operation, **kwargs)

class BackendError(CadenceError):
    """Requested execution backend is missing"""

    def __init__(self, message: str, backend: str = None, **kwargs):
        self.backend = backend
        if backend:
            message = f"{backend} backend error: {message}"

        kwargs.setdefault('error_code', f'{backend.upper()}_ERROR' if backend else 'BACKEND_ERROR')
        super().__init__(message, **kwargs)

# Model and layer exceptions
class ConfigurationError(CadenceError):
    """Invalid layer configuration, raised at construction time"""

    def __init__(self, message: str, layer_type: str = None, field_name: str = None, **kwargs):
        self.layer_type = layer_type
        self.field_name = field_name

        context = kwargs.get('context') or ErrorContext()
        context.layer_name = layer_type
        if field_name:
            context.custom_context['field'] = field_name
        kwargs['context'] = context

        if layer_type:
            message = f"Invalid {layer_type} configuration: {message}"

        kwargs.setdefault('error_code', 'CONFIGURATION_ERROR')
        super().__init__(message, **kwargs)

class OptimizerError(CadenceError):
    """Optimizer-related errors"""

    def __init__(self, message: str, optimizer_type: str = None, **kwargs):
        self.optimizer_type = optimizer_type

        if optimizer_type:
            message = f"{optimizer_type} optimizer error: {message}"

        kwargs.setdefault('suggestion',
            "Check learning rate and other hyperparameters; pass model.parameters() to the optimizer")
        kwargs.setdefault('error_code', 'OPTIMIZER_ERROR')
        super().__init__(message, **kwargs)

class DegenerateInputWarning(UserWarning):
    """Input that yields an empty result, e.g. a sequence with no time steps"""
    pass

# Validation and utility functions
def validate_tensor_shape(tensor, expected_shape, operation_name="operation"):
    """
    Validate tensor has expected shape. None in expected_shape matches any size
    """
    if not hasattr(tensor, 'shape'):
        raise TensorError("Object is not a tensor", operation=operation_name)

    actual = tuple(tensor.shape)
    expected = tuple(expected_shape)
    matches = len(actual) == len(expected) and all(
        e is None or e == a for e, a in zip(expected, actual)
    )
    if not matches:
        raise ShapeError(
            f"{operation_name} shape validation failed",
            expected_shape=expected,
            actual_shape=actual,
            operation=operation_name,
            tensors=[tensor]
        )

def validate_backend_available(backend_name, available):
    """Validate backend is available with installation instructions"""
    if not available:
        suggestions = {
            "CUDA": "This engine only ships the numpy CPU backend; use ExecutionContext('cpu')",
            "Metal": "This engine only ships the numpy CPU backend; use ExecutionContext('cpu')",
        }

        raise BackendError(
            f"{backend_name} backend not available",
            backend=backend_name,
            suggestion=suggestions.get(backend_name, f"Install {backend_name} dependencies"),
            severity=ErrorSeverity.HIGH
        )

# Warning system
def warn_degenerate_input(message: str, stacklevel=3):
    """Issue a degenerate-input warning pointing at the caller of the layer"""
    warnings.warn(message, category=DegenerateInputWarning, stacklevel=stacklevel)
