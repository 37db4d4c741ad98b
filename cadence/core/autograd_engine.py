import numpy as np
import threading

from cadence.core.exceptions import GradientError

class AutogradEngine:
    """
    Process-wide reverse-mode engine. Holds the grad-enabled flag and runs
    backward passes over the graph recorded by Function.apply
    """
    _instance = None
    _lock = threading.Lock()

    def __new__(cls):
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        if hasattr(self, '_initialized'):
            return

        self.enabled = True
        self._initialized = True

    def no_grad(self):
        return NoGradContext()

    def enable_grad(self):
        return EnableGradContext()

    def backward(self, root_tensor, gradient=None, retain_graph=False):
        if not root_tensor.requires_grad:
            return

        if gradient is None:
            if root_tensor.data.size != 1:
                raise GradientError(
                    "Gradient must be specified for non-scalar tensors used as roots",
                    operation="backward",
                    tensors=[root_tensor]
                )
            gradient = np.ones_like(root_tensor.data)
        elif hasattr(gradient, 'data'):
            gradient = np.array(gradient.data, dtype=root_tensor.data.dtype)
        else:
            gradient = np.array(gradient, dtype=root_tensor.data.dtype)

        if gradient.shape != root_tensor.shape:
            raise GradientError(
                f"Gradient shape {gradient.shape} does not match root shape {root_tensor.shape}",
                operation="backward",
                tensors=[root_tensor]
            )

        topo_order = self._build_topological_order(root_tensor)
        gradients = {id(root_tensor): gradient}
        for tensor in reversed(topo_order):
            self._execute_node_backward(tensor, gradients)

        self._assign_leaf_gradients(topo_order, gradients)

        if not retain_graph:
            self._cleanup_graph(topo_order)

    def _build_topological_order(self, root_tensor):
        """Post-order over tensors; iterative so long unrolled sequences do not recurse"""
        from cadence.core.tensor import Tensor

        visited = set()
        topo_order = []
        stack = [(root_tensor, False)]

        while stack:
            tensor, expanded = stack.pop()
            if expanded:
                topo_order.append(tensor)
                continue
            if id(tensor) in visited:
                continue
            visited.add(id(tensor))
            stack.append((tensor, True))

            node = tensor._backward_node
            if node is not None:
                for input_tensor in node.inputs:
                    if isinstance(input_tensor, Tensor) and input_tensor.requires_grad \
                            and id(input_tensor) not in visited:
                        stack.append((input_tensor, False))

        return topo_order

    def _execute_node_backward(self, tensor, gradients):
        from cadence.core.tensor import Tensor

        node = tensor._backward_node
        if node is None:
            return

        grad_output = gradients.get(id(tensor))
        if grad_output is None:
            return

        input_grads = node.fn_cls.backward(node.ctx, Tensor(grad_output))

        if not isinstance(input_grads, tuple):
            input_grads = (input_grads,)

        if len(input_grads) != len(node.inputs):
            raise GradientError(
                f"Backward function {node.fn_cls.__name__} returned {len(input_grads)} "
                f"gradients but forward pass had {len(node.inputs)} inputs",
                operation=node.fn_cls.__name__
            )

        for input_tensor, input_grad in zip(node.inputs, input_grads):
            if not isinstance(input_tensor, Tensor) or not input_tensor.requires_grad:
                continue
            if input_grad is None:
                continue

            grad_data = input_grad.data if isinstance(input_grad, Tensor) else np.asarray(input_grad)
            input_id = id(input_tensor)
            if input_id in gradients:
                gradients[input_id] = gradients[input_id] + grad_data
            else:
                gradients[input_id] = np.array(grad_data, copy=True)

    def _assign_leaf_gradients(self, topo_order, gradients):
        from cadence.core.tensor import Tensor

        for tensor in topo_order:
            tensor_id = id(tensor)
            if tensor_id not in gradients:
                continue

            # Only leaves and tensors that asked for it keep their gradient
            if not (tensor._is_leaf or tensor._retain_grad):
                continue

            grad_data = gradients[tensor_id]
            if tensor.grad is None:
                tensor.grad = Tensor(np.array(grad_data, copy=True), device=tensor.device)
            else:
                tensor.grad.data = tensor.grad.data + grad_data

    def _cleanup_graph(self, topo_order):
        for tensor in topo_order:
            if not tensor._is_leaf:
                tensor._backward_node = None

class NoGradContext:
    """Context manager to disable gradient computation"""

    def __init__(self):
        self.prev_enabled = None

    def __enter__(self):
        engine = AutogradEngine()
        self.prev_enabled = engine.enabled
        engine.enabled = False
        return self

    def __exit__(self, *args):
        engine = AutogradEngine()
        engine.enabled = self.prev_enabled

class EnableGradContext:
    """Context manager to enable gradient computation"""

    def __init__(self):
        self.prev_enabled = None

    def __enter__(self):
        engine = AutogradEngine()
        self.prev_enabled = engine.enabled
        engine.enabled = True
        return self

    def __exit__(self, *args):
        engine = AutogradEngine()
        engine.enabled = self.prev_enabled

_engine = AutogradEngine()

def no_grad():
    return _engine.no_grad()

def enable_grad():
    return _engine.enable_grad()

def set_grad_enabled(enabled: bool):
    _engine.enabled = enabled

def is_grad_enabled() -> bool:
    return _engine.enabled

def backward(root_tensor, gradient=None, retain_graph=False):
    _engine.backward(root_tensor, gradient=gradient, retain_graph=retain_graph)
