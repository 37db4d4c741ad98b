import numpy as np
from cadence.core.tensor import Tensor, _ensure_tensor
from cadence.core.nn import init
from typing import Iterator, List, Optional, Tuple, Union, Any

class Layer:
    def __init__(self):
        super().__setattr__('_parameters', {})
        super().__setattr__('_modules', {})
        super().__setattr__('_buffers', {})
        super().__setattr__('training', True)

    def train(self, mode: bool = True):
        self.training = mode
        for module in self._modules.values():
            module.train(mode)
        return self

    def eval(self):
        return self.train(False)

    def named_parameters(self, prefix: str = '', recurse: bool = True) -> Iterator[Tuple[str, Tensor]]:
        """Yield (dotted name, parameter) in registration order, each parameter once"""
        seen = set()
        for name, param in self._named_parameters(prefix, recurse):
            if id(param) in seen:
                continue
            seen.add(id(param))
            yield name, param

    def _named_parameters(self, prefix, recurse):
        for name, param in self._parameters.items():
            if param is not None:
                yield prefix + name, param
        if recurse:
            for module_name, module in self._modules.items():
                if module is not None:
                    yield from module._named_parameters(prefix + module_name + '.', recurse)

    def parameters(self, recurse: bool = True) -> List[Tensor]:
        return [param for _, param in self.named_parameters(recurse=recurse)]

    def named_children(self) -> Iterator[Tuple[str, 'Layer']]:
        yield from self._modules.items()

    def zero_grad(self):
        for p in self.parameters():
            p.zero_grad()

    def to(self, device: str):
        """Move all parameters and buffers to device"""
        for p in self.parameters():
            p.to(device)
        for buffer in self._buffers.values():
            if isinstance(buffer, Tensor):
                buffer.to(device)
        return self

    def __setattr__(self, name: str, value: Any):
        if '_parameters' not in self.__dict__:
            super().__setattr__(name, value)
            return

        params = self.__dict__['_parameters']
        modules = self.__dict__['_modules']
        buffers = self.__dict__['_buffers']

        # Remove existing attribute from internal dicts first if replacing
        params.pop(name, None)
        modules.pop(name, None)
        buffers.pop(name, None)

        if isinstance(value, Tensor) and value.requires_grad:
            params[name] = value
        elif isinstance(value, Layer):
            modules[name] = value

        super().__setattr__(name, value)

    def __getattr__(self, name: str) -> Union[Tensor, 'Layer', Any]:
        for store in ('_parameters', '_modules', '_buffers'):
            if store in self.__dict__ and name in self.__dict__[store]:
                return self.__dict__[store][name]

        raise AttributeError(f"'{type(self).__name__}' object has no attribute '{name}'")

    def __delattr__(self, name: str):
        if name in self._parameters: del self._parameters[name]
        elif name in self._modules: del self._modules[name]
        elif name in self._buffers: del self._buffers[name]
        super().__delattr__(name)

    def register_buffer(self, name: str, tensor: Optional[Any]):
        if name in self._buffers: del self._buffers[name]
        if tensor is not None:
            self._buffers[name] = tensor
        super().__setattr__(name, tensor)

    def register_module(self, name: str, module: Optional['Layer']):
        if module is None:
            self.__delattr__(name)
            return
        if not isinstance(module, Layer):
            raise TypeError(f"Cannot register '{name}' - not a Layer")
        setattr(self, name, module)

    def __call__(self, *args, **kwargs):
        return self.forward(*args, **kwargs)

    def forward(self, *args, **kwargs):
        raise NotImplementedError

    def extra_repr(self) -> str:
        return ''

    def __repr__(self):
        lines = [f"{type(self).__name__}({self.extra_repr()}"]
        for name, module in self._modules.items():
            child = repr(module).replace('\n', '\n  ')
            lines.append(f"  ({name}): {child}")
        if len(lines) == 1:
            return lines[0] + ")"
        return "\n".join(lines) + "\n)"

class Linear(Layer):
    """
    y = xW^T + b
    Weights and bias drawn from U(-1/sqrt(in_features), 1/sqrt(in_features))
    """

    def __init__(self, in_features: int, out_features: int, bias: bool = True):
        super().__init__()
        self.in_features = in_features
        self.out_features = out_features

        self.weight = Tensor(np.empty((out_features, in_features)), requires_grad=True)
        if bias:
            self.bias = Tensor(np.empty(out_features), requires_grad=True)
        else:
            self.register_buffer('bias', None)

        self.reset_parameters()

    def reset_parameters(self):
        bound = 1.0 / np.sqrt(self.in_features)
        init.uniform_(self.weight, -bound, bound)
        if self.bias is not None:
            init.uniform_(self.bias, -bound, bound)

    def forward(self, x: Tensor) -> Tensor:
        """Forward pass: y = xW^T + b"""
        x = _ensure_tensor(x)

        # (batch_size, in_features) @ (in_features, out_features)
        out = x.matmul(self.weight.transpose())

        if self.bias is not None:
            out = out + self.bias

        return out

    def extra_repr(self):
        return f"in_features={self.in_features}, out_features={self.out_features}, bias={self.bias is not None}"

class Dropout(Layer):
    """
    Dropout layer; identity in eval mode
    Args:
        p: probability of element being zeroed
    """

    def __init__(self, p: float = 0.5):
        super().__init__()
        if p < 0 or p > 1:
            raise ValueError(f"Dropout probability must be between 0 and 1, given probablity {p}")
        self.p = p

    def forward(self, x: Tensor) -> Tensor:
        x = _ensure_tensor(x)
        return x.dropout(self.p, self.training)

    def extra_repr(self):
        return f"p={self.p}"

class Container(Layer):
    """
    Named submodule container. Holds layers for parameter collection, mode
    switching and placement; callers drive the forward pass themselves
    """

    def add(self, module: Layer, name: str) -> Layer:
        if name in self._modules:
            raise KeyError(f"Container already has a submodule named '{name}'")
        self.register_module(name, module)
        return module
