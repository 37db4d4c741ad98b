from cadence.core.tensor import Tensor, _ensure_tensor
from cadence.core.ops import stack
from cadence.core.nn.layers import Layer, Dropout
from cadence.core.nn import init
from cadence.core.exceptions import (
    ConfigurationError,
    ShapeError,
    validate_tensor_shape,
    warn_degenerate_input,
)
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple, Union
import numpy as np


class CellKind(Enum):
    RNN = "rnn"
    GRU = "gru"
    LSTM = "lstm"

NONLINEARITIES = ("tanh", "relu")


@dataclass(frozen=True)
class RecurrentConfig:
    """
    Immutable configuration of a stacked recurrent layer. Validated on
    construction, so a layer never fails at forward time because of it.

    Args:
        input_size: The number of expected features in the input
        hidden_size: The number of features in the hidden state
        num_layers: Number of stacked recurrent layers
        nonlinearity: 'tanh' or 'relu'; plain RNN only
        dropout: Dropout probability on the outputs of every layer except the last
        kind: CellKind (or its name) selecting RNN, GRU or LSTM cells
        bias: If False, the cells do not use bias weights
    """
    input_size: int
    hidden_size: int
    num_layers: int = 1
    nonlinearity: str = 'tanh'
    dropout: float = 0.0
    kind: CellKind = CellKind.RNN
    bias: bool = True

    def __post_init__(self):
        kind = self.kind
        if isinstance(kind, str):
            try:
                kind = CellKind(kind.lower())
            except ValueError:
                raise ConfigurationError(
                    f"unknown cell kind '{self.kind}'",
                    field_name='kind',
                    suggestion=f"Use one of {[k.value for k in CellKind]}"
                ) from None
            object.__setattr__(self, 'kind', kind)
        elif not isinstance(kind, CellKind):
            raise ConfigurationError(f"unknown cell kind {kind!r}", field_name='kind')

        layer_type = kind.name
        for field_name in ('input_size', 'hidden_size', 'num_layers'):
            value = getattr(self, field_name)
            if isinstance(value, bool) or not isinstance(value, (int, np.integer)) or value < 1:
                raise ConfigurationError(
                    f"{field_name} must be a positive integer, got {value!r}",
                    layer_type=layer_type,
                    field_name=field_name
                )

        if isinstance(self.dropout, bool) or not isinstance(self.dropout, (int, float)) \
                or not 0 <= self.dropout <= 1:
            raise ConfigurationError(
                f"dropout should be a number in range [0, 1], got {self.dropout!r}",
                layer_type=layer_type,
                field_name='dropout'
            )

        if self.nonlinearity not in NONLINEARITIES:
            raise ConfigurationError(
                f"unknown nonlinearity '{self.nonlinearity}'",
                layer_type=layer_type,
                field_name='nonlinearity',
                suggestion=f"Use one of {NONLINEARITIES}"
            )

        CELL_TYPES[kind].validate(self)

    @property
    def cell_type(self):
        return CELL_TYPES[self.kind]

    @property
    def gate_size(self) -> int:
        return self.cell_type.gate_count * self.hidden_size

    def layer_input_size(self, layer_index: int) -> int:
        return self.input_size if layer_index == 0 else self.hidden_size


class RecurrentCell(Layer):
    """
    Shared parameter layout and state layout for the single-tensor-state cells.

    Parameters are fused across gates: weight_ih is (gate_count * hidden_size,
    input_size), weight_hh is (gate_count * hidden_size, hidden_size), and the
    biases follow the same row blocks.
    """
    gate_count = 1

    def __init__(self, input_size: int, hidden_size: int, bias: bool = True):
        super().__init__()
        self.input_size = input_size
        self.hidden_size = hidden_size

        gate_size = self.gate_count * hidden_size
        self.weight_ih = Tensor(np.empty((gate_size, input_size)), requires_grad=True)
        self.weight_hh = Tensor(np.empty((gate_size, hidden_size)), requires_grad=True)

        if bias:
            self.bias_ih = Tensor(np.empty(gate_size), requires_grad=True)
            self.bias_hh = Tensor(np.empty(gate_size), requires_grad=True)
        else:
            self.register_buffer('bias_ih', None)
            self.register_buffer('bias_hh', None)

        self.reset_parameters()

    @classmethod
    def from_config(cls, config: RecurrentConfig, layer_index: int) -> 'RecurrentCell':
        return cls(config.layer_input_size(layer_index), config.hidden_size, config.bias)

    @classmethod
    def validate(cls, config: RecurrentConfig):
        if config.nonlinearity != 'tanh':
            raise ConfigurationError(
                "nonlinearity can only be chosen for plain RNN cells",
                layer_type=config.kind.name,
                field_name='nonlinearity'
            )

    def reset_parameters(self):
        k = 1.0 / np.sqrt(self.hidden_size)
        for param in self.parameters():
            init.uniform_(param, -k, k)

    # State layout: one (layers, batch, hidden) tensor

    @staticmethod
    def state_shape(num_layers: int, batch_size: int, hidden_size: int) -> Tuple[int, ...]:
        return (num_layers, batch_size, hidden_size)

    @staticmethod
    def layer_state(state: Tensor, layer_index: int):
        return state[layer_index]

    @staticmethod
    def hidden_of(cell_state) -> Tensor:
        return cell_state

    @staticmethod
    def pack_states(cell_states: List) -> Tensor:
        return stack(cell_states, axis=0)

    def _input_gates(self, x: Tensor) -> Tensor:
        out = x.matmul(self.weight_ih.transpose())
        if self.bias_ih is not None:
            out = out + self.bias_ih
        return out

    def _hidden_gates(self, h: Tensor) -> Tensor:
        out = h.matmul(self.weight_hh.transpose())
        if self.bias_hh is not None:
            out = out + self.bias_hh
        return out

    def _check_input(self, x: Tensor) -> int:
        if x.ndim != 2 or x.shape[1] != self.input_size:
            raise ShapeError(
                f"{type(self).__name__} input has wrong feature size",
                expected_shape=(x.shape[0] if x.ndim else None, self.input_size),
                actual_shape=x.shape,
                operation=f"{type(self).__name__}.forward",
                tensors=[x]
            )
        return x.shape[0]

    def _check_hidden(self, h: Tensor, batch_size: int, name: str = "hidden state"):
        validate_tensor_shape(h, (batch_size, self.hidden_size),
                              operation_name=f"{type(self).__name__} {name}")

    def _zero_state(self, batch_size: int, like: Tensor) -> Tensor:
        return Tensor(np.zeros((batch_size, self.hidden_size)), device=like.device)

    def extra_repr(self):
        return f"{self.input_size}, {self.hidden_size}, bias={self.bias_ih is not None}"


class RNNCell(RecurrentCell):
    """
    Elman RNN cell: h_t = f(W_ih x_t + b_ih + W_hh h_{t-1} + b_hh), f = tanh or relu

    Args:
        input_size: The number of expected features in the input
        hidden_size: The number of features in the hidden state
        bias: If False, the layer does not use bias weights
        nonlinearity: The non-linearity to use ('tanh' or 'relu')
    """
    gate_count = 1

    def __init__(self, input_size: int, hidden_size: int, bias: bool = True, nonlinearity: str = 'tanh'):
        if nonlinearity not in NONLINEARITIES:
            raise ConfigurationError(f"unknown nonlinearity '{nonlinearity}'",
                                     layer_type="RNN", field_name='nonlinearity')
        super().__init__(input_size, hidden_size, bias)
        self.nonlinearity = nonlinearity

    @classmethod
    def from_config(cls, config: RecurrentConfig, layer_index: int) -> 'RNNCell':
        return cls(config.layer_input_size(layer_index), config.hidden_size, config.bias,
                   nonlinearity=config.nonlinearity)

    @classmethod
    def validate(cls, config: RecurrentConfig):
        # Both entries of NONLINEARITIES are valid for plain RNN cells
        return None

    def forward(self, x: Tensor, hidden: Optional[Tensor] = None) -> Tensor:
        """
        Args:
            x: Input tensor of shape (batch_size, input_size)
            hidden: Previous hidden state of shape (batch_size, hidden_size)

        Returns:
            New hidden state
        """
        x = _ensure_tensor(x)
        batch_size = self._check_input(x)
        if hidden is None:
            hidden = self._zero_state(batch_size, x)
        self._check_hidden(hidden, batch_size)

        pre_activation = self._input_gates(x) + self._hidden_gates(hidden)
        if self.nonlinearity == 'tanh':
            return pre_activation.tanh()
        return pre_activation.relu()

    def extra_repr(self):
        return f"{super().extra_repr()}, nonlinearity='{self.nonlinearity}'"


class GRUCell(RecurrentCell):
    """
    Gated Recurrent Unit cell. Gate blocks: reset, update, new

        r_t = sigmoid(W_ir x + b_ir + W_hr h + b_hr)
        z_t = sigmoid(W_iz x + b_iz + W_hz h + b_hz)
        n_t = tanh(W_in x + b_in + r_t * (W_hn h + b_hn))
        h_t = (1 - z_t) * n_t + z_t * h
    """
    gate_count = 3

    def forward(self, x: Tensor, hidden: Optional[Tensor] = None) -> Tensor:
        x = _ensure_tensor(x)
        batch_size = self._check_input(x)
        if hidden is None:
            hidden = self._zero_state(batch_size, x)
        self._check_hidden(hidden, batch_size)

        i_r, i_z, i_n = self._input_gates(x).chunk(3, dim=1)
        h_r, h_z, h_n = self._hidden_gates(hidden).chunk(3, dim=1)

        r_t = (i_r + h_r).sigmoid()
        z_t = (i_z + h_z).sigmoid()
        n_t = (i_n + r_t * h_n).tanh()

        return (1 - z_t) * n_t + z_t * hidden


class LSTMCell(RecurrentCell):
    """
    Long Short-Term Memory cell. Gate blocks: input, forget, cell, output

        c_t = f_t * c_{t-1} + i_t * g_t
        h_t = o_t * tanh(c_t)

    State is the pair (h, c); stacked, it is a (2, layers, batch, hidden)
    tensor with the hidden component at index 0 and the cell component at 1.
    """
    gate_count = 4

    @staticmethod
    def state_shape(num_layers: int, batch_size: int, hidden_size: int) -> Tuple[int, ...]:
        return (2, num_layers, batch_size, hidden_size)

    @staticmethod
    def layer_state(state: Tensor, layer_index: int):
        return state[0, layer_index], state[1, layer_index]

    @staticmethod
    def hidden_of(cell_state) -> Tensor:
        return cell_state[0]

    @staticmethod
    def pack_states(cell_states: List) -> Tensor:
        hidden = stack([h for h, _ in cell_states], axis=0)
        cell = stack([c for _, c in cell_states], axis=0)
        return stack([hidden, cell], axis=0)

    def forward(self, x: Tensor, hx: Optional[Tuple[Tensor, Tensor]] = None) -> Tuple[Tensor, Tensor]:
        """
        Args:
            x: Input tensor of shape (batch_size, input_size)
            hx: Tuple of (hidden_state, cell_state) each of shape (batch_size, hidden_size)

        Returns:
            Tuple of (new_hidden_state, new_cell_state)
        """
        x = _ensure_tensor(x)
        batch_size = self._check_input(x)
        if hx is None:
            h_0, c_0 = self._zero_state(batch_size, x), self._zero_state(batch_size, x)
        else:
            h_0, c_0 = hx
        self._check_hidden(h_0, batch_size)
        self._check_hidden(c_0, batch_size, name="cell state")

        gates = self._input_gates(x) + self._hidden_gates(h_0)
        i_t, f_t, g_t, o_t = gates.chunk(4, dim=1)

        i_t = i_t.sigmoid()
        f_t = f_t.sigmoid()
        g_t = g_t.tanh()
        o_t = o_t.sigmoid()

        c_1 = f_t * c_0 + i_t * g_t
        h_1 = o_t * c_1.tanh()

        return h_1, c_1


CELL_TYPES = {
    CellKind.RNN: RNNCell,
    CellKind.GRU: GRUCell,
    CellKind.LSTM: LSTMCell,
}


class RNNBase(Layer):
    """
    Stack of recurrent cells scanned over a (seq_len, batch, feature) input.

    Layer l consumes the full output sequence of layer l - 1 (layer 0 the
    caller's input) and starts from its own slice of the initial state. In
    training mode dropout is applied to every layer's output sequence except
    the last one.

    forward returns (output, state):
        output: (seq_len, batch, hidden_size), the top layer's hidden states
        state: (num_layers, batch, hidden_size), or (2, num_layers, batch,
               hidden_size) for LSTM, the last time step of every layer
    """

    def __init__(self, config: RecurrentConfig):
        super().__init__()
        self.config = config
        self.cell_type = config.cell_type
        self.input_size = config.input_size
        self.hidden_size = config.hidden_size
        self.num_layers = config.num_layers
        self.dropout = config.dropout

        self.cells = []
        for layer_index in range(config.num_layers):
            cell = self.cell_type.from_config(config, layer_index)
            self.register_module(f'cell_{layer_index}', cell)
            self.cells.append(cell)

        self.inter_layer_dropout = Dropout(config.dropout)

    @staticmethod
    def from_config(config: RecurrentConfig) -> 'RNNBase':
        """Build the RNN, GRU or LSTM layer described by config"""
        if config.kind is CellKind.RNN:
            return RNN(config.input_size, config.hidden_size, config.num_layers,
                       nonlinearity=config.nonlinearity, dropout=config.dropout, bias=config.bias)
        layer_cls = GRU if config.kind is CellKind.GRU else LSTM
        return layer_cls(config.input_size, config.hidden_size, config.num_layers,
                         dropout=config.dropout, bias=config.bias)

    def state_shape(self, batch_size: int) -> Tuple[int, ...]:
        return self.cell_type.state_shape(self.num_layers, batch_size, self.hidden_size)

    def initial_state(self, batch_size: int, device: Optional[str] = None) -> Tensor:
        return Tensor(np.zeros(self.state_shape(batch_size)), device=device)

    def _check_input(self, x: Tensor) -> Tuple[int, int]:
        if x.ndim != 3 or x.shape[2] != self.input_size:
            raise ShapeError(
                f"{type(self).__name__} expects input of shape (seq_len, batch, {self.input_size})",
                expected_shape=(None, None, self.input_size),
                actual_shape=x.shape,
                operation=f"{type(self).__name__}.forward",
                tensors=[x]
            )
        return x.shape[0], x.shape[1]

    def forward(self, x: Tensor, state: Optional[Tensor] = None) -> Tuple[Tensor, Tensor]:
        """
        Args:
            x: Input sequence tensor of shape (seq_len, batch_size, input_size)
            state: Initial state of shape self.state_shape(batch_size); zeros if None

        Returns:
            output: Top layer hidden state for each time step
            state: Final state of every layer
        """
        x = _ensure_tensor(x)
        seq_len, batch_size = self._check_input(x)

        if state is None:
            state = self.initial_state(batch_size, device=x.device)
        else:
            state = _ensure_tensor(state)
            validate_tensor_shape(state, self.state_shape(batch_size),
                                  operation_name=f"{type(self).__name__} initial state")

        if seq_len == 0:
            warn_degenerate_input(
                f"{type(self).__name__} received a sequence with no time steps; "
                f"returning an empty output and the initial state"
            )
            return Tensor(np.zeros((0, batch_size, self.hidden_size)), device=x.device), state

        layer_input = [x[t] for t in range(seq_len)]
        final_states = []

        for layer_index, cell in enumerate(self.cells):
            cell_state = self.cell_type.layer_state(state, layer_index)
            outputs = []
            for x_t in layer_input:
                cell_state = cell(x_t, cell_state)
                outputs.append(self.cell_type.hidden_of(cell_state))
            final_states.append(cell_state)

            if layer_index < self.num_layers - 1:
                outputs = [self.inter_layer_dropout(out) for out in outputs]
            layer_input = outputs

        return stack(layer_input, axis=0), self.cell_type.pack_states(final_states)

    def extra_repr(self):
        s = f"{self.input_size}, {self.hidden_size}, num_layers={self.num_layers}"
        if self.dropout:
            s += f", dropout={self.dropout}"
        return s


class RNN(RNNBase):
    """
    Multi-layer Elman RNN

    Args:
        input_size: The number of expected features in the input
        hidden_size: The number of features in the hidden state
        num_layers: Number of recurrent layers
        nonlinearity: The non-linearity to use ('tanh' or 'relu')
        dropout: Dropout probability between layers (0 means no dropout)
        bias: If False, the layer does not use bias weights
    """

    def __init__(self, input_size: int, hidden_size: int, num_layers: int = 1,
                 nonlinearity: str = 'tanh', dropout: float = 0.0, bias: bool = True):
        super().__init__(RecurrentConfig(input_size, hidden_size, num_layers,
                                         nonlinearity=nonlinearity, dropout=dropout,
                                         kind=CellKind.RNN, bias=bias))


class GRU(RNNBase):
    """
    Multi-layer Gated Recurrent Unit (GRU) module

    Args:
        input_size: The number of expected features in the input
        hidden_size: The number of features in the hidden state
        num_layers: Number of recurrent layers
        dropout: Dropout probability between layers (0 means no dropout)
        bias: If False, the layer does not use bias weights
    """

    def __init__(self, input_size: int, hidden_size: int, num_layers: int = 1,
                 dropout: float = 0.0, bias: bool = True):
        super().__init__(RecurrentConfig(input_size, hidden_size, num_layers,
                                         dropout=dropout, kind=CellKind.GRU, bias=bias))


class LSTM(RNNBase):
    """
    Multi-layer Long Short-Term Memory (LSTM) module

    The state is a single (2, num_layers, batch, hidden_size) tensor:
    state[0] holds the hidden component, state[1] the cell component.

    Args:
        input_size: The number of expected features in the input
        hidden_size: The number of features in the hidden state
        num_layers: Number of recurrent layers
        dropout: Dropout probability between layers (0 means no dropout)
        bias: If False, the layer does not use bias weights
    """

    def __init__(self, input_size: int, hidden_size: int, num_layers: int = 1,
                 dropout: float = 0.0, bias: bool = True):
        super().__init__(RecurrentConfig(input_size, hidden_size, num_layers,
                                         dropout=dropout, kind=CellKind.LSTM, bias=bias))


RecurrentLayer = Union[RNN, GRU, LSTM]
