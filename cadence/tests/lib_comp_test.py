import pytest
import numpy as np

torch = pytest.importorskip("torch")
nn = torch.nn

from cadence.core.tensor import Tensor
from cadence.core.nn.recurrent import RNN, GRU, LSTM


# kind, input_size, hidden_size, num_layers, bias, seq_len, batch
test_configs = [
    ("lstm", 3, 4, 1, True, 5, 2),
    ("lstm", 2, 6, 3, True, 4, 3),
    ("gru", 3, 4, 2, True, 6, 2),
    ("gru", 5, 3, 1, False, 3, 4),
    ("rnn_tanh", 3, 5, 2, True, 5, 3),
    ("rnn_relu", 4, 4, 2, True, 7, 1),
]


def build_pair(kind, input_size, hidden_size, num_layers, bias):
    if kind == "lstm":
        ours = LSTM(input_size, hidden_size, num_layers, bias=bias)
        theirs = nn.LSTM(input_size, hidden_size, num_layers, bias=bias)
    elif kind == "gru":
        ours = GRU(input_size, hidden_size, num_layers, bias=bias)
        theirs = nn.GRU(input_size, hidden_size, num_layers, bias=bias)
    else:
        nonlinearity = kind.split("_")[1]
        ours = RNN(input_size, hidden_size, num_layers, nonlinearity=nonlinearity, bias=bias)
        theirs = nn.RNN(input_size, hidden_size, num_layers, nonlinearity=nonlinearity, bias=bias)

    theirs = theirs.double()
    # Synchronize parameters (cadence -> PyTorch)
    with torch.no_grad():
        for layer_index, cell in enumerate(ours.cells):
            for name, param in cell.named_parameters():
                getattr(theirs, f"{name}_l{layer_index}").copy_(torch.from_numpy(param.data.copy()))
    return ours, theirs


def torch_state(kind, state):
    if kind == "lstm":
        h_n, c_n = state
        return torch.stack([h_n, c_n])
    return state


@pytest.mark.numerical
@pytest.mark.parametrize(
    "kind, input_size, hidden_size, num_layers, bias, seq_len, batch", test_configs
)
def test_recurrent_pytorch_comparison(kind, input_size, hidden_size, num_layers, bias, seq_len, batch):
    np.random.seed(0)
    ours, theirs = build_pair(kind, input_size, hidden_size, num_layers, bias)
    x_np = np.random.randn(seq_len, batch, input_size)

    x = Tensor(x_np, requires_grad=True)
    output, state = ours(x)
    (output.sum() + (state * state).sum()).backward()

    x_torch = torch.from_numpy(x_np.copy()).requires_grad_(True)
    output_torch, state_torch = theirs(x_torch)
    state_torch = torch_state(kind, state_torch)
    (output_torch.sum() + (state_torch * state_torch).sum()).backward()

    np.testing.assert_allclose(output.data, output_torch.detach().numpy(), rtol=1e-6, atol=1e-8)
    np.testing.assert_allclose(state.data, state_torch.detach().numpy(), rtol=1e-6, atol=1e-8)
    np.testing.assert_allclose(x.grad.data, x_torch.grad.numpy(), rtol=1e-6, atol=1e-8)

    for layer_index, cell in enumerate(ours.cells):
        for name, param in cell.named_parameters():
            expected = getattr(theirs, f"{name}_l{layer_index}").grad.numpy()
            np.testing.assert_allclose(param.grad.data, expected, rtol=1e-6, atol=1e-8,
                                       err_msg=f"{name}_l{layer_index}")


@pytest.mark.numerical
def test_initial_state_pytorch_comparison():
    np.random.seed(1)
    ours, theirs = build_pair("lstm", 2, 3, 2, True)
    x_np = np.random.randn(4, 2, 2)
    state_np = np.random.randn(2, 2, 2, 3)

    output, state = ours(Tensor(x_np), Tensor(state_np))
    output_torch, (h_n, c_n) = theirs(
        torch.from_numpy(x_np), (torch.from_numpy(state_np[0].copy()), torch.from_numpy(state_np[1].copy()))
    )

    np.testing.assert_allclose(output.data, output_torch.detach().numpy(), rtol=1e-6, atol=1e-8)
    np.testing.assert_allclose(state.data[0], h_n.detach().numpy(), rtol=1e-6, atol=1e-8)
    np.testing.assert_allclose(state.data[1], c_n.detach().numpy(), rtol=1e-6, atol=1e-8)
