"""
Digit-sum training with every recurrent variant

Each model sees sequences of five random 0/1 digits and learns to output the
number of ones. A variant passes when its smoothed loss gets under 0.01
within the epoch budget.
"""

from cadence.core.nn.recurrent import LSTM, GRU, RNN
from cadence.core.training import TrainingConfig, train_digit_sum


def make_models(num_layers):
    return {
        'LSTM': lambda hidden: LSTM(hidden, hidden, num_layers=num_layers),
        'GRU': lambda hidden: GRU(hidden, hidden, num_layers=num_layers),
        'RNN (tanh)': lambda hidden: RNN(hidden, hidden, num_layers=num_layers, nonlinearity='tanh'),
        'RNN (relu)': lambda hidden: RNN(hidden, hidden, num_layers=num_layers, nonlinearity='relu'),
    }


def compare_rnn_types(seed=0):
    results = {}
    for name, model_maker in make_models(TrainingConfig().num_layers).items():
        print(f"\nTraining {name}")
        config = TrainingConfig(seed=seed, verbose=True, log_interval=250)
        results[name] = train_digit_sum(model_maker, config)

    print("\nResults")
    for name, converged in results.items():
        print(f"{name}: {'converged' if converged else 'did not converge'}")
    return results


if __name__ == "__main__":
    compare_rnn_types()
