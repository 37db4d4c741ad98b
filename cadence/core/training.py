"""
Digit-sum training harness

A sequence of 0/1 digits is fed through Linear -> tanh -> recurrent layer ->
Linear, and the model learns to output how many ones it saw. Training stops
once the smoothed loss drops under a threshold or the epoch budget runs out.
"""
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from cadence.core.tensor import Tensor
from cadence.core.nn.layers import Container, Layer, Linear
from cadence.core.loss import mse_loss
from cadence.core.optim import Adam
from cadence.core.device import ExecutionContext
from cadence.core.exceptions import ConfigurationError


@dataclass
class TrainingConfig:
    hidden_size: int = 32
    num_layers: int = 2
    seq_len: int = 5
    batch_size: int = 16
    lr: float = 1e-2
    threshold: float = 1e-2
    max_epoch: int = 1500
    ema_decay: float = 0.99
    initial_loss: float = 1.0
    seed: Optional[int] = None
    verbose: bool = False
    log_interval: int = 100

    def __post_init__(self):
        for name in ('hidden_size', 'num_layers', 'seq_len', 'batch_size', 'log_interval'):
            value = getattr(self, name)
            if not isinstance(value, int) or value < 1:
                raise ConfigurationError(f"{name} must be a positive integer, got {value!r}",
                                         layer_type="TrainingConfig", field_name=name)
        if self.max_epoch < 0:
            raise ConfigurationError(f"max_epoch must be non-negative, got {self.max_epoch}",
                                     layer_type="TrainingConfig", field_name='max_epoch')
        if not 0.0 <= self.ema_decay < 1.0:
            raise ConfigurationError(f"ema_decay must be in [0, 1), got {self.ema_decay}",
                                     layer_type="TrainingConfig", field_name='ema_decay')


class DigitSumTrainer:
    """
    Owns the model container, the optimizer and the loop state

    Args:
        model_maker: callable taking the hidden size and returning a recurrent
                     layer (hidden_size -> hidden_size) whose forward returns
                     (output, state)
        config: TrainingConfig, defaults when None
        context: ExecutionContext for batches and placement; a CPU context
                 seeded with config.seed when None
    """

    def __init__(self, model_maker: Callable[[int], Layer],
                 config: Optional[TrainingConfig] = None,
                 context: Optional[ExecutionContext] = None):
        self.config = config or TrainingConfig()
        # Built before the model so a seeded context also fixes parameter init
        self.context = context or ExecutionContext("cpu", seed=self.config.seed)

        hidden = self.config.hidden_size
        self.model = Container()
        self.model.add(Linear(1, hidden), 'l1')
        self.model.add(model_maker(hidden), 'rnn')
        self.model.add(Linear(hidden, 1), 'lo')
        self.context.place(self.model)

        self.optimizer = Adam(self.model.parameters(), lr=self.config.lr)

        self.epoch = 0
        self.running_loss = self.config.initial_loss
        self.loss_history: List[float] = []

    def generate_batch(self) -> Tuple[Tensor, Tensor]:
        """(seq_len, batch, 1) random digits and their (batch, 1) sums over time"""
        cfg = self.config
        inputs = self.context.bernoulli((cfg.seq_len, cfg.batch_size, 1), p=0.5, requires_grad=True)
        targets = self.context.tensor(inputs.data.sum(axis=0))
        return inputs, targets

    def forward(self, inputs: Tensor) -> Tensor:
        seq_len, batch_size = inputs.shape[0], inputs.shape[1]
        hidden = self.config.hidden_size

        x = self.model.l1(inputs.reshape(seq_len * batch_size, 1))
        x = x.reshape(seq_len, batch_size, hidden).tanh()
        output, _ = self.model.rnn(x)
        return self.model.lo(output[seq_len - 1])

    def train_step(self) -> float:
        """One full iteration; returns the batch loss"""
        inputs, targets = self.generate_batch()
        prediction = self.forward(inputs)
        loss = mse_loss(prediction, targets)

        self.optimizer.zero_grad()
        loss.backward()
        self.optimizer.step()

        value = loss.item()
        decay = self.config.ema_decay
        self.running_loss = self.running_loss * decay + value * (1 - decay)
        self.loss_history.append(value)
        return value

    def run(self) -> bool:
        """Train until the running loss reaches the threshold; False if the epoch budget runs out"""
        cfg = self.config
        self.model.train()

        while self.running_loss > cfg.threshold:
            self.train_step()
            if cfg.verbose and self.epoch % cfg.log_interval == 0:
                print(f"Epoch {self.epoch}, running loss {self.running_loss:.6f}")
            if self.epoch > cfg.max_epoch:
                if cfg.verbose:
                    print(f"Did not converge after {self.epoch} epochs, "
                          f"running loss {self.running_loss:.6f}")
                return False
            self.epoch += 1

        if cfg.verbose:
            print(f"Converged after {self.epoch} epochs, running loss {self.running_loss:.6f}")
        return True


def train_digit_sum(model_maker: Callable[[int], Layer],
                    config: Optional[TrainingConfig] = None,
                    context: Optional[ExecutionContext] = None) -> bool:
    """
    Train model_maker(hidden_size) on the digit-sum task

    Returns:
        True once the exponential moving average of the loss is at or under
        config.threshold, False once the epoch budget is exhausted
    """
    return DigitSumTrainer(model_maker, config, context).run()
