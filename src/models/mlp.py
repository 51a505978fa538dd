# ABOUTME: Fully connected feed-forward regressor trained with per-sample SGD.
# ABOUTME: Backpropagates through every layer via PyTorch autograd on an MSE loss.

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
import torch
from torch import nn
from torch.nn.utils import skip_init

from src.common.errors import DimensionMismatchError

from .base import BaseModel

logger = logging.getLogger(__name__)

ACTIVATIONS = {
    "relu": nn.ReLU,
    "sigmoid": nn.Sigmoid,
    "linear": nn.Identity,
}


@dataclass(frozen=True)
class LayerSpec:
    """One layer of the network. The first entry only fixes the input width."""

    size: int
    activation: str = "relu"


LayerLike = Union[LayerSpec, Tuple[int, str]]


def _as_specs(architecture: Sequence[LayerLike]) -> List[LayerSpec]:
    specs = [spec if isinstance(spec, LayerSpec) else LayerSpec(*spec) for spec in architecture]
    if len(specs) < 2:
        raise ValueError("architecture needs an input layer and at least one output layer")
    for spec in specs:
        if spec.activation not in ACTIVATIONS:
            raise ValueError(f"unknown activation {spec.activation!r}")
    return specs


class MultiLayerPerceptron(BaseModel):
    """
    Dense network described by ``architecture``.

    Example: ``[(28, "relu"), (32, "relu"), (16, "relu"), (1, "sigmoid")]``
    builds 28→32→16→1 with ReLU hidden layers and a sigmoid output. Weights are
    Xavier-uniform initialised with zero biases; training runs ``epochs`` passes
    of per-sample SGD in data order.
    """

    model_type = "mlp"
    log_every = 20

    def __init__(
        self,
        architecture: Sequence[LayerLike],
        epochs: int = 100,
        learning_rate: float = 0.01,
        seed: Optional[int] = None,
    ):
        super().__init__()
        self.architecture = _as_specs(architecture)
        self.epochs = epochs
        self.learning_rate = learning_rate
        self.seed = seed
        self.loss_history: List[float] = []
        self.network = self._build_network()

    def _build_network(self) -> nn.Sequential:
        generator = torch.Generator().manual_seed(self.seed) if self.seed is not None else None

        layers: List[nn.Module] = []
        for previous, current in zip(self.architecture, self.architecture[1:]):
            # skip_init leaves the global torch RNG untouched
            linear = skip_init(nn.Linear, previous.size, current.size, dtype=torch.float64)
            nn.init.xavier_uniform_(linear.weight, generator=generator)
            nn.init.zeros_(linear.bias)
            layers.append(linear)
            layers.append(ACTIVATIONS[current.activation]())
        return nn.Sequential(*layers)

    @property
    def output_size(self) -> int:
        return self.architecture[-1].size

    def _fit(self, X: np.ndarray, y: np.ndarray) -> None:
        if X.shape[1] != self.architecture[0].size:
            raise DimensionMismatchError(
                f"network input is {self.architecture[0].size} wide, features are {X.shape[1]}"
            )
        targets = y.reshape(len(y), -1)
        if targets.shape[1] != self.output_size:
            raise DimensionMismatchError(
                f"network output is {self.output_size} wide, targets are {targets.shape[1]}"
            )

        self.network = self._build_network()
        inputs = torch.from_numpy(X).double()
        labels = torch.from_numpy(targets).double()
        optimizer = torch.optim.SGD(self.network.parameters(), lr=self.learning_rate)
        criterion = nn.MSELoss()

        self.loss_history = []
        self.network.train()
        for epoch in range(self.epochs):
            total = 0.0
            for i in range(len(inputs)):
                optimizer.zero_grad()
                loss = criterion(self.network(inputs[i : i + 1]), labels[i : i + 1])
                loss.backward()
                optimizer.step()
                total += loss.item()

            epoch_loss = total / len(inputs)
            self.loss_history.append(epoch_loss)
            if epoch % self.log_every == 0:
                logger.debug("mlp epoch %d loss %.6f", epoch, epoch_loss)

        self.network.eval()

    def _predict_one(self, x: np.ndarray):
        with torch.no_grad():
            output = self.network(torch.from_numpy(x).double().unsqueeze(0))[0].numpy()
        return float(output[0]) if self.output_size == 1 else output

    def _get_state(self) -> Dict[str, Any]:
        return {
            "architecture": [[spec.size, spec.activation] for spec in self.architecture],
            "epochs": self.epochs,
            "learning_rate": self.learning_rate,
            "parameters": {name: tensor.tolist() for name, tensor in self.network.state_dict().items()},
        }

    def _set_state(self, state: Dict[str, Any]) -> None:
        self.architecture = _as_specs([tuple(spec) for spec in state["architecture"]])
        self.epochs = int(state["epochs"])
        self.learning_rate = float(state["learning_rate"])
        self.network = self._build_network()
        parameters = {
            name: torch.tensor(values, dtype=torch.float64) for name, values in state["parameters"].items()
        }
        try:
            self.network.load_state_dict(parameters)
        except RuntimeError as exc:
            raise ValueError(f"parameters do not match the architecture: {exc}") from exc
        self.network.eval()
