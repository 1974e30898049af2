"""
Stacked LSTM regressor for daily close forecasting.

Two recurrent layers with dropout after each, followed by a linear head.
The head emits one value (iterative regime) or prediction_days values
(direct regime) from the final hidden state of the second layer.
"""

from typing import Optional

import torch
import torch.nn as nn
from loguru import logger


class LSTMRegressor(nn.Module):
    """
    Deterministic LSTM regressor.

    Architecture:
    - LSTM(input_size -> hidden_size), full output sequence
    - Dropout
    - LSTM(hidden_size -> hidden_size), last timestep only
    - Dropout
    - Optional Linear(hidden_size -> dense_size) + ReLU
    - Linear(-> output_size)
    """

    def __init__(
        self,
        input_size: int,
        output_size: int = 1,
        hidden_size: int = 50,
        dropout: float = 0.2,
        dense_size: Optional[int] = None,
    ):
        """
        Initialize LSTM Regressor.

        Args:
            input_size: Number of features per timestep
            output_size: 1 for iterative, prediction_days for direct
            hidden_size: Units in each LSTM layer
            dropout: Dropout rate after each recurrent layer
            dense_size: Hidden dense layer width (None = no hidden layer)
        """
        super().__init__()

        if input_size < 1 or output_size < 1:
            raise ValueError(
                f"input_size and output_size must be >= 1, got {input_size}, {output_size}"
            )

        self.input_size = input_size
        self.output_size = output_size
        self.hidden_size = hidden_size

        self.lstm1 = nn.LSTM(input_size=input_size, hidden_size=hidden_size, batch_first=True)
        self.dropout1 = nn.Dropout(dropout)
        self.lstm2 = nn.LSTM(input_size=hidden_size, hidden_size=hidden_size, batch_first=True)
        self.dropout2 = nn.Dropout(dropout)

        if dense_size:
            self.head = nn.Sequential(
                nn.Linear(hidden_size, dense_size),
                nn.ReLU(),
                nn.Linear(dense_size, output_size),
            )
        else:
            self.head = nn.Linear(hidden_size, output_size)

        # Untrained output is zero: the forecast starts from "no change"
        output_layer = self.head[-1] if isinstance(self.head, nn.Sequential) else self.head
        nn.init.zeros_(output_layer.weight)
        nn.init.zeros_(output_layer.bias)

        logger.info(
            f"Initialized LSTMRegressor: input={input_size}, hidden={hidden_size}x2, "
            f"dense={dense_size}, output={output_size}, dropout={dropout}"
        )

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        """
        Args:
            x: (batch, window_size, input_size)

        Returns:
            (batch, output_size)
        """
        seq, _ = self.lstm1(x)
        seq = self.dropout1(seq)

        out, _ = self.lstm2(seq)
        last = self.dropout2(out[:, -1, :])

        return self.head(last)
