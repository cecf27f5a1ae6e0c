"""
Moving average of the training loss.
"""

from __future__ import annotations

from typing import List

from ...domain._errors import SolverConfigError


class SmoothedLoss:
    """
    Fixed-capacity window over the most recent raw losses.

    While the window is filling, the smoothed value is the mean of every
    sample seen. Once full, the sample at ``index mod window`` is replaced
    and the mean adjusted by ``(new - replaced) / window``, so each update
    is O(1).

    Parameters
    ----------
    window : int
        Window size ``W`` (the solver's ``average_loss``); must be >= 1.
    """

    def __init__(self, window: int) -> None:
        if int(window) < 1:
            raise SolverConfigError(f"average_loss must be >= 1, got {window}")
        self.window = int(window)
        self._samples: List[float] = []
        self._value = 0.0

    @property
    def value(self) -> float:
        return self._value

    def __len__(self) -> int:
        return len(self._samples)

    def update(self, loss: float, index: int) -> float:
        """
        Add a sample and return the new smoothed loss.

        Parameters
        ----------
        loss : float
            Raw loss of the iteration.
        index : int
            Iterations run since the loop started (``iter - start_iter``);
            selects the slot replaced once the window is full.
        """
        loss = float(loss)
        if len(self._samples) < self.window:
            self._samples.append(loss)
            size = len(self._samples)
            self._value = (self._value * (size - 1) + loss) / size
        else:
            slot = int(index) % self.window
            self._value += (loss - self._samples[slot]) / self.window
            self._samples[slot] = loss
        return self._value
