"""
Training history utilities.

This module defines lightweight records of what a solver reported while
training: the values logged at every display step and the results of every
evaluation pass. They mirror the progress log so that callers embedding the
solver can inspect a run without parsing log output.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Union


Number = Union[int, float]


@dataclass
class TestResult:
    """
    Outcome of one evaluation pass.

    Attributes
    ----------
    test_net_id : int
        Index of the evaluation network.
    iteration : int
        Training iteration at which the pass ran.
    outputs : Dict[str, List[float]]
        Per-output means over the pass, one value per output element.
    loss : Optional[float]
        Mean loss over the pass when `test_compute_loss` is set.
    """

    __test__ = False

    test_net_id: int
    iteration: int
    outputs: Dict[str, List[float]] = field(default_factory=dict)
    loss: Optional[float] = None

    def scalar(self, name: str) -> float:
        """Return the single value of a scalar output."""
        values = self.outputs[name]
        if len(values) != 1:
            raise ValueError(f"Output '{name}' has {len(values)} values, not one")
        return values[0]


@dataclass
class History:
    """
    Container for per-display training logs and evaluation results.

    Attributes
    ----------
    history : Dict[str, List[float]]
        Mapping from logged name (``loss``, ``lr``, output names) to the
        values recorded at each display step, in order.
    iteration : List[int]
        Iterations at which the display steps happened.
    tests : List[TestResult]
        Every evaluation pass, in order.

    Notes
    -----
    The object is passive: the solver appends already-computed values.
    """

    history: Dict[str, List[float]] = field(default_factory=dict)
    iteration: List[int] = field(default_factory=list)
    tests: List[TestResult] = field(default_factory=list)

    def _ensure_key(self, k: str) -> None:
        if k not in self.history:
            self.history[k] = []

    def append_display(self, iteration: int, logs: Mapping[str, Number]) -> None:
        """Record the values logged at a display step."""
        self.iteration.append(int(iteration))
        for k, v in logs.items():
            self._ensure_key(k)
            self.history[k].append(float(v))

    def append_test(self, result: TestResult) -> None:
        self.tests.append(result)

    def last(self) -> Dict[str, float]:
        """Return the latest recorded value of every logged name."""
        out: Dict[str, float] = {}
        for k, vs in self.history.items():
            if vs:
                out[k] = float(vs[-1])
        return out
