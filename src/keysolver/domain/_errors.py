"""
Exception taxonomy for keysolver.

Every failure the solver can surface is a configuration or operator mistake:
a contradictory solver definition, an unknown policy name, a checkpoint that
does not match the current network, or an execution mode the installation
cannot serve. None of them is recovered from locally. Library code raises one
of the exceptions below and the command-line entry point, which is the
process boundary, reports it and exits with a non-zero status.

All exceptions derive from `KeySolverError` so callers embedding the solver
can catch the whole family at once.
"""


class KeySolverError(Exception):
    """Base class of every error raised by keysolver."""


class SolverConfigError(KeySolverError, ValueError):
    """
    Raised when a solver or network definition is malformed or contradictory.

    Examples include zero or several train-net sources, mismatched
    `test_iter` / `test_state` counts, a non-positive `average_loss`, unknown
    configuration fields, unreadable definition files and unknown layer or
    solver types.
    """


class UnknownPolicyError(KeySolverError, ValueError):
    """
    Raised on first use of an unrecognized policy string.

    Attributes
    ----------
    kind : str
        What kind of policy was looked up (e.g. "learning rate policy").
    name : str
        The offending policy name.
    """

    def __init__(self, kind: str, name: str) -> None:
        super().__init__(f"Unknown {kind}: {name!r}")
        self.kind = kind
        self.name = name


class SolverStateError(KeySolverError):
    """
    Raised when a checkpoint cannot be restored into the current solver.

    Typical causes are a history-buffer count that differs from the number of
    current parameters (after a configuration change), a shape mismatch, a
    missing file or an unsupported checkpoint format tag.
    """


class DeviceNotSupportedError(KeySolverError, RuntimeError):
    """
    Raised when an operation is requested on a device backend that is not
    available in this installation.

    Attributes
    ----------
    op : str
        The name of the operation that was attempted.
    device : str
        String representation of the requested device.
    """

    def __init__(self, op: str, device: str, reason: str = "") -> None:
        msg = f"{op} is not available for device '{device}'."
        if reason:
            msg = f"{msg} {reason}"
        super().__init__(msg)
        self.op = op
        self.device = device


class DeviceMismatchError(KeySolverError, RuntimeError):
    """
    Raised when a buffer is handed to the buffer-operation backend of the
    other execution mode (a host array to the CUDA path or a device pointer
    to the host path).
    """

    def __init__(self, expected: str, got: str) -> None:
        super().__init__(f"Device mismatch: expected {expected} buffer, got {got}.")
        self.expected = expected
        self.got = got
