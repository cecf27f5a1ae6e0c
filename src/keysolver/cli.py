"""Command line entry point for keysolver training runs."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Iterable

from .domain._errors import KeySolverError
from .infrastructure.solvers._solver import Solver

logger = logging.getLogger("keysolver")


def parse_args(argv: Iterable[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="keysolver", description=__doc__)
    commands = parser.add_subparsers(dest="command", required=True)

    train = commands.add_parser("train", help="Train a network with a solver definition")
    train.add_argument(
        "--solver", type=Path, required=True, help="Solver definition file (YAML or JSON)"
    )
    train.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity",
    )
    resume = train.add_mutually_exclusive_group()
    resume.add_argument(
        "--snapshot", type=Path, help="Solver state file to resume training from"
    )
    resume.add_argument(
        "--weights", type=Path, help="Model file to initialize the training net from"
    )
    return parser.parse_args(argv)


def train(args: argparse.Namespace) -> None:
    logger.info("Loading solver definition from %s", args.solver)
    solver = Solver(args.solver)
    if args.weights is not None:
        solver.load_weights(args.weights)
    solver.solve(args.snapshot)


def main(argv: Iterable[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname).1s %(name)s] %(message)s",
    )
    try:
        if args.command == "train":
            train(args)
    except KeySolverError as exc:
        logger.error("%s: %s", type(exc).__name__, exc)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
