# File: topconfects/cli.py
# Location: topconfects/topconfects/cli.py
"""Command-line interface for topconfects."""

import argparse
import datetime
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd

from .config import load_config
from .confects.providers.normal import normal_confects
from .errors import ConfectsError, InvalidArgumentError
from .version import __version__

logger = logging.getLogger("topconfects")


def create_parser() -> argparse.ArgumentParser:
    """Create and return the argument parser for topconfects CLI."""
    parser = argparse.ArgumentParser(
        description="topconfects: Rank features by confident effect size."
    )

    # General Options
    general_group = parser.add_argument_group("General Options")
    general_group.add_argument(
        "--version",
        action="version",
        version=f"topconfects {__version__}",
        help="Show the current version and exit",
    )
    general_group.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARN", "ERROR"],
        default="INFO",
        help="Set the logging level",
    )
    general_group.add_argument(
        "--log-file", help="Path to a file to write logs to (in addition to stderr)."
    )
    general_group.add_argument(
        "-c",
        "--config",
        help="Path to configuration file",
        default=None,
    )

    # Core Input/Output
    io_group = parser.add_argument_group("Core Input/Output")
    io_group.add_argument(
        "-i",
        "--input",
        required=True,
        help="Input table (tab-separated, or comma-separated if the name ends in .csv)",
    )
    io_group.add_argument(
        "-o",
        "--output",
        default="-",
        help="Output TSV file, or '-' for stdout (default)",
    )

    # Columns
    column_group = parser.add_argument_group("Input Columns")
    column_group.add_argument(
        "--effect-column", required=True, help="Column holding the estimated effects"
    )
    column_group.add_argument(
        "--se-column", required=True, help="Column holding standard errors (or t scales)"
    )
    column_group.add_argument(
        "--df-column", help="Column holding per-feature degrees of freedom"
    )
    column_group.add_argument(
        "--df",
        type=float,
        default=None,
        help="Degrees of freedom for all features (default from config: Inf, normal)",
    )
    column_group.add_argument("--name-column", help="Column holding feature names")

    # Search Options
    search_group = parser.add_argument_group("Search Options")
    search_group.add_argument(
        "--unsigned",
        action="store_true",
        help="Effects are non-negative; use a one-sided test instead of TREAT",
    )
    search_group.add_argument(
        "--fdr", type=float, default=None, help="False Discovery Rate to control for"
    )
    search_group.add_argument(
        "--step", type=float, default=None, help="Granularity of effect sizes to test"
    )
    search_group.add_argument(
        "--max-steps",
        type=int,
        default=None,
        help="Hard cap on the number of magnitudes searched after zero",
    )
    search_group.add_argument(
        "--full",
        action="store_true",
        help="Include se, df and fdr_zero columns in the output",
    )

    return parser


def _read_table(path: str) -> pd.DataFrame:
    sep = "," if path.lower().endswith(".csv") else "\t"
    return pd.read_csv(path, sep=sep)


def _require_column(table: pd.DataFrame, column: str, option: str) -> pd.Series:
    if column not in table.columns:
        raise InvalidArgumentError(
            f"{option} '{column}' not found in input columns: {', '.join(map(str, table.columns))}",
            option,
        )
    return table[column]


def _setup_file_logging(log_file: str, level: int) -> None:
    # Ensure the log file directory exists
    log_file_path = Path(log_file)
    log_file_path.parent.mkdir(parents=True, exist_ok=True)

    fh = logging.FileHandler(log_file)
    fh.setLevel(level)
    fh.setFormatter(
        logging.Formatter("%(asctime)s [%(levelname)s] %(message)s", datefmt="%Y-%m-%d %H:%M:%S")
    )
    logger.addHandler(fh)
    logger.debug(f"Logging to file enabled: {log_file}")


def run(args: argparse.Namespace, cfg: Dict[str, Any]) -> pd.DataFrame:
    """
    Run normal_confects on the input table described by ``args``.

    Command line values take precedence over the configuration. The top
    level supplies fdr and max_steps; the ``normal`` section supplies step,
    df and signed.

    Returns
    -------
    pd.DataFrame
        The ranked confects table.
    """
    normal_cfg = cfg.get("normal", {})
    fdr = args.fdr if args.fdr is not None else cfg["fdr"]
    step = args.step if args.step is not None else normal_cfg.get("step", 0.001)
    signed = False if args.unsigned else bool(normal_cfg.get("signed", True))
    max_steps = args.max_steps if args.max_steps is not None else cfg.get("max_steps", 1_000_000)

    table = _read_table(args.input)
    logger.info(f"Read {len(table)} rows from {args.input}")

    effect = _require_column(table, args.effect_column, "--effect-column").to_numpy(dtype=float)
    se = _require_column(table, args.se_column, "--se-column").to_numpy(dtype=float)

    df: Any
    if args.df_column:
        df = _require_column(table, args.df_column, "--df-column").to_numpy(dtype=float)
    elif args.df is not None:
        df = args.df
    else:
        df = float(normal_cfg.get("df", np.inf))

    names: Optional[List[str]] = None
    if args.name_column:
        names = [str(v) for v in _require_column(table, args.name_column, "--name-column")]

    result = normal_confects(
        effect,
        se,
        df=df,
        signed=signed,
        fdr=fdr,
        step=step,
        full=args.full,
        names=names,
        max_steps=max_steps,
    )
    return result.table


def main(argv: Optional[List[str]] = None) -> int:
    """Run main entry point for topconfects CLI.

    Steps:
        1. Parse arguments.
        2. Configure logging and load config.
        3. Read the input table and run the confident effect size search.
        4. Write the ranked table.
    """
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )

    parser = create_parser()
    args: argparse.Namespace = parser.parse_args(argv)

    # Configure logging level
    log_level_map = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARN": logging.WARNING,
        "ERROR": logging.ERROR,
    }
    logger.setLevel(log_level_map[args.log_level])

    if args.log_file:
        _setup_file_logging(args.log_file, log_level_map[args.log_level])

    start_time: datetime.datetime = datetime.datetime.now()
    logger.info(f"Run started at {start_time.isoformat()}")
    logger.debug(f"CLI arguments: {args}")

    try:
        cfg: Dict[str, Any] = load_config(args.config)
        logger.debug(f"Configuration loaded: {cfg}")

        table = run(args, cfg)
    except (ConfectsError, FileNotFoundError, ValueError) as e:
        logger.error(f"topconfects failed: {e}")
        return 1

    if args.output in ("-", "stdout"):
        table.to_csv(sys.stdout, sep="\t", index=False, na_rep="NA")
    else:
        table.to_csv(args.output, sep="\t", index=False, na_rep="NA")
        logger.info(f"Wrote {len(table)} rows to {args.output}")

    logger.info(f"Run finished in {datetime.datetime.now() - start_time}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
