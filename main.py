import argparse
import sys
from pathlib import Path

from longitudinal_mlm.config import OCCASION_COLS, AnalysisConfig, default_data_path
from longitudinal_mlm.errors import AnalysisError
from longitudinal_mlm.pipeline import run_analysis


def get_args(argv=None):
    parser = argparse.ArgumentParser(
        description=(
            "Reshape the person-level language scores to person-period format and "
            "fit two- and three-level random-intercept growth models."
        )
    )

    parser.add_argument(
        "-d",
        "--data",
        type=Path,
        default=None,
        help="Person-level CSV (default: $LANG_DATA_PATH or Language.csv)",
    )
    parser.add_argument(
        "-o",
        "--out",
        type=Path,
        default=None,
        help="Write the long table, model tables and comparison as CSV to this directory. If omitted, only prints.",
    )
    parser.add_argument(
        "--linear-time",
        action="store_true",
        help="Enter Time as a linear trend instead of a factor with one level per occasion.",
    )
    parser.add_argument(
        "--occasions",
        nargs="+",
        default=None,
        metavar="COLUMN",
        help="Occasion columns to stack (default: LangScore1..LangScore6). Only LangScore1..6 have a time index.",
    )
    parser.add_argument(
        "--null-fill",
        action="store_true",
        help="Leave Time missing for occasion columns without a time index instead of failing.",
    )
    parser.add_argument(
        "--plot",
        action="store_true",
        help="Also draw the mean trajectory (needs --out).",
    )

    return parser.parse_args(argv)


def main(argv=None) -> None:
    args = get_args(argv)

    config = AnalysisConfig(
        data_path=args.data or default_data_path(),
        out_dir=args.out,
        time_as_factor=not args.linear_time,
        occasion_cols=tuple(args.occasions) if args.occasions else OCCASION_COLS,
        on_unmapped="null" if args.null_fill else "raise",
        plot=args.plot,
    )
    try:
        run_analysis(config)
    except (AnalysisError, FileNotFoundError) as e:
        sys.exit(f"Error: {e}")


if __name__ == "__main__":
    main()
