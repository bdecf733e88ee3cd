"""
Command Line Interface for streamflowml
Runs the full mean-streamflow regression analysis over a directory of gauge attribute files.
"""

import argparse
from pathlib import Path
import sys
from typing import List, Optional
import structlog

logger = structlog.get_logger()


def run(argv: Optional[List[str]] = None) -> int:
    """
    CLI command running the analysis and writing its tables and figures.

    Returns:
        int: Exit code (0 for success, non-zero for failure)
    """
    parser = argparse.ArgumentParser(
        description="Compare, tune and evaluate mean streamflow regression models"
    )
    parser.add_argument(
        "--data-dir",
        type=str,
        help="Directory of gauge attribute files (default: data.data_dir from config)"
    )
    parser.add_argument(
        "--config",
        type=str,
        help="YAML configuration file (optional)"
    )
    parser.add_argument(
        "--output",
        type=str,
        help="Directory for tables and figures (default: output.output_dir from config)"
    )
    parser.add_argument(
        "--no-figures",
        action="store_true",
        help="Only write the CSV tables"
    )

    args = parser.parse_args(argv)

    try:
        from streamflowml.analysis.pipeline import StreamflowAnalysis
        from streamflowml.models.evaluation import ModelEvaluator
        from streamflowml.utils.config import Config, configure_logging

        config = Config(args.config)
        configure_logging(config.get('logging.level'), config.get('logging.format'))
        if args.output:
            config.set('output.output_dir', args.output)

        analysis = StreamflowAnalysis(config, data_dir=args.data_dir)
        result = analysis.run(save_figures=not args.no_figures)
        config.create_directories()
        output_dir = Path(config.get('output.output_dir'))
        result.write_tables(output_dir)
        result.final.fitted.save(output_dir / "final_workflow.joblib")

        ModelEvaluator().print_evaluation_summary(result.report)
        return 0

    except Exception as e:
        logger.error("Analysis failed", error=str(e), error_type=type(e).__name__)
        return 1


def main() -> Optional[int]:
    return run()


if __name__ == "__main__":
    sys.exit(main())
