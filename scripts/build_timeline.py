#!/usr/bin/env python3
"""Build the canonical tumor-assessment timeline from the source spreadsheets.

Usage:
    python scripts/build_timeline.py --config configs/default.yaml --output results/timeline.csv
    python scripts/build_timeline.py --config configs/default.yaml --output results/timeline.xlsx \
        --summary results/patient_summary.csv
"""

import argparse
import logging
from pathlib import Path

from recist_timeline.assembler import TimelineAssembler
from recist_timeline.config import PipelineConfig
from recist_timeline.data import SourceTableLoader, select_cohort, write_table
from recist_timeline.summary import summarize_patients

logger = logging.getLogger(__name__)


def main(argv=None):
    """Load sources, assemble the timeline and write the outputs."""
    parser = argparse.ArgumentParser(description="Build the canonical RECIST timeline table")
    parser.add_argument("--config", type=str, default="configs/default.yaml",
                        help="Pipeline YAML configuration")
    parser.add_argument("--output", type=str, default="results/timeline.csv",
                        help="Output file (.csv or .xlsx)")
    parser.add_argument("--summary", type=str, default=None,
                        help="Optional per-patient summary output (.csv or .xlsx)")
    parser.add_argument("--log-level", type=str, default="INFO",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                        help="Logging verbosity")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    config = PipelineConfig.from_yaml(args.config)
    tables = SourceTableLoader(config).load_all()
    cohort = select_cohort(tables.cohort, config)

    result = TimelineAssembler(config).assemble(tables, cohort)
    logger.info("\n" + result.summary())

    write_table(result.table, Path(args.output))

    if args.summary:
        write_table(summarize_patients(result.table), Path(args.summary), sheet_name="summary")

    return result


if __name__ == "__main__":
    main()
