#!/usr/bin/env python3
"""
Replay CLI: run a recorded session through a fresh affect engine.

The recorded timestamps drive the engine clock, so a replay is
deterministic for a given file and configuration.

Usage:
    python -m affect_control.cli.replay --input session.jsonl
    python -m affect_control.cli.replay --input session.jsonl --json --output reports.jsonl
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from affect_control.config import load_config
from affect_control.engine import AffectEngine, AffectReport, EngineConfig
from affect_control.recording import iter_recording

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[list] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Replay a recorded session through the affect engine",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "--input",
        type=str,
        required=True,
        help="Path to a JSON-lines recording",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to configuration file (YAML or JSON)",
    )
    parser.add_argument(
        "--topology",
        type=str,
        default=None,
        help="Override the landmark topology of the configuration",
    )

    # Output arguments
    parser.add_argument(
        "--json",
        action="store_true",
        help="Emit every cycle's report as a JSON line instead of transitions",
    )
    parser.add_argument(
        "--output",
        type=str,
        default=None,
        help="Write output to this file instead of stdout",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )

    return parser.parse_args(argv)


def replay(path, config: Optional[EngineConfig] = None) -> List[AffectReport]:
    """
    Replay a recording.

    Args:
        path: Recording file
        config: Engine configuration (defaults if None)

    Returns:
        One AffectReport per recorded frame
    """
    engine = AffectEngine(config)
    return [
        engine.process(record.expressions, record.landmarks, record.timestamp_ms)
        for record in iter_recording(path)
    ]


def format_transition(report: AffectReport) -> str:
    return (
        f"{report.timestamp_ms:10.0f} ms  -> {report.label:<10s} "
        f"confidence={report.confidence:.2f}"
        f"{'  (override)' if report.override else ''}"
    )


def main(argv: Optional[list] = None) -> int:
    """Main entry point for the replay CLI."""
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    try:
        config = load_config(args.config) if args.config else EngineConfig()
        if args.topology:
            config.topology = args.topology
        reports = replay(args.input, config)
    except (FileNotFoundError, ValueError) as e:
        logger.error(str(e))
        return 1

    if args.json:
        lines = [json.dumps(report.to_dict()) for report in reports]
    else:
        lines = [format_transition(report) for report in reports if report.changed]
        final = reports[-1].label if reports else config.default_label
        lines.append(f"{len(reports)} frames, {len(lines)} transitions, final label: {final}")

    text = "\n".join(lines) + "\n"
    if args.output:
        Path(args.output).write_text(text)
        print(f"Wrote {len(lines)} lines to {args.output}")
    else:
        sys.stdout.write(text)

    return 0


if __name__ == "__main__":
    sys.exit(main())
