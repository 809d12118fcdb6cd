"""
CLI subpackage for command-line interface tools.

Available CLI scripts:
- run: Run the live affect monitor on a camera
- replay: Replay a recorded session through a fresh engine

Usage:
    python -m affect_control.cli.run --help
    python -m affect_control.cli.replay --help
"""

__all__ = ["run", "replay"]
