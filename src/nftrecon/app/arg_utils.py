"""Small argument parsing helpers shared by CLI and daemon commands."""

from __future__ import annotations

import argparse


def parse_duration_to_seconds(raw: str) -> int:
    """Parse ``<number><unit>`` durations like ``30s`` or ``5m`` to seconds.

    A bare integer is read as seconds.
    """
    value = (raw or "").strip().lower()
    if value.isdigit():
        value = f"{value}s"
    if len(value) < 2:
        raise ValueError("duration must be <number><unit>, for example: 30s, 2m, 1h")
    unit = value[-1]
    amount_text = value[:-1]
    if not amount_text.isdigit():
        raise ValueError("duration must be <number><unit>, for example: 30s, 2m, 1h")
    amount = int(amount_text)
    if amount <= 0:
        raise ValueError("duration must be greater than 0")
    multipliers = {"s": 1, "m": 60, "h": 3600}
    if unit not in multipliers:
        raise ValueError("duration unit must be one of: s, m, h")
    return amount * multipliers[unit]


def parse_interval_arg(raw: str) -> int:
    """argparse ``type=`` wrapper that rejects intervals shorter than 10s."""
    try:
        seconds = parse_duration_to_seconds(raw)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc
    if seconds < 10:
        raise argparse.ArgumentTypeError("interval must be at least 10s")
    return seconds


if __name__ == "__main__":
    """Run a real-path smoke test for argument parsing helpers."""
    assert parse_duration_to_seconds("30s") == 30
    assert parse_duration_to_seconds("2m") == 120
    assert parse_duration_to_seconds("1h") == 3600
    assert parse_duration_to_seconds("45") == 45
    assert parse_interval_arg("90s") == 90
