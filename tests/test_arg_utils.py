"""Unit tests for CLI argument parsing helpers."""

from __future__ import annotations

import argparse

import pytest

from nftrecon.app.arg_utils import parse_duration_to_seconds, parse_interval_arg


def test_parse_duration_seconds():
    """'30s' -> 30."""
    assert parse_duration_to_seconds("30s") == 30


def test_parse_duration_minutes():
    """'5m' -> 300."""
    assert parse_duration_to_seconds("5m") == 300


def test_parse_duration_hours():
    """'2h' -> 7200."""
    assert parse_duration_to_seconds("2h") == 7200


def test_parse_duration_bare_number_is_seconds():
    assert parse_duration_to_seconds("90") == 90


@pytest.mark.parametrize("raw", ["", "s", "10x", "-5s", "0s", "abc"])
def test_parse_duration_invalid(raw):
    with pytest.raises(ValueError):
        parse_duration_to_seconds(raw)


def test_parse_interval_enforces_minimum():
    """Intervals below 10s are rejected for argparse."""
    assert parse_interval_arg("10s") == 10
    with pytest.raises(argparse.ArgumentTypeError):
        parse_interval_arg("9s")
    with pytest.raises(argparse.ArgumentTypeError):
        parse_interval_arg("soon")
