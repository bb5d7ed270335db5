"""Drift detection, authorization, corrective writes, and run coordination."""
