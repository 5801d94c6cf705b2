"""Simulated development workflows driven by the phase engine."""
