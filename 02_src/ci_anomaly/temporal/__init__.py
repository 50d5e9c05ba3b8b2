"""Temporal gate module."""

from .gate import GateDecision, TemporalGate, parse_timestamp

__all__ = ["GateDecision", "TemporalGate", "parse_timestamp"]
