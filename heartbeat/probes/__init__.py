"""Probe subsystem — executors, result variants, type registry."""

from .registry import Probe, ProbeType, UnknownProbeError, resolve_probe
from .results import MismatchResult, ProbeResult, ResultKind, TimedResult, UnreachedResult
