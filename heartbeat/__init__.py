"""Heartbeat — periodic probes, persisted results, failure notifications."""

from .config import ConfigError, HeartbeatConfig, load_config
from .job import Job
from .scheduler import Heartbeat

__version__ = "0.1.0"
