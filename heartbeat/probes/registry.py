"""Probe registry — closed set of probe types, their options, and their runners.

Names are resolved once, when the heartbeat is built. An unknown type or
malformed options fail there, before any cycle runs.
"""

from __future__ import annotations

import importlib
from abc import abstractmethod
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..config import ConfigError
from . import engine
from .results import ProbeResult


class UnknownProbeError(ConfigError):
    """Raised for a probe type name outside ``ProbeType``."""


class ProbeType(str, Enum):
    HTTP = "http"
    JSON = "json"
    MONGO = "mongo"
    RESOLVE = "resolve"
    PING = "ping"


# ── Options ──────────────────────────────────────────────────────────────────


class ProbeOptions(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    @abstractmethod
    def target(self) -> str:
        ...


class HttpOptions(ProbeOptions):
    url: str
    timeout_ms: int = Field(default=10_000, gt=0)

    @property
    def target(self) -> str:
        return self.url


class JsonOptions(ProbeOptions):
    url: str
    expected: Any = Field(validation_alias=AliasChoices("expected", "response"))
    timeout_ms: int = Field(default=10_000, gt=0)

    @property
    def target(self) -> str:
        return self.url


def import_callable(path: str) -> Callable[..., Any]:
    """Resolve ``"package.module:attr"`` to the callable it names."""
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"expected 'module:function', got {path!r}")
    try:
        obj = getattr(importlib.import_module(module_name), attr)
    except (ImportError, AttributeError) as e:
        raise ValueError(f"cannot import {path!r}: {e}") from e
    if not callable(obj):
        raise ValueError(f"{path!r} is not callable")
    return obj


class MongoOptions(ProbeOptions):
    connection: str
    database: str | None = None
    query: Callable[[Any], Any] | None = None
    timeout_ms: int = Field(default=5_000, gt=0)

    @field_validator("query", mode="before")
    @classmethod
    def _load_query(cls, v: Any) -> Any:
        if isinstance(v, str):
            return import_callable(v)
        return v

    @property
    def target(self) -> str:
        return self.connection


class ResolveOptions(ProbeOptions):
    name: str
    port: int = Field(default=80, gt=0, lt=65536)
    timeout_ms: int = Field(default=5_000, gt=0)

    @property
    def target(self) -> str:
        return self.name


class PingOptions(ProbeOptions):
    ip: str
    port: int = Field(default=80, gt=0, lt=65536)
    timeout_ms: int = Field(default=5_000, gt=0)

    @property
    def target(self) -> str:
        return self.ip


# ── Runners ──────────────────────────────────────────────────────────────────


def _http(o: HttpOptions) -> list[ProbeResult]:
    return [engine.run_http_check(o.url, o.timeout_ms)]


def _json(o: JsonOptions) -> list[ProbeResult]:
    return [engine.run_json_check(o.url, o.expected, o.timeout_ms)]


def _mongo(o: MongoOptions) -> list[ProbeResult]:
    return [engine.run_mongo_check(o.connection, o.query, o.database, o.timeout_ms)]


def _resolve(o: ResolveOptions) -> list[ProbeResult]:
    return engine.run_resolve_check(o.name, o.port, o.timeout_ms)


def _ping(o: PingOptions) -> list[ProbeResult]:
    return [engine.run_ping_check(o.ip, o.port, o.timeout_ms)]


PROBES: dict[ProbeType, tuple[type[ProbeOptions], Callable[[Any], list[ProbeResult]]]] = {
    ProbeType.HTTP: (HttpOptions, _http),
    ProbeType.JSON: (JsonOptions, _json),
    ProbeType.MONGO: (MongoOptions, _mongo),
    ProbeType.RESOLVE: (ResolveOptions, _resolve),
    ProbeType.PING: (PingOptions, _ping),
}


@dataclass(frozen=True)
class Probe:
    """A probe type bound to its options, ready to run once per cycle."""

    type: ProbeType
    options: ProbeOptions
    runner: Callable[[Any], list[ProbeResult]]

    @property
    def target(self) -> str:
        return self.options.target

    def __call__(self) -> list[ProbeResult]:
        return self.runner(self.options)


def probe_type(name: str | ProbeType) -> ProbeType:
    try:
        return ProbeType(name)
    except ValueError:
        raise UnknownProbeError(f"missing probe type for: {name}") from None


def resolve_probe(name: str | ProbeType, options: Mapping[str, Any] | ProbeOptions) -> Probe:
    """Bind a probe type name and its raw options into a runnable Probe."""
    kind = probe_type(name)
    options_model, runner = PROBES[kind]

    if isinstance(options, options_model):
        return Probe(kind, options, runner)
    if not isinstance(options, Mapping):
        raise ConfigError(f"{kind.value} probe options must be a mapping, got {type(options).__name__}")
    try:
        bound = options_model.model_validate(dict(options))
    except ValidationError as e:
        raise ConfigError(f"invalid {kind.value} probe options: {e}") from e
    return Probe(kind, bound, runner)
