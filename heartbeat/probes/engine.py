"""Probe executors — HTTP, JSON body, MongoDB query, DNS fan-out, TCP ping.

Every runner is blocking and returns results; it never raises for a
target that is down or malformed. The Job layer runs them in a thread pool.
"""

from __future__ import annotations

import logging
import socket
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from typing import Any

import dns.exception
import dns.resolver
import httpx
import pymongo
from pymongo.errors import PyMongoError

from .results import (
    MismatchResult,
    ProbeResult,
    TimedResult,
    UnreachedResult,
    describe_error,
)

logger = logging.getLogger(__name__)


def _elapsed_ms(t0: float) -> float:
    return round((time.perf_counter() - t0) * 1000, 1)


def _log_result(result: ProbeResult) -> ProbeResult:
    if result.success:
        logger.info("ok %s", result.to_record())
    else:
        logger.error("failed %s", result.to_record())
    return result


def _fetch(url: str, timeout_ms: int) -> tuple[httpx.Response | None, Exception | None, float]:
    """GET ``url``; returns (response, transport error, elapsed ms)."""
    t0 = time.perf_counter()
    try:
        with httpx.Client(timeout=timeout_ms / 1000, follow_redirects=True) as client:
            resp = client.get(url)
        return resp, None, _elapsed_ms(t0)
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        return None, e, _elapsed_ms(t0)


# ── HTTP ─────────────────────────────────────────────────────────────────────


def run_http_check(url: str, timeout_ms: int = 10_000) -> TimedResult:
    """GET the URL and measure the response time. Up iff status 200."""
    logger.info("http: %s", url)
    resp, err, latency = _fetch(url, timeout_ms)

    if err is None and resp is not None and resp.status_code == 200:
        result = TimedResult(
            target=url, check_type="http", success=True,
            response_time_ms=latency, status_code=resp.status_code,
        )
    else:
        result = TimedResult(
            target=url, check_type="http", success=False,
            response_time_ms=latency,
            status_code=resp.status_code if resp is not None else None,
            message="ping failed",
            cause=describe_error(err) if err else None,
        )
    _log_result(result)
    return result


# ── JSON ─────────────────────────────────────────────────────────────────────


def json_equal(a: Any, b: Any) -> bool:
    """Structural equality of decoded JSON.

    Object key order is ignored, array order is not, and booleans never
    equal numbers (``True == 1`` in Python, but not in JSON).
    """
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a == b
    if isinstance(a, (int, float)) and isinstance(b, (int, float)):
        return a == b
    if isinstance(a, dict) and isinstance(b, dict):
        return a.keys() == b.keys() and all(json_equal(a[k], b[k]) for k in a)
    if isinstance(a, list) and isinstance(b, list):
        return len(a) == len(b) and all(json_equal(x, y) for x, y in zip(a, b))
    return type(a) is type(b) and a == b


def run_json_check(url: str, expected: Any, timeout_ms: int = 10_000) -> ProbeResult:
    """GET the URL and compare the decoded body against ``expected``."""
    logger.info("json: %s", url)
    resp, err, latency = _fetch(url, timeout_ms)

    if err is not None or resp is None or resp.status_code != 200:
        result: ProbeResult = TimedResult(
            target=url, check_type="json", success=False,
            response_time_ms=latency,
            status_code=resp.status_code if resp is not None else None,
            message="json failed",
            cause=describe_error(err) if err else None,
        )
        return _log_result(result)

    try:
        body: Any = resp.json()
    except ValueError:
        body = resp.text

    if json_equal(body, expected):
        result = TimedResult(
            target=url, check_type="json", success=True,
            response_time_ms=latency, status_code=resp.status_code,
        )
    else:
        result = MismatchResult(
            target=url, check_type="json", expected=expected, actual=body,
        )
    return _log_result(result)


# ── MongoDB ──────────────────────────────────────────────────────────────────


def _ping_database(db: Any) -> Any:
    return db.command("ping")


def run_mongo_check(
    connection: str,
    query: Callable[[Any], Any] | None = None,
    database: str | None = None,
    timeout_ms: int = 5_000,
) -> ProbeResult:
    """Connect, time ``query(db)``, and always close the client."""
    query = query or _ping_database

    try:
        client: pymongo.MongoClient = pymongo.MongoClient(
            connection, serverSelectionTimeoutMS=timeout_ms,
        )
    except (PyMongoError, ValueError) as e:  # bad URI ports surface as ValueError
        return _log_result(UnreachedResult(
            target=connection, check_type="mongo",
            message="failed to connect database", cause=describe_error(e),
        ))

    with client:
        try:
            client.admin.command("ping")
        except PyMongoError as e:
            return _log_result(UnreachedResult(
                target=connection, check_type="mongo",
                message="failed to connect database", cause=describe_error(e),
            ))

        logger.info("mongo query: %s", connection)
        db = client.get_database(database) if database else client.get_default_database("test")

        t0 = time.perf_counter()
        error: Exception | None = None
        try:
            query(db)
        except Exception as e:  # any query error is a probe failure
            error = e
        latency = _elapsed_ms(t0)

    if error is None:
        result = TimedResult(
            target=connection, check_type="mongo", success=True, response_time_ms=latency,
        )
    else:
        result = TimedResult(
            target=connection, check_type="mongo", success=False,
            response_time_ms=latency, message="mongo failed", cause=describe_error(error),
        )
    return _log_result(result)


# ── TCP ping ─────────────────────────────────────────────────────────────────


def _tcp_probe(ip: str, port: int, timeout_ms: int, check_type: str) -> TimedResult:
    t0 = time.perf_counter()
    try:
        sock = socket.create_connection((ip, port), timeout=timeout_ms / 1000)
        sock.close()
        result = TimedResult(
            target=ip, check_type=check_type, success=True, response_time_ms=_elapsed_ms(t0),
        )
    except (OSError, UnicodeError) as e:
        result = TimedResult(
            target=ip, check_type=check_type, success=False,
            response_time_ms=_elapsed_ms(t0), message="ping failed", cause=describe_error(e),
        )
    _log_result(result)
    return result


def run_ping_check(ip: str, port: int = 80, timeout_ms: int = 5_000) -> TimedResult:
    """TCP reachability of ``ip:port``."""
    logger.info("ping: %s", ip)
    return _tcp_probe(ip, port, timeout_ms, "ping")


# ── DNS resolve + fan-out ────────────────────────────────────────────────────


def resolve_ipv4(name: str, timeout_ms: int = 5_000) -> list[str]:
    resolver = dns.resolver.Resolver()
    resolver.lifetime = timeout_ms / 1000
    answers = resolver.resolve(name, "A")
    return [rdata.address for rdata in answers]


def run_resolve_check(name: str, port: int = 80, timeout_ms: int = 5_000) -> list[ProbeResult]:
    """Resolve every A record of ``name`` and ping each address concurrently."""
    logger.info("resolve: %s", name)
    try:
        addresses = resolve_ipv4(name, timeout_ms)
    except dns.exception.DNSException as e:
        return [_log_result(UnreachedResult(
            target=name, check_type="resolve",
            message="failed resolved ip by name", cause=describe_error(e),
        ))]

    if not addresses:
        return []

    with ThreadPoolExecutor(max_workers=len(addresses)) as pool:
        return list(pool.map(
            lambda ip: _tcp_probe(ip, port, timeout_ms, "resolve"), addresses,
        ))
