"""Tests for the probe executors, result variants and probe registry."""

from __future__ import annotations

import socket
from unittest.mock import MagicMock, patch

import dns.resolver
import httpx
import pytest
from pydantic import ValidationError
from pymongo.errors import InvalidURI, ServerSelectionTimeoutError

from heartbeat.config import ConfigError
from heartbeat.probes.engine import (
    json_equal,
    resolve_ipv4,
    run_http_check,
    run_json_check,
    run_mongo_check,
    run_ping_check,
    run_resolve_check,
)
from heartbeat.probes.registry import (
    MongoOptions,
    PingOptions,
    Probe,
    ProbeOptions,
    ProbeType,
    UnknownProbeError,
    resolve_probe,
)
from heartbeat.probes.results import (
    MismatchResult,
    ResultKind,
    TimedResult,
    UnreachedResult,
)


# ── Results ──────────────────────────────────────────────────────────────────


class TestResults:
    def test_timed_auto_timestamp(self) -> None:
        r = TimedResult(target="http://a", check_type="http", success=True, response_time_ms=1.5)
        assert r.observed_at
        assert "T" in r.observed_at

    def test_timed_record_omits_missing_status(self) -> None:
        r = TimedResult(target="1.2.3.4", check_type="ping", success=True, response_time_ms=3.0)
        record = r.to_record()
        assert record["kind"] == "timed"
        assert record["response_time_ms"] == 3.0
        assert "status_code" not in record
        assert "message" not in record

    def test_unreached_cannot_succeed(self) -> None:
        with pytest.raises(ValueError):
            UnreachedResult(target="x", check_type="mongo", success=True)

    def test_mismatch_cannot_succeed(self) -> None:
        with pytest.raises(ValueError):
            MismatchResult(target="x", check_type="json", success=True)

    def test_mismatch_record_has_no_timing(self) -> None:
        r = MismatchResult(target="http://a", check_type="json", expected={"a": 1}, actual=None)
        record = r.to_record()
        assert record["kind"] == ResultKind.MISMATCH.value
        assert record["expected"] == {"a": 1}
        assert record["actual"] is None
        assert "response_time_ms" not in record
        assert "status_code" not in record
        assert "observed_at" not in record


# ── HTTP ─────────────────────────────────────────────────────────────────────


class TestHTTPCheck:
    def test_success(self, http_routes) -> None:
        http_routes["http://ok.test/health"] = httpx.Response(200, text="fine")
        result = run_http_check("http://ok.test/health")
        assert result.success is True
        assert result.status_code == 200
        assert result.response_time_ms >= 0
        assert result.target == "http://ok.test/health"

    def test_non_200_fails(self, http_routes) -> None:
        http_routes["http://down.test/"] = httpx.Response(500)
        result = run_http_check("http://down.test/")
        assert result.success is False
        assert result.status_code == 500
        assert result.message == "ping failed"
        assert result.cause is None

    def test_transport_error(self, http_routes) -> None:
        http_routes["http://gone.test/"] = httpx.ConnectError("connection refused")
        result = run_http_check("http://gone.test/")
        assert result.success is False
        assert result.status_code is None
        assert result.message == "ping failed"
        assert "ConnectError" in result.cause
        assert result.response_time_ms >= 0

    def test_malformed_url_fails(self, http_routes) -> None:
        result = run_http_check("http://[::1")
        assert result.success is False
        assert result.message == "ping failed"
        assert "InvalidURL" in result.cause


# ── JSON ─────────────────────────────────────────────────────────────────────


class TestJSONEqual:
    def test_key_order_irrelevant(self) -> None:
        assert json_equal({"a": 1, "b": [1, 2]}, {"b": [1, 2], "a": 1})

    def test_array_order_significant(self) -> None:
        assert not json_equal([1, 2], [2, 1])

    def test_bool_is_not_number(self) -> None:
        assert not json_equal(True, 1)
        assert not json_equal({"ok": 1}, {"ok": True})

    def test_int_float(self) -> None:
        assert json_equal(1, 1.0)

    def test_missing_key(self) -> None:
        assert not json_equal({"a": 1}, {"a": 1, "b": None})


class TestJSONCheck:
    def test_match(self, http_routes) -> None:
        http_routes["http://api.test/status"] = httpx.Response(200, json={"status": "ok", "n": [1, 2]})
        result = run_json_check("http://api.test/status", {"n": [1, 2], "status": "ok"})
        assert result.success is True
        assert isinstance(result, TimedResult)
        assert result.status_code == 200

    def test_mismatch_with_200(self, http_routes) -> None:
        http_routes["http://api.test/status"] = httpx.Response(200, json={"status": "degraded"})
        result = run_json_check("http://api.test/status", {"status": "ok"})
        assert result.success is False
        assert isinstance(result, MismatchResult)
        assert result.expected == {"status": "ok"}
        assert result.actual == {"status": "degraded"}

    def test_unparseable_body_is_mismatch(self, http_routes) -> None:
        http_routes["http://api.test/status"] = httpx.Response(200, text="<html>")
        result = run_json_check("http://api.test/status", {"status": "ok"})
        assert isinstance(result, MismatchResult)
        assert result.actual == "<html>"

    def test_http_failure_reported_first(self, http_routes) -> None:
        http_routes["http://api.test/status"] = httpx.Response(503, json={"status": "ok"})
        result = run_json_check("http://api.test/status", {"status": "ok"})
        assert isinstance(result, TimedResult)
        assert result.success is False
        assert result.status_code == 503
        assert result.message == "json failed"

    def test_malformed_url_fails(self, http_routes) -> None:
        result = run_json_check("http://[::1", {"status": "ok"})
        assert isinstance(result, TimedResult)
        assert result.success is False
        assert result.status_code is None
        assert "InvalidURL" in result.cause


# ── MongoDB ──────────────────────────────────────────────────────────────────


@pytest.fixture
def mongo_client():
    with patch("heartbeat.probes.engine.pymongo.MongoClient") as mock_cls:
        client = MagicMock()
        client.__enter__.return_value = client
        client.__exit__.return_value = False
        mock_cls.return_value = client
        yield mock_cls, client


class TestMongoCheck:
    def test_success_times_query(self, mongo_client) -> None:
        _, client = mongo_client
        query = MagicMock()
        result = run_mongo_check("mongodb://db.test/app", query)

        assert result.success is True
        assert isinstance(result, TimedResult)
        assert result.target == "mongodb://db.test/app"
        query.assert_called_once_with(client.get_default_database.return_value)
        client.__exit__.assert_called_once()

    def test_named_database(self, mongo_client) -> None:
        _, client = mongo_client
        query = MagicMock()
        run_mongo_check("mongodb://db.test", query, database="reports")
        client.get_database.assert_called_once_with("reports")
        query.assert_called_once_with(client.get_database.return_value)

    def test_default_query_pings(self, mongo_client) -> None:
        _, client = mongo_client
        result = run_mongo_check("mongodb://db.test/app")
        assert result.success is True
        client.get_default_database.return_value.command.assert_called_once_with("ping")

    def test_query_error_fails_and_closes(self, mongo_client) -> None:
        _, client = mongo_client
        query = MagicMock(side_effect=RuntimeError("collection missing"))
        result = run_mongo_check("mongodb://db.test/app", query)

        assert result.success is False
        assert result.message == "mongo failed"
        assert "collection missing" in result.cause
        client.__exit__.assert_called_once()

    def test_connect_failure_is_unreached(self, mongo_client) -> None:
        _, client = mongo_client
        client.admin.command.side_effect = ServerSelectionTimeoutError("no servers")
        query = MagicMock()
        result = run_mongo_check("mongodb://db.test/app", query)

        assert isinstance(result, UnreachedResult)
        assert result.message == "failed to connect database"
        query.assert_not_called()
        client.__exit__.assert_called_once()

    def test_invalid_uri_is_unreached(self, mongo_client) -> None:
        mock_cls, _ = mongo_client
        mock_cls.side_effect = InvalidURI("bad uri")
        result = run_mongo_check("not-a-uri")
        assert isinstance(result, UnreachedResult)
        assert result.success is False

    def test_bad_port_is_unreached(self, mongo_client) -> None:
        mock_cls, _ = mongo_client
        mock_cls.side_effect = ValueError("Port must be an integer between 0 and 65535")
        query = MagicMock()
        result = run_mongo_check("mongodb://localhost:99999/app", query)

        assert isinstance(result, UnreachedResult)
        assert result.message == "failed to connect database"
        assert "ValueError" in result.cause
        query.assert_not_called()


# ── Ping / resolve ───────────────────────────────────────────────────────────


def _connect_only(reachable: set[str]):
    def fake_connect(address, timeout=None):
        ip, _port = address
        if ip not in reachable:
            raise ConnectionRefusedError(f"{ip} refused")
        return MagicMock(spec=socket.socket)
    return fake_connect


class TestPingCheck:
    def test_reachable(self) -> None:
        with patch("heartbeat.probes.engine.socket.create_connection", side_effect=_connect_only({"10.0.0.1"})) as conn:
            result = run_ping_check("10.0.0.1")
        assert result.success is True
        assert result.response_time_ms >= 0
        conn.assert_called_once_with(("10.0.0.1", 80), timeout=5.0)

    def test_unreachable(self) -> None:
        with patch("heartbeat.probes.engine.socket.create_connection", side_effect=_connect_only(set())):
            result = run_ping_check("10.0.0.2")
        assert result.success is False
        assert result.message == "ping failed"
        assert "ConnectionRefusedError" in result.cause

    def test_overlong_host_label_fails(self) -> None:
        host = "a" * 80 + ".example"
        result = run_ping_check(host, timeout_ms=100)
        assert result.success is False
        assert result.target == host
        assert result.message == "ping failed"
        assert "Unicode" in result.cause


class TestResolveCheck:
    def test_fans_out_per_address(self) -> None:
        addresses = ["10.0.0.1", "10.0.0.2", "10.0.0.3"]
        with patch("heartbeat.probes.engine.resolve_ipv4", return_value=addresses), \
             patch("heartbeat.probes.engine.socket.create_connection",
                   side_effect=_connect_only({"10.0.0.1", "10.0.0.3"})):
            results = run_resolve_check("svc.test")

        assert [r.target for r in results] == addresses
        assert [r.success for r in results] == [True, False, True]
        assert all(r.check_type == "resolve" for r in results)

    def test_dns_failure_single_result(self) -> None:
        with patch("heartbeat.probes.engine.resolve_ipv4", side_effect=dns.resolver.NXDOMAIN()):
            results = run_resolve_check("nope.test")

        assert len(results) == 1
        assert results[0].target == "nope.test"
        assert results[0].message == "failed resolved ip by name"
        assert isinstance(results[0], UnreachedResult)

    def test_resolve_ipv4_reads_a_records(self) -> None:
        with patch("heartbeat.probes.engine.dns.resolver.Resolver") as mock_resolver:
            mock_resolver.return_value.resolve.return_value = [
                MagicMock(address="10.1.1.1"), MagicMock(address="10.1.1.2"),
            ]
            assert resolve_ipv4("svc.test", timeout_ms=2000) == ["10.1.1.1", "10.1.1.2"]
            mock_resolver.return_value.resolve.assert_called_once_with("svc.test", "A")
            assert mock_resolver.return_value.lifetime == 2.0


# ── Registry ─────────────────────────────────────────────────────────────────


def sample_query(db):
    return db.command("ping")


class TestRegistry:
    def test_unknown_type_rejected(self) -> None:
        with pytest.raises(UnknownProbeError, match="foobar"):
            resolve_probe("foobar", {"url": "http://a"})

    def test_unknown_type_is_config_error(self) -> None:
        with pytest.raises(ConfigError):
            resolve_probe("icmp", {"ip": "1.1.1.1"})

    def test_invalid_options_rejected(self) -> None:
        with pytest.raises(ConfigError, match="http"):
            resolve_probe("http", {"uri": "http://a"})

    def test_non_mapping_options_rejected(self) -> None:
        with pytest.raises(ConfigError):
            resolve_probe("ping", "10.0.0.1")

    def test_binds_options(self) -> None:
        probe = resolve_probe("ping", {"ip": "10.0.0.1", "port": 443})
        assert probe.type is ProbeType.PING
        assert probe.target == "10.0.0.1"
        assert probe.options.port == 443

    def test_json_accepts_response_key(self) -> None:
        probe = resolve_probe("json", {"url": "http://a", "response": {"ok": True}})
        assert probe.options.expected == {"ok": True}

    def test_mongo_query_import_path(self) -> None:
        probe = resolve_probe("mongo", {
            "connection": "mongodb://db.test/app",
            "query": "builtins:len",
        })
        assert probe.options.query is len

    def test_mongo_bad_query_path(self) -> None:
        with pytest.raises(ConfigError):
            resolve_probe("mongo", {"connection": "mongodb://db", "query": "no.such.module:fn"})

    def test_accepts_prebuilt_options(self) -> None:
        opts = MongoOptions(connection="mongodb://db.test/app", query=sample_query)
        probe = resolve_probe(ProbeType.MONGO, opts)
        assert probe.options is opts

    def test_options_without_target_cannot_be_built(self) -> None:
        class NoTarget(ProbeOptions):
            host: str

        with pytest.raises(TypeError):
            NoTarget(host="10.0.0.1")

    def test_options_are_immutable(self) -> None:
        opts = PingOptions(ip="10.0.0.1")
        with pytest.raises(ValidationError):
            opts.ip = "10.0.0.2"

    def test_call_returns_list(self) -> None:
        with patch("heartbeat.probes.engine.run_ping_check") as run:
            run.return_value = TimedResult(target="10.0.0.1", check_type="ping", success=True)
            results = resolve_probe("ping", {"ip": "10.0.0.1"})()
        assert len(results) == 1
        run.assert_called_once_with("10.0.0.1", 80, 5_000)

    def test_resolve_returns_every_result(self) -> None:
        fanned = [
            TimedResult(target=ip, check_type="resolve", success=True) for ip in ("a", "b")
        ]
        with patch("heartbeat.probes.engine.run_resolve_check", return_value=fanned):
            results = resolve_probe("resolve", {"name": "svc.test"})()
        assert results == fanned

    def test_probe_is_a_plain_callable(self) -> None:
        probe = Probe(ProbeType.PING, PingOptions(ip="1.1.1.1"), lambda o: [])
        assert probe() == []
