"""
Tests for the script bridge: compiling, the context pool, and the request
builder and response parser running real restricted scripts.
"""

import logging
import textwrap
import threading

import pytest

from src.engine.base import RawData
from src.engine.errors import (
    InitializationError,
    NotInitialized,
    ScriptExecutionError,
    TypeMismatch,
)
from src.scripting import (
    PARSE_RESPONSE_FN,
    ContextPool,
    ScriptRequestBuilder,
    ScriptResponseParser,
    new_request_builder,
    new_response_parser,
)


def _src(text):
    return textwrap.dedent(text).lstrip()


def _parser(text):
    return ScriptResponseParser.from_source(_src(text))


def _builder(text):
    return ScriptRequestBuilder.from_source(_src(text))


@pytest.fixture
def builder(script_path):
    return new_request_builder(script_path("get_request_data.py"))


@pytest.fixture
def parser(script_path):
    return new_response_parser(script_path("parse_response.py"))


class TestInitialization:
    def test_syntax_error(self):
        with pytest.raises(InitializationError, match="compile"):
            _parser("def parseResponse(body:\n")

    def test_underscore_names_are_rejected(self):
        with pytest.raises(InitializationError):
            _parser(
                """
                def parseResponse(body):
                    return body.__class__
                """
            )

    def test_imports_are_unavailable(self):
        with pytest.raises(InitializationError):
            _parser(
                """
                import os

                def parseResponse(body):
                    return Response()
                """
            )

    def test_missing_export(self):
        with pytest.raises(InitializationError, match="does not define parseResponse"):
            _parser(
                """
                def somethingElse(body):
                    return Response()
                """
            )

    def test_export_not_callable(self):
        with pytest.raises(InitializationError, match="not callable"):
            _parser("parseResponse = 5\n")

    def test_module_body_raises(self):
        with pytest.raises(InitializationError):
            _parser(
                """
                broken = 1 / 0

                def parseResponse(body):
                    return Response()
                """
            )

    def test_unreadable_file(self, tmp_path):
        with pytest.raises(InitializationError, match="could not read"):
            new_response_parser(str(tmp_path / "missing.py"))

    def test_no_path_means_no_script(self):
        assert new_request_builder(None) is None
        assert new_response_parser("") is None


class TestRequestBuilder:
    def test_page_token_from_previous_response(self, builder):
        req = builder.build({"url": "http://example.com"}, {"nextPageToken": "abc"}, b"")
        assert req.url == "http://example.com/?pageToken=abc&pageSize=2"

    def test_sync_token_from_position(self, builder):
        req = builder.build({"url": "http://example.com"}, {}, b"")
        assert req.url == "http://example.com/?syncToken=&pageSize=2"

        req = builder.build({"url": "http://example.com"}, None, b"xyz")
        assert req.url == "http://example.com/?syncToken=xyz&pageSize=2"

    def test_script_mutations_do_not_leak_into_arguments(self):
        builder = _builder(
            """
            def getRequestData(cfg, previousResponse, position):
                cfg["url"] = "changed"
                previousResponse["page"]["n"] = 99
                request = Request()
                request.URL = "http://example.com"
                return request
            """
        )
        cfg = {"url": "http://example.com"}
        previous = {"page": {"n": 1}}
        builder.build(cfg, previous, b"")
        assert cfg == {"url": "http://example.com"}
        assert previous == {"page": {"n": 1}}

    def test_request_data_alias(self):
        builder = _builder(
            """
            def getRequestData(cfg, previousResponse, position):
                data = RequestData()
                data.URL = cfg["url"] + "/next"
                return data
            """
        )
        assert builder.build({"url": "http://h"}, {}, b"").url == "http://h/next"

    def test_wrong_return_type(self):
        builder = _builder(
            """
            def getRequestData(cfg, previousResponse, position):
                return {"URL": cfg["url"]}
            """
        )
        with pytest.raises(TypeMismatch) as exc_info:
            builder.build({"url": "http://h"}, {}, b"")
        assert exc_info.value.expected == "Request"
        assert exc_info.value.actual == "dict"

    def test_script_error(self):
        builder = _builder(
            """
            def getRequestData(cfg, previousResponse, position):
                raise ValueError("no more pages")
            """
        )
        with pytest.raises(ScriptExecutionError, match="no more pages"):
            builder.build({}, {}, b"")

    def test_not_initialized(self):
        with pytest.raises(NotInitialized):
            ScriptRequestBuilder(None).build({}, {}, b"")


class TestResponseParser:
    BODY = (
        b'{"nextSyncToken":"xyz","nextPageToken":"abc","some_objects":['
        b'{"id":"id-a","action":"update","field_a":"value_a"},'
        b'{"id":"id-b","field_b":"value_b","field_c":"value_c"}]}'
    )

    def test_parses_records(self, parser):
        resp = parser.parse(self.BODY)

        assert resp.custom_data == {"nextPageToken": "abc"}
        assert len(resp.records) == 2

        first, second = resp.records
        assert first.position == b"xyz"
        assert first.key == RawData(b"id-a")
        assert first.operation == "update"
        assert first.payload.after == {"field_a": "value_a"}

        assert second.position == b"xyz"
        assert second.key == RawData(b"id-b")
        assert second.operation == ""
        assert second.payload.after == {"field_b": "value_b", "field_c": "value_c"}

    def test_no_objects(self, parser):
        resp = parser.parse(b'{"nextSyncToken":"xyz"}')
        assert resp.records == []
        assert resp.custom_data == {"nextPageToken": None}

    def test_invalid_json_is_a_script_error(self, parser):
        with pytest.raises(ScriptExecutionError):
            parser.parse(b"not json")

    def test_script_logger(self, parser, caplog):
        with caplog.at_level(logging.INFO, logger=f"scripts.{PARSE_RESPONSE_FN}"):
            parser.parse(b"{}")
        assert "[parseResponse] start" in caplog.text

    def test_capitalized_logger_methods(self, caplog):
        parser = _parser(
            """
            def parseResponse(body):
                logger.Info("info line")
                logger.Debug("debug line")
                return Response()
            """
        )
        with caplog.at_level(logging.DEBUG, logger=f"scripts.{PARSE_RESPONSE_FN}"):
            parser.parse(b"")
        assert "info line" in caplog.text
        assert "debug line" in caplog.text

    def test_caller_logger(self, parser, caplog):
        custom = logging.getLogger("tests.custom")
        with caplog.at_level(logging.INFO, logger="tests.custom"):
            parser.parse(b"{}", logger=custom)
        assert any(r.name == "tests.custom" for r in caplog.records)

    def test_raw_payloads_and_operations(self):
        parser = _parser(
            """
            def parseResponse(body):
                resp = ResponseData()
                for i, line in enumerate(body.split(b"\\n")):
                    rec = Record()
                    rec.Position = RawData(line)
                    rec.Operation = "delete" if i else "create"
                    rec.Key = str(i)
                    rec.Payload.Before = RawData(line)
                    rec.Metadata["line"] = i
                    resp.Records.append(rec)
                return resp
            """
        )
        resp = parser.parse(b"a\nb")

        assert [r.position for r in resp.records] == [b"a", b"b"]
        assert [r.operation for r in resp.records] == ["create", "delete"]
        # A plain string key is not one of the supported shapes
        assert resp.records[0].key is None
        assert resp.records[1].payload.before == RawData(b"b")
        assert resp.records[1].metadata == {"line": "1"}

    def test_not_initialized(self):
        with pytest.raises(NotInitialized):
            ScriptResponseParser(None).parse(b"")


# ============================================================================
# Pool
# ============================================================================

GLOBAL_COUNTER = """
counter = 0
seen = []

def parseResponse(body):
    global counter
    counter += 1
    seen.append(body)
    resp = Response()
    resp.CustomData["counter"] = counter
    resp.CustomData["seen"] = len(seen)
    return resp
"""

UNSET_GLOBAL = """
def parseResponse(body):
    global leaked
    resp = Response()
    try:
        resp.CustomData["seen"] = leaked
    except NameError:
        resp.CustomData["seen"] = None
    if body == b"set":
        leaked = "secret"
    return resp
"""


class TestContextPool:
    def test_global_rebinding_does_not_leak(self):
        parser = _parser(GLOBAL_COUNTER)
        for _ in range(3):
            assert parser.parse(b"x").custom_data == {"counter": 1, "seen": 1}

    def test_default_argument_state_does_not_leak(self):
        parser = _parser(
            """
            def parseResponse(body, seen=[]):
                seen.append(body)
                resp = Response()
                resp.CustomData["seen"] = len(seen)
                return resp
            """
        )
        assert parser.parse(b"a").custom_data == {"seen": 1}
        assert parser.parse(b"b").custom_data == {"seen": 1}

    def test_closure_state_does_not_leak(self):
        parser = _parser(
            """
            def make():
                seen = []

                def parse(body):
                    seen.append(body)
                    resp = Response()
                    resp.CustomData["seen"] = len(seen)
                    return resp

                return parse

            parseResponse = make()
            """
        )
        assert parser.parse(b"a").custom_data == {"seen": 1}
        assert parser.parse(b"b").custom_data == {"seen": 1}

    def test_reset_runs_script_again(self):
        pool = ContextPool(_src(GLOBAL_COUNTER), PARSE_RESPONSE_FN)
        ctx = pool.acquire()
        before = ctx.function
        ctx.call(b"a")
        pool.release(ctx)

        assert pool.acquire() is ctx
        assert ctx.function is not before
        assert ctx.globals["counter"] == 0
        assert ctx.globals["seen"] == []

    def test_unset_global_stays_unset(self):
        parser = _parser(UNSET_GLOBAL)
        assert parser.parse(b"set").custom_data == {"seen": None}
        assert parser.parse(b"read").custom_data == {"seen": None}

    def test_contexts_have_independent_globals(self):
        pool = ContextPool(_src(GLOBAL_COUNTER), PARSE_RESPONSE_FN)
        first = pool.acquire()
        second = pool.acquire()

        assert first is not second
        assert first.globals is not second.globals
        assert first.globals["__builtins__"] is not second.globals["__builtins__"]

        first.call(b"a")
        first.call(b"b")
        assert second.globals["counter"] == 0

        pool.release(first)
        pool.release(second)
        assert pool.created == 2
        assert pool.idle == 2

    def test_idle_context_is_reused(self):
        pool = ContextPool(_src(GLOBAL_COUNTER), PARSE_RESPONSE_FN)
        ctx = pool.acquire()
        pool.release(ctx)
        assert pool.acquire() is ctx
        assert pool.created == 1

    def test_loan_releases_on_error(self):
        pool = ContextPool(_src(GLOBAL_COUNTER), PARSE_RESPONSE_FN)
        with pytest.raises(RuntimeError):
            with pool.loan():
                raise RuntimeError("boom")
        assert pool.idle == 1

    def test_failed_call_returns_context(self):
        parser = _parser(
            """
            def parseResponse(body):
                raise KeyError("missing")
            """
        )
        with pytest.raises(ScriptExecutionError):
            parser.parse(b"")
        assert parser.pool.idle == 1

    def test_concurrent_calls(self):
        parser = _parser(GLOBAL_COUNTER)
        results = []
        lock = threading.Lock()

        def worker():
            for _ in range(20):
                out = parser.parse(b"x").custom_data
                with lock:
                    results.append(out["counter"])

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results == [1] * 80
        assert parser.pool.created <= 4
