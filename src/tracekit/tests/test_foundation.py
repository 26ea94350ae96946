"""Tests for settings, error classification and retry policies."""

import pytest
from pydantic import ValidationError

from tracekit.foundation.config import clear_settings_cache, get_settings
from tracekit.foundation.errors import (
    ErrorCode,
    TracingError,
    TracingException,
    classify_exception,
    code_for_status,
)
from tracekit.runtime.observability import JsonExporter, NoOpExporter
from tracekit.runtime.observability.tracing import get_tracer, reset_tracer
from tracekit.runtime.retry import (
    NO_RETRY,
    Backoff,
    ConstantBackoff,
    ExponentialBackoff,
    RetryPolicy,
    execute_with_retry_sync,
)


class TestSettings:
    def test_defaults(self) -> None:
        s = get_settings()
        assert s.tracing.enabled is True
        assert s.tracing.sample_rate == 1.0
        assert s.tracing.exporter == "memory"
        assert s.tracing.buffer_size == 100
        assert s.tracking.uri is None
        assert s.retry.max_retries == 3
        assert s.logging.level == "INFO"
        assert not s.has_tracking_server
        assert get_settings() is s

    def test_env_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TRACEKIT_TRACING_SAMPLE_RATE", "0.25")
        monkeypatch.setenv("TRACEKIT_TRACING_EXPORTER", "json")
        monkeypatch.setenv("TRACEKIT_RETRY_MAX_RETRIES", "5")
        monkeypatch.setenv("TRACEKIT_LOG_LEVEL", "debug")
        clear_settings_cache()
        s = get_settings()
        assert s.tracing.sample_rate == 0.25
        assert s.tracing.exporter == "json"
        assert s.retry.max_retries == 5
        assert s.logging.level == "DEBUG"

    def test_invalid_values_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TRACEKIT_TRACING_SAMPLE_RATE", "2")
        clear_settings_cache()
        with pytest.raises(ValidationError):
            get_settings()

    def test_global_tracer_built_from_settings(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TRACEKIT_TRACING_EXPORTER", "none")
        monkeypatch.setenv("TRACEKIT_TRACING_EXPERIMENT_ID", "exp-9")
        monkeypatch.setenv("TRACEKIT_TRACING_ENABLED", "false")
        clear_settings_cache()
        reset_tracer()
        tracer = get_tracer()
        assert isinstance(tracer.exporter, NoOpExporter)
        assert tracer.experiment_id == "exp-9"
        assert tracer.enabled is False

    def test_async_export_from_settings(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TRACEKIT_TRACING_EXPORTER", "json")
        monkeypatch.setenv("TRACEKIT_TRACING_ASYNC_EXPORT", "true")
        clear_settings_cache()
        reset_tracer()
        exporter = get_tracer().exporter
        assert isinstance(exporter.exporter, JsonExporter)  # type: ignore[attr-defined]


class TestErrors:
    @pytest.mark.parametrize(("status", "code"), [
        (400, ErrorCode.INVALID_PARAMS),
        (401, ErrorCode.API_KEY_INVALID),
        (403, ErrorCode.PERMISSION_DENIED),
        (404, ErrorCode.NOT_FOUND),
        (429, ErrorCode.RATE_LIMITED),
        (502, ErrorCode.EXTERNAL_SERVICE_ERROR),
        (418, ErrorCode.UNKNOWN),
    ])
    def test_code_for_status(self, status: int, code: ErrorCode) -> None:
        assert code_for_status(status) == code

    def test_classify_exception(self) -> None:
        assert classify_exception(TimeoutError("slow")) == ErrorCode.TIMEOUT
        assert classify_exception(ConnectionError("refused")) == ErrorCode.NETWORK_ERROR
        assert classify_exception(ValueError("bad")) == ErrorCode.INVALID_PARAMS
        assert classify_exception(KeyError("x")) == ErrorCode.NOT_FOUND
        assert classify_exception(ZeroDivisionError("x")) == ErrorCode.UNKNOWN
        exc = TracingException.create("op", "nope", ErrorCode.PERMISSION_DENIED)
        assert classify_exception(exc) == ErrorCode.PERMISSION_DENIED

    def test_error_model(self) -> None:
        err = TracingException.create("search_traces", "slow down", ErrorCode.RATE_LIMITED).error
        assert err.recoverable and err.is_retryable and not err.is_auth_error
        assert str(err) == "search_traces failed [RATE_LIMITED]: slow down"
        assert err.model_dump()["is_retryable"] is True
        with pytest.raises(ValidationError):
            err.message = "changed"  # type: ignore[misc]

    def test_from_exception(self) -> None:
        try:
            raise ValueError("bad input")
        except ValueError as e:
            err = TracingError.from_exception("configure", e)
        assert err.code == ErrorCode.INVALID_PARAMS
        assert err.message == "bad input"
        assert not err.recoverable
        assert "ValueError" in err.details


class TestRetry:
    def test_backoff(self) -> None:
        exp = ExponentialBackoff(base=0.5, max_delay=1.5, jitter=False)
        assert [exp.delay(i) for i in range(4)] == [0.5, 1.0, 1.5, 1.5]
        assert 0.25 <= ExponentialBackoff(base=0.5).delay(0) <= 0.5
        assert isinstance(ConstantBackoff(2), Backoff)

    def test_retries_retryable_codes(self) -> None:
        attempts: list[int] = []
        retries: list[tuple[int, ErrorCode]] = []

        def op() -> str:
            attempts.append(len(attempts))
            if len(attempts) < 3:
                raise TracingException.create("op", "flaky", ErrorCode.NETWORK_ERROR)
            return "ok"

        policy = RetryPolicy(max_retries=3, backoff=ConstantBackoff(0),
                             on_retry=lambda attempt, code, delay: retries.append((attempt, code)))
        assert execute_with_retry_sync(op, policy, "op") == "ok"
        assert retries == [(0, ErrorCode.NETWORK_ERROR), (1, ErrorCode.NETWORK_ERROR)]

    def test_non_retryable_raises_immediately(self) -> None:
        calls: list[int] = []

        def op() -> None:
            calls.append(1)
            raise TracingException.create("op", "who are you", ErrorCode.API_KEY_INVALID)

        with pytest.raises(TracingException):
            execute_with_retry_sync(op, RetryPolicy(backoff=ConstantBackoff(0)), "op")
        assert len(calls) == 1

    def test_other_exceptions_propagate(self) -> None:
        def op() -> None:
            raise KeyError("k")

        with pytest.raises(KeyError):
            execute_with_retry_sync(op, RetryPolicy(backoff=ConstantBackoff(0)), "op")

    def test_policy_normalizes_codes(self) -> None:
        policy = RetryPolicy(retryable_codes=["TIMEOUT"])
        assert policy.retryable_codes == frozenset({ErrorCode.TIMEOUT})
        assert policy.should_retry(ErrorCode.TIMEOUT, 0)
        assert not policy.should_retry(ErrorCode.TIMEOUT, 3)
        assert not NO_RETRY.should_retry(ErrorCode.TIMEOUT, 0)
