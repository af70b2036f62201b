"""Tests for retry classification and backoff."""

from unittest.mock import MagicMock

import pytest
from kubernetes.client import ApiException
from urllib3.exceptions import ProtocolError

from kubefoundry.config import KubeFoundryConfig
from kubefoundry.utils.retry import RetryPolicy, is_retryable_error, with_retry


class TestIsRetryableError:
    """Test transient error classification."""

    @pytest.mark.parametrize("status", [500, 502, 503, 504, 429])
    def test_server_errors_and_throttling_are_retryable(self, status: int) -> None:
        """5xx and 429 responses are transient."""
        assert is_retryable_error(ApiException(status=status)) is True

    @pytest.mark.parametrize("status", [400, 401, 403, 404, 409])
    def test_client_errors_are_not_retryable(self, status: int) -> None:
        """4xx responses other than 429 are terminal."""
        assert is_retryable_error(ApiException(status=status)) is False

    def test_connection_errors_are_retryable(self) -> None:
        """Network-level failures are transient."""
        assert is_retryable_error(ConnectionResetError()) is True
        assert is_retryable_error(TimeoutError()) is True
        assert is_retryable_error(ProtocolError("Connection aborted")) is True

    def test_message_fragments(self) -> None:
        """Errors are also classified by well-known message fragments."""
        assert is_retryable_error(RuntimeError("socket hang up")) is True
        assert is_retryable_error(RuntimeError("invalid manifest")) is False


class TestWithRetry:
    """Test the backoff loop."""

    def test_returns_first_success(self) -> None:
        """No retries when the first attempt succeeds."""
        fn = MagicMock(return_value="ok")
        sleep = MagicMock()

        assert with_retry(fn, sleep=sleep) == "ok"
        fn.assert_called_once()
        sleep.assert_not_called()

    def test_retries_transient_failures(self) -> None:
        """Transient failures are retried until an attempt succeeds."""
        fn = MagicMock(side_effect=[ApiException(status=503), ApiException(status=500), "ok"])
        sleep = MagicMock()

        assert with_retry(fn, RetryPolicy(max_retries=3), sleep=sleep) == "ok"
        assert fn.call_count == 3
        assert sleep.call_count == 2

    def test_non_retryable_raises_immediately(self) -> None:
        """A 404 is raised on the first attempt."""
        fn = MagicMock(side_effect=ApiException(status=404))
        sleep = MagicMock()

        with pytest.raises(ApiException):
            with_retry(fn, sleep=sleep)
        fn.assert_called_once()
        sleep.assert_not_called()

    def test_gives_up_after_max_retries(self) -> None:
        """The last error propagates once retries are exhausted."""
        fn = MagicMock(side_effect=ApiException(status=503))
        sleep = MagicMock()

        with pytest.raises(ApiException):
            with_retry(fn, RetryPolicy(max_retries=2), sleep=sleep)
        assert fn.call_count == 3

    def test_delays_are_capped(self) -> None:
        """Backoff never sleeps longer than max_delay."""
        fn = MagicMock(side_effect=[ApiException(status=503)] * 5 + ["ok"])
        sleep = MagicMock()
        policy = RetryPolicy(max_retries=5, initial_delay=1.0, max_delay=2.0, backoff_factor=10.0)

        with_retry(fn, policy, sleep=sleep)

        delays = [c.args[0] for c in sleep.call_args_list]
        assert delays[0] == 1.0
        assert all(d <= 2.0 for d in delays)

    def test_policy_from_config(self) -> None:
        """RetryPolicy mirrors the retry settings."""
        config = KubeFoundryConfig(_env_file=None, retry_max_attempts=7, retry_initial_delay=0.1)
        policy = RetryPolicy.from_config(config)

        assert policy.max_retries == 7
        assert policy.initial_delay == 0.1
