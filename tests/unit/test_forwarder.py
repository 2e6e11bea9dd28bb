"""Tests for relay_client/forwarder.py: WebhookForwarder."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

from relay_client.forwarder import WebhookForwarder, build_headers
from relay_client.message import ForwardedMessage

TARGET_URL = "http://localhost:3000/webhook"


def _make_message(**overrides) -> ForwardedMessage:
    defaults = dict(
        body={"action": "opened"},
        query={"page": "1"},
        timestamp=1234567890,
        headers={
            "x-github-event": "issues",
            "content-type": "application/json",
            "host": "smee.io",
            "content-length": "20",
        },
        raw_body='{"action":"opened"}',
    )
    defaults.update(overrides)
    return ForwardedMessage(**defaults)


def _make_session(status=200):
    mock_response = MagicMock()
    mock_response.status = status

    mock_response_ctx = MagicMock()
    mock_response_ctx.__aenter__ = AsyncMock(return_value=mock_response)
    mock_response_ctx.__aexit__ = AsyncMock(return_value=False)

    mock_session = MagicMock()
    mock_session.post = MagicMock(return_value=mock_response_ctx)
    mock_session.close = AsyncMock()
    mock_session.closed = False
    return mock_session


async def _started_forwarder(mock_session, **kwargs) -> WebhookForwarder:
    forwarder = WebhookForwarder(TARGET_URL, **kwargs)
    with patch("aiohttp.ClientSession", return_value=mock_session):
        await forwarder.start()
    return forwarder


class TestBuildHeaders:
    """Test header selection for replayed requests."""

    def test_skips_hop_headers(self):
        headers = build_headers(_make_message())

        assert headers == {
            "x-github-event": "issues",
            "content-type": "application/json",
        }

    def test_adds_content_type_when_missing(self):
        headers = build_headers(_make_message(headers={"x-github-event": "push"}))

        assert headers["Content-Type"] == "application/json"

    def test_keeps_relayed_content_type(self):
        headers = build_headers(
            _make_message(headers={"Content-Type": "application/x-www-form-urlencoded"})
        )

        assert headers == {"Content-Type": "application/x-www-form-urlencoded"}


class TestForward:
    """Test WebhookForwarder.forward."""

    @pytest.mark.asyncio
    async def test_posts_raw_body_headers_and_query(self):
        mock_session = _make_session(status=202)
        forwarder = await _started_forwarder(mock_session, timeout_seconds=5.0)

        status = await forwarder.forward(_make_message())

        assert status == 202
        args, kwargs = mock_session.post.call_args
        assert args[0] == TARGET_URL
        assert kwargs["data"] == b'{"action":"opened"}'
        assert kwargs["params"] == {"page": "1"}
        assert kwargs["headers"]["x-github-event"] == "issues"
        assert "host" not in kwargs["headers"]
        assert kwargs["timeout"].total == 5.0
        assert kwargs["ssl"] is True

    @pytest.mark.asyncio
    async def test_empty_body_and_query(self):
        mock_session = _make_session()
        forwarder = await _started_forwarder(mock_session)

        await forwarder.forward(_make_message(raw_body="", body={}, query={}))

        kwargs = mock_session.post.call_args[1]
        assert kwargs["data"] is None
        assert kwargs["params"] is None

    @pytest.mark.asyncio
    async def test_forward_requires_start(self):
        forwarder = WebhookForwarder(TARGET_URL)
        with pytest.raises(RuntimeError, match="not started"):
            await forwarder.forward(_make_message())


class TestHandle:
    """Test WebhookForwarder.handle as a message listener."""

    @pytest.mark.asyncio
    async def test_handle_schedules_delivery(self):
        mock_session = _make_session(status=200)
        forwarder = await _started_forwarder(mock_session)

        forwarder.handle(_make_message())
        await asyncio.gather(*forwarder._tasks)

        mock_session.post.assert_called_once()
        assert forwarder.get_stats()["messages_delivered"] == 1

    @pytest.mark.asyncio
    async def test_non_success_status_counted_as_failure(self):
        mock_session = _make_session(status=500)
        forwarder = await _started_forwarder(mock_session)

        forwarder.handle(_make_message())
        await asyncio.gather(*forwarder._tasks)

        stats = forwarder.get_stats()
        assert stats["messages_delivered"] == 0
        assert stats["messages_failed"] == 1

    @pytest.mark.asyncio
    async def test_client_error_logged_not_raised(self, caplog):
        mock_session = _make_session()
        mock_session.post.return_value.__aenter__ = AsyncMock(
            side_effect=aiohttp.ClientConnectionError("refused")
        )
        forwarder = await _started_forwarder(mock_session)

        with caplog.at_level("ERROR", logger="relay_client.forwarder"):
            forwarder.handle(_make_message())
            await asyncio.gather(*forwarder._tasks)

        assert forwarder.get_stats()["messages_failed"] == 1
        assert "refused" in caplog.text

    @pytest.mark.asyncio
    async def test_timeout_counted_as_failure(self):
        mock_session = _make_session()
        mock_session.post.return_value.__aenter__ = AsyncMock(
            side_effect=asyncio.TimeoutError()
        )
        forwarder = await _started_forwarder(mock_session)

        forwarder.handle(_make_message())
        await asyncio.gather(*forwarder._tasks)

        assert forwarder.get_stats()["messages_failed"] == 1

    @pytest.mark.asyncio
    async def test_unexpected_error_counted_as_failure(self, caplog):
        """A nested query the HTTP client rejects is logged and counted."""
        mock_session = _make_session()
        mock_session.post.side_effect = TypeError("Invalid variable type")
        forwarder = await _started_forwarder(mock_session)

        with caplog.at_level("ERROR", logger="relay_client.forwarder"):
            forwarder.handle(_make_message(query={"a": {"b": "c"}}))
            results = await asyncio.gather(*forwarder._tasks, return_exceptions=True)

        assert results == [None]
        assert forwarder.get_stats()["messages_failed"] == 1
        assert "Invalid variable type" in caplog.text

    @pytest.mark.asyncio
    async def test_delivery_after_session_closed_counted_as_failure(self):
        mock_session = _make_session()
        forwarder = await _started_forwarder(mock_session)
        forwarder._session = None

        forwarder.handle(_make_message())
        results = await asyncio.gather(*forwarder._tasks, return_exceptions=True)

        assert results == [None]
        assert forwarder.get_stats()["messages_failed"] == 1

    @pytest.mark.asyncio
    async def test_handle_ignored_when_not_running(self):
        forwarder = WebhookForwarder(TARGET_URL)
        forwarder.handle(_make_message())
        assert forwarder.get_stats()["pending_count"] == 0


class TestLifecycle:
    """Test WebhookForwarder start/stop."""

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self):
        mock_session = _make_session()
        forwarder = WebhookForwarder(TARGET_URL)

        with patch("aiohttp.ClientSession", return_value=mock_session) as session_cls:
            await forwarder.start()
            await forwarder.start()

        session_cls.assert_called_once()
        assert forwarder.get_stats()["running"] is True

    @pytest.mark.asyncio
    async def test_stop_closes_session(self):
        mock_session = _make_session()
        forwarder = await _started_forwarder(mock_session)

        await forwarder.stop()

        mock_session.close.assert_awaited_once()
        assert forwarder.get_stats()["running"] is False

    @pytest.mark.asyncio
    async def test_stop_cancels_pending_deliveries(self):
        never = asyncio.Event()
        mock_session = _make_session()

        async def hang(*args, **kwargs):
            await never.wait()

        mock_session.post.return_value.__aenter__ = AsyncMock(side_effect=hang)
        forwarder = await _started_forwarder(mock_session)

        forwarder.handle(_make_message())
        task = next(iter(forwarder._tasks))
        await asyncio.sleep(0)
        await forwarder.stop()

        assert task.cancelled()
        assert forwarder.get_stats()["pending_count"] == 0
