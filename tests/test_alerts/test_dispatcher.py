"""Tests for the notification dispatcher."""

import asyncio
from typing import Any

import pytest

from rabbitwatch.alerts.channels import NotificationChannel, NotificationContext
from rabbitwatch.alerts.dispatcher import NotificationConfig, NotificationDispatcher
from rabbitwatch.alerts.errors import TerminalDeliveryError, TransientDeliveryError
from tests.conftest import make_alert


class FakeChannel(NotificationChannel):
    """Channel whose send outcomes are scripted per attempt."""

    def __init__(self, channel_id: str = "fake", outcomes: list[Any] | None = None, **kwargs):
        super().__init__(channel_id, **kwargs)
        self.outcomes = list(outcomes or [200])
        self.sent: list[dict] = []

    @property
    def name(self) -> str:
        return "fake"

    def build_payload(self, alerts, context):
        return {"names": [a.source.name for a in alerts]}

    async def send(self, payload):
        self.sent.append(payload)
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        if outcome == "hang":
            await asyncio.sleep(10)
        return outcome


class ExplodingChannel(FakeChannel):
    def build_payload(self, alerts, context):
        raise RuntimeError("boom")


@pytest.fixture
def dispatcher():
    return NotificationDispatcher(NotificationConfig(
        retry_max_attempts=3,
        retry_base_delay=0.0,
        send_timeout_seconds=0.05,
    ))


@pytest.fixture
def context():
    return NotificationContext(
        workspace_id="ws-1", workspace_name="Acme",
        server_id="srv-1", server_name="production",
    )


class TestSend:
    @pytest.mark.asyncio
    async def test_first_attempt_succeeds(self, dispatcher):
        channel = FakeChannel()
        result = await dispatcher.send(channel, {"x": 1}, alert_count=2)

        assert result.success is True
        assert result.attempts == 1
        assert result.status_code == 200
        assert result.alert_count == 2

    @pytest.mark.asyncio
    async def test_retries_transient_then_succeeds(self, dispatcher):
        channel = FakeChannel(outcomes=[
            TransientDeliveryError("HTTP 503", status_code=503),
            TransientDeliveryError("HTTP 502", status_code=502),
            200,
        ])
        result = await dispatcher.send(channel, {})

        assert result.success is True
        assert result.attempts == 3

    @pytest.mark.asyncio
    async def test_gives_up_after_retries(self, dispatcher):
        channel = FakeChannel(outcomes=[TransientDeliveryError("HTTP 500", status_code=500)])
        result = await dispatcher.send(channel, {})

        assert result.success is False
        assert result.attempts == 4
        assert len(channel.sent) == 4
        assert result.status_code == 500

    @pytest.mark.asyncio
    async def test_terminal_not_retried(self, dispatcher):
        channel = FakeChannel(outcomes=[TerminalDeliveryError("HTTP 404", status_code=404)])
        result = await dispatcher.send(channel, {})

        assert result.success is False
        assert result.attempts == 1
        assert result.status_code == 404
        assert result.error == "HTTP 404"

    @pytest.mark.asyncio
    async def test_timeout_is_retried(self, dispatcher):
        channel = FakeChannel(outcomes=["hang", 200])
        result = await dispatcher.send(channel, {})

        assert result.success is True
        assert result.attempts == 2

    @pytest.mark.asyncio
    async def test_no_retries_configured(self):
        dispatcher = NotificationDispatcher(NotificationConfig(retry_max_attempts=0))
        channel = FakeChannel(outcomes=[TransientDeliveryError("HTTP 500", status_code=500)])

        result = await dispatcher.send(channel, {})

        assert result.attempts == 1
        assert result.success is False


class TestDispatchAll:
    @pytest.mark.asyncio
    async def test_fans_out_to_every_channel(self, dispatcher, context):
        a, b = FakeChannel("a"), FakeChannel("b")
        results = await dispatcher.dispatch_all([a, b], [make_alert()], context)

        assert [r.channel_id for r in results] == ["a", "b"]
        assert all(r.success for r in results)

    @pytest.mark.asyncio
    async def test_failures_are_isolated(self, dispatcher, context):
        good = FakeChannel("good")
        bad = FakeChannel("bad", outcomes=[TerminalDeliveryError("HTTP 400", status_code=400)])
        broken = ExplodingChannel("broken")

        results = await dispatcher.dispatch_all([bad, broken, good], [make_alert()], context)

        by_id = {r.channel_id: r for r in results}
        assert by_id["good"].success is True
        assert by_id["bad"].success is False
        assert by_id["broken"].success is False
        assert good.sent == [{"names": ["rabbit@node1"]}]

    @pytest.mark.asyncio
    async def test_unexpected_send_error_reported(self, dispatcher, context):
        channel = FakeChannel("odd", outcomes=[KeyError("missing")])

        results = await dispatcher.dispatch_all([channel], [make_alert()], context)

        assert results[0].success is False
        assert "missing" in results[0].error

    @pytest.mark.asyncio
    async def test_channel_receives_only_matching_severities(self, dispatcher, context):
        channel = FakeChannel("crit", severities=["critical"])
        alerts = [make_alert("a", severity="critical"), make_alert("b")]

        results = await dispatcher.dispatch_all([channel], alerts, context)

        assert channel.sent == [{"names": ["a"]}]
        assert results[0].alert_count == 1

    @pytest.mark.asyncio
    async def test_info_batch_skips_critical_warning_channel(self, dispatcher, context):
        channel = FakeChannel("cw", severities=["critical", "warning"])

        results = await dispatcher.dispatch_all([channel], [make_alert(severity="info")], context)

        assert results == []
        assert channel.sent == []

    @pytest.mark.asyncio
    async def test_server_filter(self, dispatcher, context):
        channel = FakeChannel("other", server_ids=["srv-2"])
        assert await dispatcher.dispatch_all([channel], [make_alert()], context) == []

    @pytest.mark.asyncio
    async def test_disabled_channel_skipped(self, dispatcher, context):
        channel = FakeChannel("off", enabled=False)
        assert await dispatcher.dispatch_all([channel], [make_alert()], context) == []
