"""Tests for the bounded progress channel."""

import threading

import pytest

from skill_agency.executor.channel import ChannelClosed, ProgressChannel
from skill_agency.executor.schemas import (
    CompletionContext,
    ErrorEvent,
    OrchestrationCompleteEvent,
    SkillCompleteEvent,
)


class TestEmitAndConsume:
    def test_events_arrive_in_order(self):
        channel = ProgressChannel()
        for i in range(1, 4):
            assert channel.emit(SkillCompleteEvent(skill=i))
        channel.finish()
        assert [e.skill for e in channel.drain(timeout=1)] == [1, 2, 3]

    def test_nothing_after_terminal(self):
        channel = ProgressChannel()
        assert channel.emit(ErrorEvent(error="stop"))
        assert channel.terminal_sent
        assert channel.emit(SkillCompleteEvent(skill=1)) is False
        assert channel.emit(OrchestrationCompleteEvent(
            context=CompletionContext(skills=1)
        )) is False
        channel.finish()
        assert [e.type for e in channel.drain(timeout=1)] == ["error"]

    def test_next_event_timeout_returns_none(self):
        channel = ProgressChannel()
        assert channel.next_event(timeout=0.01) is None

    def test_closed_after_finish(self):
        channel = ProgressChannel()
        channel.finish()
        channel.finish()
        with pytest.raises(ChannelClosed):
            channel.next_event(timeout=0.1)

    def test_iteration_across_threads(self):
        channel = ProgressChannel(max_events=2)

        def produce():
            for i in range(1, 11):
                channel.emit(SkillCompleteEvent(skill=i))
            channel.finish()

        producer = threading.Thread(target=produce)
        producer.start()
        counts = [e.skill for e in channel]
        producer.join(timeout=2)
        assert counts == list(range(1, 11))


class TestDisconnect:
    def test_disconnect_is_idempotent(self):
        calls = []
        channel = ProgressChannel(on_disconnect=lambda: calls.append(1))
        channel.disconnect()
        channel.disconnect()
        assert channel.disconnected
        assert calls == [1]

    def test_emit_rejected_after_disconnect(self):
        channel = ProgressChannel()
        channel.disconnect()
        assert channel.emit(SkillCompleteEvent(skill=1)) is False

    def test_stalled_consumer_counts_as_disconnected(self):
        calls = []
        channel = ProgressChannel(
            max_events=1,
            put_timeout=0.05,
            on_disconnect=lambda: calls.append(1),
        )
        assert channel.emit(SkillCompleteEvent(skill=1))
        assert channel.emit(SkillCompleteEvent(skill=2)) is False
        assert channel.disconnected
        assert calls == [1]

    def test_handler_set_later(self):
        calls = []
        channel = ProgressChannel()
        channel.set_disconnect_handler(lambda: calls.append("cancel"))
        channel.disconnect()
        assert calls == ["cancel"]

    def test_drain_times_out_without_finish(self):
        channel = ProgressChannel()
        with pytest.raises(TimeoutError):
            channel.drain(timeout=0.1)
