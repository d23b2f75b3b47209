#!/usr/bin/env python3
"""Tests for the readiness poller."""

import sys
from pathlib import Path
from unittest.mock import MagicMock

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from common import CommandResult
from readiness import ReadinessCheck, is_absent, poll_command_output, wait_until


class FakeClock:
    """Monotonic clock advanced only by sleep()."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


class TestIsAbsent:
    """Test not-ready value detection."""

    def test_none_and_blank(self):
        assert is_absent(None)
        assert is_absent('')
        assert is_absent('   ')

    def test_values(self):
        assert not is_absent('k8s-demoapp-123.eu-west-1.elb.amazonaws.com')
        assert not is_absent(0)


class TestWaitUntil:
    """Test wait_until polling."""

    def test_ready_immediately(self):
        """A value on the first poll should return without sleeping."""
        clock = FakeClock()
        check = ReadinessCheck(target='lb', poll=lambda: 'host', interval=10, deadline=60)

        outcome = wait_until(check, clock=clock, sleep=clock.sleep)

        assert outcome.ready
        assert outcome.value == 'host'
        assert outcome.attempts == 1
        assert clock.sleeps == []

    def test_ready_after_retries(self):
        """Empty answers should be retried until a value appears."""
        clock = FakeClock()
        poll = MagicMock(side_effect=[None, '', 'host'])
        check = ReadinessCheck(target='lb', poll=poll, interval=10, deadline=60)

        outcome = wait_until(check, clock=clock, sleep=clock.sleep)

        assert outcome.ready
        assert outcome.value == 'host'
        assert outcome.attempts == 3
        assert clock.sleeps == [10, 10]
        assert outcome.elapsed == 20

    def test_never_ready_stops_at_deadline(self):
        """A poller that never becomes ready stops at the deadline and reports not-ready."""
        clock = FakeClock()
        check = ReadinessCheck(target='lb', poll=lambda: None, interval=10, deadline=45)

        outcome = wait_until(check, clock=clock, sleep=clock.sleep)

        assert not outcome.ready
        assert outcome.value is None
        assert 45 <= outcome.elapsed <= 45 + check.interval
        assert outcome.attempts == 6  # t=0,10,20,30,40,45

    def test_sleep_clipped_to_remaining(self):
        """The last sleep should not run past the deadline."""
        clock = FakeClock()
        check = ReadinessCheck(target='lb', poll=lambda: None, interval=10, deadline=25)

        wait_until(check, clock=clock, sleep=clock.sleep)

        assert clock.sleeps == [10, 10, 5]
        assert clock.now == 25

    def test_zero_deadline_polls_once(self):
        clock = FakeClock()
        poll = MagicMock(return_value=None)
        outcome = wait_until(ReadinessCheck(target='lb', poll=poll, deadline=0), clock=clock, sleep=clock.sleep)

        assert not outcome.ready
        assert poll.call_count == 1
        assert clock.sleeps == []


class TestPollCommandOutput:
    """Test command-backed poll functions."""

    def test_stdout_is_value(self):
        poll = poll_command_output(lambda: CommandResult(cmd=('kubectl',), returncode=0, stdout='host\n'))
        assert poll() == 'host'

    def test_empty_stdout_not_ready(self):
        poll = poll_command_output(lambda: CommandResult(cmd=('kubectl',), returncode=0, stdout=''))
        assert poll() is None

    def test_failed_command_not_ready(self):
        """Errors while the resource is still being created count as not ready."""
        poll = poll_command_output(lambda: CommandResult(
            cmd=('kubectl',), returncode=1, stderr='Error from server (NotFound)',
        ))
        assert poll() is None
