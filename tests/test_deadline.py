"""Tests for the shared discovery deadline."""

import time

import pytest

from slurm_discovery.discovery.deadline import Deadline
from slurm_discovery.exceptions import DeadlineExceeded, ProbeError


class TestDeadline:
    def test_remaining_counts_down(self):
        deadline = Deadline(10)
        assert 9 < deadline.remaining() <= 10
        assert not deadline.expired

    def test_expiry(self):
        deadline = Deadline(0.01)
        time.sleep(0.02)
        assert deadline.expired
        assert deadline.remaining() == 0.0
        with pytest.raises(DeadlineExceeded, match="deadline exceeded"):
            deadline.check()

    def test_cancel(self):
        deadline = Deadline(10)
        deadline.cancel()
        assert deadline.cancelled
        assert deadline.remaining() == 0.0
        with pytest.raises(DeadlineExceeded, match="cancelled"):
            deadline.check("dns")

    def test_bound_clamps_to_remaining(self):
        assert Deadline(10).bound(2) == 2
        assert Deadline(1).bound(5) <= 1

    def test_exceeded_is_a_probe_error(self):
        assert issubclass(DeadlineExceeded, ProbeError)
