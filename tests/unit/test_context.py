"""Tests for the cancel scope."""

from __future__ import annotations

import pytest

from tfregistry.core.context import CancelScope, OperationCancelled


class TestCancelScope:
    def test_no_deadline(self):
        scope = CancelScope()
        assert scope.remaining() is None
        assert scope.cancelled is False
        scope.check("fetch")

    def test_remaining_counts_down(self):
        scope = CancelScope(60)
        remaining = scope.remaining()
        assert remaining is not None
        assert 0 < remaining <= 60

    def test_expired_deadline(self):
        scope = CancelScope(0)
        assert scope.expired is True
        assert scope.cancelled is True
        assert scope.remaining() == 0.0
        with pytest.raises(OperationCancelled, match="deadline"):
            scope.check("upload")

    def test_explicit_cancel(self):
        scope = CancelScope(60)
        scope.cancel("client went away")
        assert scope.cancelled is True
        assert scope.expired is False
        with pytest.raises(OperationCancelled, match="pack client went away"):
            scope.check("pack")
