"""Tests for the require_auth guard."""

from __future__ import annotations

import pytest

from authcore.guards import AuthenticationError, require_auth


class TestRequireAuth:
    def test_blocks_when_signed_out(self, controller):
        calls = []

        @require_auth(controller)
        def sync_meals() -> int:
            calls.append(1)
            return 42

        with pytest.raises(AuthenticationError):
            sync_meals()
        assert calls == []

    def test_allows_when_signed_in(self, controller):
        @require_auth(controller)
        def sync_meals(limit: int = 10) -> int:
            return limit

        controller.login("a@b.com", "Secret1!")
        assert sync_meals(limit=3) == 3

    def test_blocks_again_after_logout(self, controller):
        guarded = require_auth(controller)(lambda: "ok")
        controller.login("a@b.com", "Secret1!")
        assert guarded() == "ok"
        controller.logout()
        with pytest.raises(AuthenticationError):
            guarded()

    def test_preserves_metadata(self, controller):
        @require_auth(controller)
        def documented() -> None:
            """Docstring survives."""

        assert documented.__name__ == "documented"
        assert documented.__doc__ == "Docstring survives."
