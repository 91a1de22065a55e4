"""Tests for utils/sanitize.py."""

from __future__ import annotations

from fleetaudit.utils.sanitize import sanitize_error


class TestSanitizeError:
    def test_empty(self):
        assert sanitize_error("") == ""

    def test_plain_message_unchanged(self):
        assert sanitize_error("Failed to create tree: 422") == "Failed to create tree: 422"

    def test_github_token(self):
        result = sanitize_error("auth failed for ghp_" + "a" * 36)
        assert "ghp_" not in result
        assert "[REDACTED_TOKEN]" in result

    def test_fine_grained_token(self):
        result = sanitize_error("github_pat_" + "B" * 40)
        assert result == "[REDACTED_TOKEN]"

    def test_bearer_header(self):
        assert sanitize_error("Authorization header Bearer abc.def") == "Authorization header Bearer [REDACTED]"

    def test_jwt(self):
        result = sanitize_error("session eyJhbGciOiJIUzI1NiJ9.eyJzdWIiOiIxIn0.sig")
        assert "[REDACTED_JWT]" in result

    def test_home_path(self, monkeypatch):
        monkeypatch.delenv("USERPROFILE", raising=False)
        monkeypatch.setenv("HOME", "/home/alice")
        assert sanitize_error("cannot open /home/alice/.fleetaudit/x") == "cannot open [USER_HOME]/.fleetaudit/x"
