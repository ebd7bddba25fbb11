"""Tests for Gmail credentials and service construction."""

import json

import pytest

from gmail_analyzer import gmail_service
from gmail_analyzer.exceptions import AuthenticationError, SourceFetchError
from gmail_analyzer.gmail_service import SCOPES, build_gmail_service, load_credentials

TOKEN = {
    "client_id": "abc.apps.googleusercontent.com",
    "client_secret": "secret",
    "refresh_token": "refresh",
    "token": "access",
}


class TestLoadCredentials:
    """Tests for load_credentials."""

    def test_missing_token(self, tmp_path):
        with pytest.raises(AuthenticationError, match="Token file not found"):
            load_credentials(tmp_path / "token.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "token.json"
        path.write_text("{broken")

        with pytest.raises(AuthenticationError, match="Failed to load token"):
            load_credentials(path)

    def test_missing_fields(self, tmp_path):
        path = tmp_path / "token.json"
        path.write_text(json.dumps({"client_id": "abc"}))

        with pytest.raises(AuthenticationError):
            load_credentials(path)

    def test_valid_token(self, tmp_path):
        path = tmp_path / "token.json"
        path.write_text(json.dumps(TOKEN))

        creds = load_credentials(path)

        assert creds.refresh_token == "refresh"
        assert creds.client_id == "abc.apps.googleusercontent.com"


class TestBuildGmailService:
    """Tests for build_gmail_service."""

    def test_read_only_scope(self):
        assert SCOPES == ["https://www.googleapis.com/auth/gmail.readonly"]

    def test_discovery_failure_is_wrapped(self, tmp_path, monkeypatch):
        path = tmp_path / "token.json"
        path.write_text(json.dumps(TOKEN))

        def fail(*args, **kwargs):
            raise OSError("Unable to find the server at gmail.googleapis.com")

        monkeypatch.setattr(gmail_service, "build", fail)

        with pytest.raises(SourceFetchError, match="Failed to build Gmail service"):
            build_gmail_service(path)

    def test_builds_gmail_v1(self, tmp_path, monkeypatch):
        path = tmp_path / "token.json"
        path.write_text(json.dumps(TOKEN))
        calls = []

        def fake_build(service_name, version, **kwargs):
            calls.append((service_name, version))
            return "service"

        monkeypatch.setattr(gmail_service, "build", fake_build)

        assert build_gmail_service(path) == "service"
        assert calls == [("gmail", "v1")]
