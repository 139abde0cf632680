"""
Unit tests for OAuthConfig.
"""

import pytest

from oauthlistener.config import DEFAULT_RESPONSE, OAuthConfig


class TestResolveResponse:

    def test_explicit_override_wins(self):
        config = OAuthConfig(response="<p>done</p>")
        assert config.resolve_response("<p>host</p>") == "<p>done</p>"

    def test_host_default_used_when_no_override(self):
        assert OAuthConfig().resolve_response("<p>host</p>") == "<p>host</p>"

    def test_builtin_default(self):
        assert OAuthConfig().resolve_response() == DEFAULT_RESPONSE
        assert DEFAULT_RESPONSE == "<html><body>Please return to the app.</body></html>"

    def test_empty_override_is_still_an_override(self):
        assert OAuthConfig(response="").resolve_response("<p>host</p>") == ""


class TestValidate:

    def test_defaults_are_valid(self):
        OAuthConfig().validate()

    def test_default_buffer_size(self):
        assert OAuthConfig().buffer_size == 4096

    @pytest.mark.parametrize("port", [0, -1, 65536])
    def test_invalid_port(self, port: int):
        with pytest.raises(ValueError, match="Invalid port"):
            OAuthConfig(ports=[8765, port]).validate()

    def test_empty_port_list_is_valid_config(self):
        # It fails at bind time instead, with BindError.
        OAuthConfig(ports=[]).validate()

    def test_non_positive_timeout(self):
        with pytest.raises(ValueError):
            OAuthConfig(read_timeout=0).validate()

    def test_paths_must_differ(self):
        with pytest.raises(ValueError):
            OAuthConfig(exit_path="/x", submit_path="/x").validate()

    def test_paths_must_be_absolute(self):
        with pytest.raises(ValueError):
            OAuthConfig(exit_path="exit").validate()

    def test_log_format(self):
        with pytest.raises(ValueError):
            OAuthConfig(log_format="xml").validate()


class TestFromEnv:

    def test_defaults(self, monkeypatch: pytest.MonkeyPatch):
        for name in ("OAUTH_PORTS", "OAUTH_RESPONSE", "OAUTH_READ_TIMEOUT",
                     "OAUTH_LOG_LEVEL", "OAUTH_LOG_FORMAT"):
            monkeypatch.delenv(name, raising=False)

        config = OAuthConfig.from_env()

        assert config.ports is None
        assert config.response is None
        assert config.read_timeout == 30.0
        assert config.log_level == "INFO"

    def test_ports_and_overrides(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("OAUTH_PORTS", "8765, 8766,")
        monkeypatch.setenv("OAUTH_RESPONSE", "<p>bye</p>")
        monkeypatch.setenv("OAUTH_READ_TIMEOUT", "2.5")
        monkeypatch.setenv("OAUTH_LOG_FORMAT", "json")

        config = OAuthConfig.from_env()

        assert config.ports == [8765, 8766]
        assert config.response == "<p>bye</p>"
        assert config.read_timeout == 2.5
        assert config.log_format == "json"

    def test_bad_port_value(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("OAUTH_PORTS", "http")
        with pytest.raises(ValueError):
            OAuthConfig.from_env()
