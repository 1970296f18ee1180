"""Tests for YAML settings loading."""
import pytest
import yaml
from pydantic import ValidationError

from roomkeeper.config import SETTINGS_ENV_VAR, AppConfig, load_config


def write_settings(tmp_path, data):
    path = tmp_path / "roomkeeper.settings.yaml"
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


class TestDefaults:
    def test_defaults_match_protocol(self):
        config = AppConfig()
        assert config.server.port == 3000
        assert config.presence.reconnection_window_ms == 10_000
        assert config.presence.reconnection_expiry_padding_ms == 1_000
        assert config.presence.typing_timeout_ms == 3_000
        assert config.messages.join_template.format(name="ana") == "ana ha ingresado a la sala."
        assert config.messages.leave_template.format(name="ana") == "ana ha abandonado la sala."

    def test_missing_file_gives_defaults(self, tmp_path):
        config = load_config(tmp_path / "absent.yaml")
        assert config == AppConfig()

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")
        assert load_config(path) == AppConfig()


class TestLoading:
    def test_partial_override(self, tmp_path):
        path = write_settings(tmp_path, {
            "server": {"port": 8080},
            "presence": {"typing_timeout_ms": 1500},
            "messages": {"join_template": "{name} joined."},
        })
        config = load_config(path)

        assert config.server.port == 8080
        assert config.server.host == "0.0.0.0"
        assert config.presence.typing_timeout_ms == 1500
        assert config.presence.reconnection_window_ms == 10_000
        assert config.messages.join_template == "{name} joined."

    def test_env_var_selects_file(self, tmp_path, monkeypatch):
        path = write_settings(tmp_path, {"logging": {"level": "DEBUG"}})
        monkeypatch.setenv(SETTINGS_ENV_VAR, str(path))

        assert load_config().logging.level == "debug"

    def test_unknown_log_level_rejected(self, tmp_path):
        path = write_settings(tmp_path, {"logging": {"level": "chatty"}})
        with pytest.raises(ValidationError):
            load_config(path)

    @pytest.mark.parametrize("field", ["reconnection_window_ms", "typing_timeout_ms"])
    def test_non_positive_timings_rejected(self, tmp_path, field):
        path = write_settings(tmp_path, {"presence": {field: 0}})
        with pytest.raises(ValidationError):
            load_config(path)
