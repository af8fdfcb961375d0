"""Tests for config models and config file I/O."""

import json

import pytest
from pydantic import ValidationError

import services.config_io as config_io
from services.config_schema import AppConfig, SlackConfig

YAML_DOC = """\
slack:
  myslack:
    token: xoxb-1
    app_token: xapp-1
    edit_suffix: " (edited)"
  ops:
    webhook_url: https://hooks.example/ops
gateways:
  - name: ops
    channels:
      myslack: {channel: general}
      ops: {channel: alerts}
"""


class TestSlackConfig:

    def test_defaults(self):
        cfg = SlackConfig(token="xoxb-1")
        assert cfg.webhook_path == "/"
        assert cfg.max_file_size == 1_000_000
        assert cfg.irc_bridge_bot_names == ["Slack API Tester"]
        assert cfg.edit_disable is False
        assert cfg.media_download_blacklist == []

    @pytest.mark.parametrize("raw,expected", [("true", True), ("YES", True), ("1", True), ("no", False), (True, True)])
    def test_bool_coercion(self, raw, expected):
        assert SlackConfig(token="t", edit_disable=raw).edit_disable is expected

    def test_needs_some_path(self):
        with pytest.raises(ValidationError, match="requires 'app_token'"):
            SlackConfig()

    @pytest.mark.parametrize("key", ["app_token", "webhook_bind_address", "token", "webhook_url"])
    def test_any_single_path_is_enough(self, key):
        SlackConfig(**{key: "x:1"})

    def test_unknown_key_rejected(self):
        with pytest.raises(ValidationError):
            SlackConfig(token="t", tokne="typo")


class TestConfigIO:

    def test_data_path_env(self, monkeypatch, tmp_path):
        monkeypatch.delenv("RELAY_DATA_PATH", raising=False)
        assert str(config_io.data_path()) == "data"
        monkeypatch.setenv("RELAY_DATA_PATH", str(tmp_path))
        assert config_io.log_path() == tmp_path / "logs"

    def test_find_config_order(self, tmp_path):
        assert config_io.find_config(tmp_path) is None
        (tmp_path / "config.toml").write_text("")
        (tmp_path / "config.yaml").write_text("")
        assert config_io.find_config(tmp_path).name == "config.yaml"

    def test_load_yaml_app_config(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(YAML_DOC, encoding="utf-8")
        cfg = config_io.load_app_config(path)

        assert isinstance(cfg, AppConfig)
        assert cfg.slack["myslack"].edit_suffix == " (edited)"
        assert cfg.slack["ops"].webhook_url == "https://hooks.example/ops"
        assert cfg.gateways[0].channels["myslack"] == {"channel": "general"}

    def test_convert_yaml_to_toml_and_json(self, tmp_path):
        src = tmp_path / "config.yaml"
        src.write_text(YAML_DOC, encoding="utf-8")
        data = config_io.load_config(src)

        for name in ("out.toml", "nested/out.json"):
            dst = tmp_path / name
            config_io.save_config(data, dst)
            assert config_io.load_config(dst) == data

        assert json.loads((tmp_path / "nested/out.json").read_text())["slack"]["myslack"]["token"] == "xoxb-1"

    def test_empty_yaml_is_empty_dict(self, tmp_path):
        path = tmp_path / "config.yml"
        path.write_text("", encoding="utf-8")
        assert config_io.load_config(path) == {}


class TestCollectSensitive:

    def test_finds_credentials_at_any_depth(self):
        raw = {
            "slack": {"a": {"token": "xoxb-1", "app_token": "xapp-1", "webhook_url": "https://hooks/1"}},
            "proxy": {"b": {"url": "https://public", "headers": {"X-Secret": "s3"}}},
            "gateways": [{"channels": {"a": {"channel": "general"}}}],
        }
        assert config_io.collect_sensitive(raw) == {"xoxb-1", "xapp-1", "https://hooks/1", "s3"}

    def test_empty_values_ignored(self):
        assert config_io.collect_sensitive({"token": ""}) == set()
