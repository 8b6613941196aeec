from pathlib import Path

import pytest

from tgdispatch.config import (
    ENV_BOT_TOKEN,
    ConfigError,
    get_bot_token,
    load_config,
    load_settings,
)


@pytest.fixture(autouse=True)
def _no_env_token(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv(ENV_BOT_TOKEN, raising=False)


class TestLoadConfig:
    def test_load_from_explicit_path(self, tmp_path: Path) -> None:
        config_file = tmp_path / "tgdispatch.toml"
        config_file.write_text('bot_token = "test123"')

        config, path = load_config(config_file)

        assert config["bot_token"] == "test123"
        assert path == config_file

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="Missing config file"):
            load_config(tmp_path / "nonexistent.toml")

    def test_malformed_toml_raises(self, tmp_path: Path) -> None:
        bad_file = tmp_path / "bad.toml"
        bad_file.write_text("invalid = [unclosed")

        with pytest.raises(ConfigError, match="Malformed TOML"):
            load_config(bad_file)

    def test_directory_is_unreadable(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="Failed to read config file"):
            load_config(tmp_path)

    def test_local_config_is_discovered(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        local = tmp_path / ".tgdispatch" / "tgdispatch.toml"
        local.parent.mkdir()
        local.write_text('bot_token = "local"')
        monkeypatch.chdir(tmp_path)

        config, path = load_config()

        assert config["bot_token"] == "local"
        assert path == local


class TestBotToken:
    def test_env_takes_precedence(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv(ENV_BOT_TOKEN, "  from-env  ")

        assert get_bot_token({"bot_token": "from-file"}, tmp_path) == "from-env"

    def test_missing_token(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="Missing bot token"):
            get_bot_token({}, tmp_path)

    def test_invalid_token(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="Invalid `bot_token`"):
            get_bot_token({"bot_token": 123}, tmp_path)


class TestLoadSettings:
    def test_full_settings(self, tmp_path: Path) -> None:
        config_file = tmp_path / "tgdispatch.toml"
        config_file.write_text(
            'bot_token = "1:abc"\n'
            'handlers = "mybot.handlers"\n'
            "forward_quiet_s = 0.5\n"
            'webhook_url = "https://bot.example.com"\n'
            'api_host = "localhost:8081"\n'
        )

        settings = load_settings(config_file)

        assert settings.bot_token == "1:abc"
        assert settings.handlers == "mybot.handlers"
        assert settings.forward_quiet_s == 0.5
        assert settings.webhook_url == "https://bot.example.com"
        assert settings.api_host == "localhost:8081"
        assert settings.config_path == config_file

    def test_defaults(self, tmp_path: Path) -> None:
        config_file = tmp_path / "tgdispatch.toml"
        config_file.write_text('bot_token = "1:abc"\n')

        settings = load_settings(config_file)

        assert settings.handlers is None
        assert settings.forward_quiet_s == 1.0
        assert settings.webhook_url is None
        assert settings.api_host is None

    @pytest.mark.parametrize(
        ("line", "message"),
        [
            ("forward_quiet_s = true", "expected a number"),
            ('forward_quiet_s = "1"', "expected a number"),
            ("forward_quiet_s = -1", "expected a value >= 0"),
            ('handlers = ""', "Invalid `handlers`"),
        ],
    )
    def test_invalid_values(self, tmp_path: Path, line: str, message: str) -> None:
        config_file = tmp_path / "tgdispatch.toml"
        config_file.write_text(f'bot_token = "1:abc"\n{line}\n')

        with pytest.raises(ConfigError, match=message):
            load_settings(config_file)
