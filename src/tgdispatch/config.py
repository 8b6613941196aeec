from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass
from pathlib import Path

# Environment variable names for secrets
ENV_BOT_TOKEN = "TGDISPATCH_BOT_TOKEN"

LOCAL_CONFIG_NAME = Path(".tgdispatch") / "tgdispatch.toml"
HOME_CONFIG_PATH = Path.home() / ".tgdispatch" / "tgdispatch.toml"

DEFAULT_FORWARD_QUIET_S = 1.0


class ConfigError(RuntimeError):
    pass


@dataclass(frozen=True, slots=True)
class DispatchSettings:
    bot_token: str
    config_path: Path
    handlers: str | None = None
    forward_quiet_s: float = DEFAULT_FORWARD_QUIET_S
    webhook_url: str | None = None
    api_host: str | None = None


def _config_candidates() -> list[Path]:
    candidates = [Path.cwd() / LOCAL_CONFIG_NAME, HOME_CONFIG_PATH]
    if candidates[0] == candidates[1]:
        return [candidates[0]]
    return candidates


def _read_config(cfg_path: Path) -> dict:
    try:
        raw = cfg_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise ConfigError(f"Missing config file {cfg_path}.") from None
    except OSError as e:
        raise ConfigError(f"Failed to read config file {cfg_path}: {e}") from e
    try:
        return tomllib.loads(raw)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Malformed TOML in {cfg_path}: {e}") from None


def load_config(path: str | Path | None = None) -> tuple[dict, Path]:
    if path:
        cfg_path = Path(path).expanduser()
        return _read_config(cfg_path), cfg_path

    for candidate in _config_candidates():
        if candidate.is_file():
            return _read_config(candidate), candidate

    raise ConfigError("Missing tgdispatch config.")


def get_bot_token(config: dict, config_path: Path) -> str:
    """Get bot token from environment variable or config file.

    Environment variable TGDISPATCH_BOT_TOKEN takes precedence over config file.
    """
    env_token = os.environ.get(ENV_BOT_TOKEN)
    if env_token and env_token.strip():
        return env_token.strip()

    try:
        token = config["bot_token"]
    except KeyError:
        raise ConfigError(
            f"Missing bot token. Set {ENV_BOT_TOKEN} environment variable "
            f"or add `bot_token` to {config_path}."
        ) from None

    if not isinstance(token, str) or not token.strip():
        raise ConfigError(
            f"Invalid `bot_token` in {config_path}; expected a non-empty string."
        )
    return token.strip()


def _optional_str(config: dict, key: str, config_path: Path) -> str | None:
    value = config.get(key)
    if value is None:
        return None
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(
            f"Invalid `{key}` in {config_path}; expected a non-empty string."
        )
    return value.strip()


def get_forward_quiet_s(config: dict, config_path: Path) -> float:
    value = config.get("forward_quiet_s", DEFAULT_FORWARD_QUIET_S)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(
            f"Invalid `forward_quiet_s` in {config_path}; expected a number."
        )
    if value < 0:
        raise ConfigError(
            f"Invalid `forward_quiet_s` in {config_path}; expected a value >= 0."
        )
    return float(value)


def load_settings(path: str | Path | None = None) -> DispatchSettings:
    config, config_path = load_config(path)
    return DispatchSettings(
        bot_token=get_bot_token(config, config_path),
        config_path=config_path,
        handlers=_optional_str(config, "handlers", config_path),
        forward_quiet_s=get_forward_quiet_s(config, config_path),
        webhook_url=_optional_str(config, "webhook_url", config_path),
        api_host=_optional_str(config, "api_host", config_path),
    )
