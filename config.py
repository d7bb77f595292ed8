import copy
import os
import tomllib
from pathlib import Path

DEFAULTS = {
    "cargo": {
        "program": "cargo",
        "env": {},
    },
    "console": {
        "history_file": str(Path.home() / ".cargo_console_history"),
        "kill_timeout": 5.0,
        "log_level": "WARNING",
    },
}


def _merge(base: dict, override: dict) -> dict:
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = value
    return base


def config_path() -> Path:
    """Config file location: CARGO_CONSOLE_CONFIG > ./cargo-console.toml > ~/.config/cargo-console/config.toml"""
    env_path = os.environ.get("CARGO_CONSOLE_CONFIG")
    if env_path:
        return Path(env_path)
    local = Path("cargo-console.toml")
    if local.exists():
        return local
    return Path.home() / ".config" / "cargo-console" / "config.toml"


def load_config(path=None) -> dict:
    """Load configuration; priority: environment > config file > defaults."""
    config = copy.deepcopy(DEFAULTS)

    explicit = path is not None or bool(os.environ.get("CARGO_CONSOLE_CONFIG"))
    path = Path(path) if path is not None else config_path()
    # an explicitly named file must exist; the default locations are optional
    if explicit or path.exists():
        with open(path, "rb") as f:
            _merge(config, tomllib.load(f))

    # environment overrides
    env_program = os.environ.get("CARGO")
    if env_program:
        config["cargo"]["program"] = env_program
    env_level = os.environ.get("CARGO_CONSOLE_LOG_LEVEL")
    if env_level:
        config["console"]["log_level"] = env_level

    return config
