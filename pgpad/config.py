"""App configuration loading helpers."""

from __future__ import annotations

from pathlib import Path

import tomllib

from psycopg.conninfo import make_conninfo
from pydantic import BaseModel, Field

CONFIG_FILE = Path.home() / ".config" / "pgpad" / "config.toml"

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class LayoutState(BaseModel):
    """Persisted layout hints for the TUI."""

    results_height: int | None = None


class ConnectionProfileConfig(BaseModel):
    """Named connection target stored in config.toml."""

    name: str
    dsn: str | None = None
    host: str | None = None
    port: int | None = None
    database: str | None = None
    user: str | None = None

    def conninfo(self) -> str:
        """Render the profile as a libpq connection string."""

        if self.dsn:
            return self.dsn
        params = {
            "host": self.host,
            "port": self.port,
            "dbname": self.database,
            "user": self.user,
        }
        return make_conninfo(**{key: value for key, value in params.items() if value is not None})


class AppConfig(BaseModel):
    """Shape of the application configuration file."""

    theme: str = "textual-dark"
    show_timing: bool = True
    max_result_rows: int = 500
    log_level: str = "WARNING"
    log_file: Path | None = None
    profiles: list[ConnectionProfileConfig] = Field(default_factory=list)
    default_profile: str | None = None
    layout: LayoutState = Field(default_factory=LayoutState)

    def profile(self, name: str) -> ConnectionProfileConfig | None:
        """Return the profile called ``name``, if configured."""

        for profile in self.profiles:
            if profile.name == name:
                return profile
        return None

    def with_theme(self, theme: str) -> AppConfig:
        """Return a copy with the theme updated."""

        return self.model_copy(update={"theme": theme})

    def with_layout(self, **updates: object) -> AppConfig:
        """Return a copy with layout state changes applied."""

        layout = self.layout.model_copy(update=updates)
        return self.model_copy(update={"layout": layout})


def load_config() -> AppConfig:
    """Load configuration from disk; fall back to defaults if missing."""

    try:
        data = _read_config_file()
    except FileNotFoundError:
        return AppConfig()
    except (tomllib.TOMLDecodeError, OSError):
        return AppConfig()
    return AppConfig(**data)


def save_config(config: AppConfig) -> None:
    """Persist configuration to disk."""

    CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
    lines: list[str] = [
        f'theme = "{config.theme}"',
        f"show_timing = {str(config.show_timing).lower()}",
        f"max_result_rows = {config.max_result_rows}",
        f'log_level = "{config.log_level}"',
    ]
    if config.log_file is not None:
        lines.append(f'log_file = "{config.log_file}"')
    if config.default_profile:
        lines.append(f'default_profile = "{config.default_profile}"')
    if config.layout.results_height is not None:
        lines.append("")
        lines.append("[layout]")
        lines.append(f"results_height = {config.layout.results_height}")
    if config.profiles:
        lines.append("")
        for profile in config.profiles:
            lines.append("[[profiles]]")
            lines.append(f'name = "{profile.name}"')
            if profile.dsn:
                lines.append(f'dsn = "{profile.dsn}"')
            if profile.host:
                lines.append(f'host = "{profile.host}"')
            if profile.port is not None:
                lines.append(f"port = {profile.port}")
            if profile.database:
                lines.append(f'database = "{profile.database}"')
            if profile.user:
                lines.append(f'user = "{profile.user}"')
            lines.append("")
    CONFIG_FILE.write_text("\n".join(lines) + "\n")


def _read_config_file() -> dict[str, object]:
    with CONFIG_FILE.open("rb") as handle:
        raw = tomllib.load(handle)
    data: dict[str, object] = {}
    if not isinstance(raw, dict):
        return data
    theme = raw.get("theme")
    if isinstance(theme, str):
        data["theme"] = theme
    show_timing = raw.get("show_timing")
    if isinstance(show_timing, bool):
        data["show_timing"] = show_timing
    max_rows = raw.get("max_result_rows")
    if isinstance(max_rows, int) and not isinstance(max_rows, bool) and max_rows > 0:
        data["max_result_rows"] = max_rows
    log_level = raw.get("log_level")
    if isinstance(log_level, str) and log_level.upper() in _LOG_LEVELS:
        data["log_level"] = log_level.upper()
    log_file = raw.get("log_file")
    if isinstance(log_file, str) and log_file:
        data["log_file"] = Path(log_file).expanduser()
    default_profile = raw.get("default_profile")
    if isinstance(default_profile, str):
        data["default_profile"] = default_profile
    profiles = raw.get("profiles")
    if isinstance(profiles, list):
        parsed_profiles: list[ConnectionProfileConfig] = []
        for profile in profiles:
            if not isinstance(profile, dict):
                continue
            parsed: dict[str, object] = {}
            for key in ("name", "dsn", "host", "database", "user"):
                value = profile.get(key)
                if isinstance(value, str):
                    parsed[key] = value
            port = profile.get("port")
            if isinstance(port, int) and not isinstance(port, bool):
                parsed["port"] = port
            if parsed.get("name"):
                parsed_profiles.append(ConnectionProfileConfig(**parsed))
        data["profiles"] = parsed_profiles
    layout = raw.get("layout")
    if isinstance(layout, dict):
        state: dict[str, object] = {}
        results_height = layout.get("results_height")
        if isinstance(results_height, int) and not isinstance(results_height, bool):
            state["results_height"] = results_height
        data["layout"] = LayoutState(**state)
    return data

