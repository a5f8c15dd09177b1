"""Resolved application configuration.

Values are resolved in order: explicit overrides (command-line flags), the
process environment, then an optional env file of ``KEY=VALUE`` lines.

Usage
-----
>>> config = AppConfig.from_env(ConfigRequirements(), environ={})
>>> config.data_dir.name
'cratedigger'

"""

from __future__ import annotations

import dataclasses as dc
import os
import typing as typ
from pathlib import Path

from dotenv import dotenv_values

from cratedigger import __version__

API_KEY_ENV = "LASTFM_API_KEY"
SHARED_SECRET_ENV = "LASTFM_SHARED_SECRET"  # noqa: S105
USERNAME_ENV = "LASTFM_USERNAME"
ENV_FILE_ENV = "LASTFM_ENV_FILE"
DATA_DIR_ENV = "CRATEDIGGER_DATA_DIR"
XDG_DATA_HOME_ENV = "XDG_DATA_HOME"

APP_DIR_NAME = "cratedigger"
DEFAULT_USER_AGENT = f"cratedigger/{__version__}"


class ConfigError(ValueError):
    """Raised when configuration is missing or unusable."""

    @classmethod
    def missing(cls, what: str, env_var: str, flag: str) -> ConfigError:
        """Return an error for a required value that was not supplied."""
        return cls(
            f"missing {what}: set {env_var} or pass {flag} (or use --env-file)"
        )

    @classmethod
    def env_file_not_found(cls, path: Path) -> ConfigError:
        """Return an error for an env file that does not exist."""
        return cls(f"env file not found: {path}")

    @classmethod
    def no_home_directory(cls) -> ConfigError:
        """Return an error when no data directory can be derived."""
        return cls(
            f"cannot resolve a data directory: set {XDG_DATA_HOME_ENV}, "
            f"{DATA_DIR_ENV} or pass --data-dir"
        )


@dc.dataclass(frozen=True, slots=True)
class ConfigRequirements:
    """Values a command cannot run without."""

    require_api_key: bool = False
    require_username: bool = False


INGESTION_REQUIREMENTS = ConfigRequirements(require_api_key=True, require_username=True)
RECOMMEND_REQUIREMENTS = ConfigRequirements(require_api_key=True)
OFFLINE_REQUIREMENTS = ConfigRequirements()


def default_data_dir(environ: typ.Mapping[str, str]) -> Path:
    """Return ``$XDG_DATA_HOME/cratedigger`` or ``~/.local/share/cratedigger``."""
    xdg_home = environ.get(XDG_DATA_HOME_ENV, "").strip()
    if xdg_home:
        return Path(xdg_home) / APP_DIR_NAME
    try:
        home = Path.home()
    except RuntimeError as exc:
        raise ConfigError.no_home_directory() from exc
    return home / ".local" / "share" / APP_DIR_NAME


def load_env_file(path: Path) -> dict[str, str]:
    """Read ``KEY=VALUE`` lines from ``path``; keys without values are dropped."""
    if not path.is_file():
        raise ConfigError.env_file_not_found(path)
    return {
        key: value
        for key, value in dotenv_values(path).items()
        if value is not None
    }


def _first(*candidates: str | None) -> str:
    for candidate in candidates:
        if candidate and candidate.strip():
            return candidate.strip()
    return ""


@dc.dataclass(frozen=True, slots=True)
class AppConfig:
    """Configuration shared by every command.

    Attributes
    ----------
    api_key
        Last.fm API key.
    shared_secret
        Last.fm shared secret; carried for completeness, unused by read calls.
    username
        Last.fm user whose history is mirrored.
    data_dir
        Directory holding ``lastfm.sqlite`` and ``scrobbles.raw.jsonl``.
    verbose
        Log per-page progress at DEBUG.
    user_agent
        ``User-Agent`` header sent to Last.fm.

    """

    api_key: str = ""
    shared_secret: str = ""
    username: str = ""
    data_dir: Path = dc.field(
        default_factory=lambda: Path.home() / ".local" / "share" / APP_DIR_NAME
    )
    verbose: bool = False
    user_agent: str = DEFAULT_USER_AGENT

    @classmethod
    def from_env(  # noqa: PLR0913
        cls,
        requirements: ConfigRequirements = OFFLINE_REQUIREMENTS,
        *,
        env_file: Path | None = None,
        api_key: str | None = None,
        shared_secret: str | None = None,
        username: str | None = None,
        data_dir: Path | None = None,
        verbose: bool = False,
        user_agent: str | None = None,
        environ: typ.Mapping[str, str] | None = None,
    ) -> AppConfig:
        """Resolve configuration from overrides, the environment and an env file.

        Raises
        ------
        ConfigError
            If the env file is missing or a value ``requirements`` asks for
            cannot be found anywhere.

        """
        env = os.environ if environ is None else environ
        env_file_path = env_file or (
            Path(env[ENV_FILE_ENV]) if env.get(ENV_FILE_ENV, "").strip() else None
        )
        file_values = load_env_file(env_file_path) if env_file_path else {}

        def resolve(override: str | None, key: str) -> str:
            return _first(override, env.get(key), file_values.get(key))

        resolved_api_key = resolve(api_key, API_KEY_ENV)
        resolved_username = resolve(username, USERNAME_ENV)
        if requirements.require_api_key and not resolved_api_key:
            raise ConfigError.missing("api key", API_KEY_ENV, "--api-key")
        if requirements.require_username and not resolved_username:
            raise ConfigError.missing("username", USERNAME_ENV, "--user")

        raw_data_dir = resolve(str(data_dir) if data_dir else None, DATA_DIR_ENV)
        return cls(
            api_key=resolved_api_key,
            shared_secret=resolve(shared_secret, SHARED_SECRET_ENV),
            username=resolved_username,
            data_dir=Path(raw_data_dir).expanduser()
            if raw_data_dir
            else default_data_dir(env),
            verbose=verbose,
            user_agent=_first(user_agent) or DEFAULT_USER_AGENT,
        )
