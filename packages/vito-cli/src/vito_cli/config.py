"""CLI credential resolution and persistence."""
from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

logger = logging.getLogger(__name__)

URL_VAR = "VITO_URL"
TOKEN_VAR = "VITO_TOKEN"

DEFAULT_CONFIG_PATH = Path(os.getenv("VITO_CONFIG", str(Path.home() / ".config" / "vito" / "config.json"))).expanduser()
# Distribution root: the directory above src/
DEFAULT_ENV_PATH = Path(__file__).resolve().parents[2] / ".env"

_ENV_LINE = re.compile(r"^\s*([A-Za-z0-9_]+)\s*=\s*(.*?)\s*$")


class ConfigurationMissing(RuntimeError):
    """Raised when no configuration source yields usable credentials."""

    def __init__(self, message: str | None = None):
        super().__init__(
            message
            or (
                "Not configured. Run 'vito config set --url URL --token TOKEN', "
                f"create a .env file with {URL_VAR} and {TOKEN_VAR}, "
                f"or set the {URL_VAR} and {TOKEN_VAR} environment variables."
            )
        )


@dataclass(frozen=True)
class Credentials:
    url: str
    token: str
    source: str = field(default="", compare=False)


def config_path() -> Path:
    return DEFAULT_CONFIG_PATH


def _pair(url: object, token: object, source: str) -> Credentials | None:
    if isinstance(url, str) and url and isinstance(token, str) and token:
        return Credentials(url=url, token=token, source=source)
    return None


def parse_env_file(text: str) -> dict[str, str]:
    """Parse ``KEY=VALUE`` lines; surrounding single or double quotes are stripped."""
    values: dict[str, str] = {}
    for line in text.splitlines():
        match = _ENV_LINE.match(line)
        if not match:
            continue
        value = match.group(2)
        if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
            value = value[1:-1]
        values[match.group(1)] = value
    return values


def load_env_file(path: Path) -> dict[str, str]:
    if not path.is_file():
        return {}
    return parse_env_file(path.read_text(encoding="utf-8"))


def load_config_file(path: Path) -> dict | None:
    """Read the persisted config; anything unreadable counts as absent."""
    if not path.is_file():
        return None
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except OSError:
        logger.warning("config.unreadable path=%s", path)
        return None
    except ValueError:
        logger.warning("config.malformed path=%s", path)
        return None
    if not isinstance(raw, dict):
        logger.warning("config.not_an_object path=%s", path)
        return None
    return raw


def resolve(
    environ: Mapping[str, str] | None = None,
    config_path: Path | None = None,
    env_path: Path | None = None,
) -> Credentials | None:
    """Resolve credentials from the first source that defines them.

    Order: environment variables, the user config file, the ``.env`` file.
    If either environment variable is defined at all, even as an empty
    string, the file sources are not consulted.
    """
    env = os.environ if environ is None else environ

    if URL_VAR in env or TOKEN_VAR in env:
        logger.debug("config.source source=env")
        return _pair(env.get(URL_VAR), env.get(TOKEN_VAR), "env")

    stored = load_config_file((config_path or DEFAULT_CONFIG_PATH).expanduser())
    if stored is not None:
        creds = _pair(stored.get("url"), stored.get("token"), "config")
        if creds is not None:
            logger.debug("config.source source=config")
            return creds

    dotenv = load_env_file(env_path or DEFAULT_ENV_PATH)
    creds = _pair(dotenv.get(URL_VAR), dotenv.get(TOKEN_VAR), ".env")
    if creds is not None:
        logger.debug("config.source source=.env")
    return creds


def require(
    environ: Mapping[str, str] | None = None,
    config_path: Path | None = None,
    env_path: Path | None = None,
) -> Credentials:
    creds = resolve(environ, config_path, env_path)
    if creds is None:
        raise ConfigurationMissing()
    return creds


def persist(credentials: Credentials, path: Path | None = None) -> str:
    """Overwrite the user config file with ``credentials`` and return its absolute path."""
    cfg_path = (path or DEFAULT_CONFIG_PATH).expanduser()
    cfg_path.parent.mkdir(parents=True, exist_ok=True)
    payload = {"url": credentials.url, "token": credentials.token}
    cfg_path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")
    logger.info("config.saved path=%s", cfg_path)
    return str(cfg_path.resolve())
