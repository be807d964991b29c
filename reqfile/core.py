"""reqfile core - config loading, environment, logging, .http file loading."""

import logging
import os
import re
from pathlib import Path

import yaml
from dotenv import dotenv_values

from reqfile.models import File
from reqfile.parser import parse

GLOBAL_DIR = Path.home() / ".reqfile"
GLOBAL_CONFIG = GLOBAL_DIR / "config.yaml"

CWD_CONFIG_CANDIDATES = [
    ".reqfile.yaml",
    ".reqfile.yml",
    "reqfile.yaml",
    "reqfile.yml",
]

DEFAULT_TIMEOUT = 30

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the command-line tool.

    Args:
        verbose: Enable debug logging
    """
    level = logging.DEBUG if verbose else logging.WARNING

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(message)s",
        datefmt="%H:%M:%S",
    )

    # Suppress noisy connection pool logging
    logging.getLogger("urllib3").setLevel(logging.WARNING)

    logging.getLogger("reqfile").setLevel(level)


def resolve_path(
    candidates: list[Path],
    default: Path | None = None,
) -> Path | None:
    """Return the first existing path from candidates.

    If none exist, returns default.
    """
    for p in candidates:
        if p.exists():
            return p.resolve()
    return default


def resolve_config_path(config_file: str | None) -> Path | None:
    """Find the config file to use.

    Resolution order:
      1. Explicit -c flag (no fallthrough if missing)
      2. .reqfile.yaml (variants) in CWD
      3. ~/.reqfile/config.yaml
    """
    if config_file:
        return resolve_path([Path(config_file)])
    return resolve_path([Path(c) for c in CWD_CONFIG_CANDIDATES] + [GLOBAL_CONFIG])


def load_config(config_path: str | Path | None) -> dict:
    """Load YAML config file. Returns empty defaults if not found.

    Stores '_config_dir' in the returned dict so env_file can be
    resolved relative to the config file.
    """
    if config_path is None:
        return {"defaults": {}, "_config_dir": None}
    path = Path(config_path)
    if not path.exists():
        return {"defaults": {}, "_config_dir": None}
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    logger.debug("Loaded config %s", path)
    return {
        "defaults": data.get("defaults") or {},
        "_config_dir": path.resolve().parent,
    }


def load_env(env_file: str | None, base_dir: str | Path = ".") -> dict[str, str]:
    """Load .env file and merge with os.environ.

    Returns combined dict with .env values taking precedence over os.environ.
    """
    env = dict(os.environ)
    if env_file:
        dotenv_path = Path(base_dir) / env_file
        if dotenv_path.exists():
            dotenv_vars = dotenv_values(str(dotenv_path))
            env.update({k: v for k, v in dotenv_vars.items() if v is not None})
        else:
            logger.warning("env_file %s not found", dotenv_path)
    return env


def resolve_value(value, env: dict[str, str]):
    """Resolve $VAR and ${VAR} references in a string config value.

    Non-strings are returned unchanged; unknown names are left as written.
    """
    if not isinstance(value, str):
        return value

    def _replace(m: re.Match) -> str:
        var_name = m.group(1) or m.group(2)
        return env.get(var_name, m.group(0))

    return re.sub(r"\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)", _replace, value)


def config_mapping(defaults: dict, key: str, env: dict[str, str]) -> dict[str, str]:
    """A ``defaults`` section of name → value, resolved against ``env``."""
    section = defaults.get(key) or {}
    if not isinstance(section, dict):
        return {}
    return {str(k): str(resolve_value(v, env)) for k, v in section.items() if v is not None}


def parse_var_pairs(pairs) -> dict[str, str]:
    """Parse 'key=value' strings; entries without '=' are ignored."""
    variables = {}
    for pair in pairs:
        if "=" in pair:
            k, val = pair.split("=", 1)
            variables[k.strip()] = val.strip()
    return variables


def load_http_file(path: str | Path) -> File:
    """Read and parse a .http file (UTF-8, BOM tolerated)."""
    p = Path(path)
    content = p.read_text(encoding="utf-8-sig")
    return parse(content, str(p))
