# common/config_loader.py
import os
import yaml
import logging
import hashlib
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Union

from dotenv import load_dotenv

_log = logging.getLogger("carmommy")

# Earlier files win: load_dotenv never overrides a variable that is already set.
ENV_FILES = ("cloud.secrets.env", ".env.local", "env.local", ".env")
PROJECT_ROOT = Path(__file__).resolve().parent.parent


def load_env_files(candidates: Iterable[str] = ENV_FILES) -> None:
    """Load env files from the CWD and the project root, never overriding platform values."""
    roots = [Path.cwd()]
    if PROJECT_ROOT != roots[0]:
        roots.append(PROJECT_ROOT)
    for fname in candidates:
        for root in roots:
            p = root / fname
            if p.is_file():
                load_dotenv(p, override=False)


def load_config(path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    """
    Tunables from YAML (CONFIG_PATH, else ./config.yaml).

    A missing or unreadable file is not fatal; every caller has a built-in
    default for each key it reads.
    """
    config_path = Path(path or os.getenv("CONFIG_PATH", "config.yaml"))
    if not config_path.exists():
        _log.warning("No config at %s; using built-in defaults", config_path)
        return {}
    try:
        with config_path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        _log.error("Could not read %s (%s); using built-in defaults", config_path, e)
        return {}
    if data is None:
        return {}
    if not isinstance(data, dict):
        _log.error("%s must hold a mapping at the top level; using built-in defaults", config_path)
        return {}
    return data


def cfg_get(d: Dict[str, Any], path: str, default=None):
    """cfg_get(cfg, 'payment.tolerance_lamports', 1000) -> nested value or default."""
    node: Any = d
    for key in path.split("."):
        try:
            node = node[key]
        except (KeyError, TypeError):
            return default
    return node


def mask_key(key: Optional[str]) -> str:
    """Loggable fingerprint of a secret."""
    if not key:
        return "<none>"
    return "sha256:" + hashlib.sha256(key.encode()).hexdigest()[:8]
