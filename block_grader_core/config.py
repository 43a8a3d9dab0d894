"""
Configuration for the block grader.

Settings resolve in two tiers: environment variable (a ``.env`` file in the
project root is loaded first) → hard-coded default.
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

load_dotenv(os.path.join(PROJECT_ROOT, '.env'))


def resolve_setting(env_var: str, default: str) -> str:
    """Environment → default. Blank values count as unset."""
    env_val = os.environ.get(env_var, '').strip()
    if env_val:
        return env_val
    return default


def _number(env_var: str, default: float) -> float:
    raw = resolve_setting(env_var, str(default))
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r: not a number, using %s", env_var, raw, default)
        return default
    if value < 0:
        logger.warning("Ignoring %s=%r: must not be negative, using %s", env_var, raw, default)
        return default
    return value


@dataclass(frozen=True)
class Settings:
    debounce_ms: int = 500
    invocation_timeout: float = 2.0
    primary_language: str = 'python'
    submissions_url: str = ''
    api_token: str = ''
    http_timeout: float = 10.0
    store_path: str = os.path.join(PROJECT_ROOT, 'data', 'workspaces.json')

    @classmethod
    def from_env(cls) -> 'Settings':
        return cls(
            debounce_ms=int(_number('BLOCKGRADER_DEBOUNCE_MS', 500)),
            invocation_timeout=_number('BLOCKGRADER_INVOCATION_TIMEOUT', 2.0),
            primary_language=resolve_setting('BLOCKGRADER_PRIMARY_LANGUAGE', 'python').lower(),
            submissions_url=resolve_setting('BLOCKGRADER_SUBMISSIONS_URL', '').rstrip('/'),
            api_token=resolve_setting('BLOCKGRADER_API_TOKEN', ''),
            http_timeout=_number('BLOCKGRADER_HTTP_TIMEOUT', 10.0),
            store_path=resolve_setting('BLOCKGRADER_STORE_PATH', cls.store_path),
        )


_settings: Optional[Settings] = None


def get_settings(reload: bool = False) -> Settings:
    """Return the process-wide settings, reading the environment on first use."""
    global _settings
    if _settings is None or reload:
        _settings = Settings.from_env()
    return _settings
