"""Runtime settings read from the environment.

Call `load_dotenv()` before `load_settings()` to pick up a local `.env` file.
"""
import logging
import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    playbook_command: str = 'ansible-playbook'
    log_level: str = 'INFO'
    plan_name: str = 'sshman'


def _getenv(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def load_settings() -> Settings:
    level = _getenv("SSHMAN_LOG_LEVEL", Settings.log_level).upper()
    if not isinstance(logging.getLevelName(level), int):
        level = Settings.log_level
    return Settings(
        playbook_command=_getenv("SSHMAN_ANSIBLE_PLAYBOOK", Settings.playbook_command),
        log_level=level,
        plan_name=_getenv("SSHMAN_PLAN_NAME", Settings.plan_name),
    )
