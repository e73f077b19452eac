from .models import AccessEntry, Role, SSHConfig, User, ValidationError, load_config, parse_config

__all__ = ["AccessEntry", "Role", "SSHConfig", "User", "ValidationError", "load_config", "parse_config"]
