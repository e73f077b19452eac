from .validator import audit_is_read_only, permission_sanity_checks, validate_plan

__all__ = ["audit_is_read_only", "permission_sanity_checks", "validate_plan"]
