from .worker import ExecutionError, Executor

__all__ = ["ExecutionError", "Executor"]
