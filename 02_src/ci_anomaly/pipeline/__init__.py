"""Pipeline module."""

from .processor import ILogProcessor, LogProcessor, ProcessResult

__all__ = ["ILogProcessor", "LogProcessor", "ProcessResult"]
