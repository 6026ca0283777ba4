"""Logging setup."""

from hackdao.telemetry.logging import setup_logging

__all__ = ["setup_logging"]
