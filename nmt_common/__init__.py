"""Shared helpers for nmt-harness."""

from nmt_common.api import NMTError, configure_logging

__all__ = ["configure_logging", "NMTError"]
