"""Shared utilities for the thinking loop."""

from ponder.utils.time_utils import utc_now

__all__ = ["utc_now"]
