"""Telegram chat layer."""

from .optimized_bot import OptimizedBot

__all__ = ["OptimizedBot"]
