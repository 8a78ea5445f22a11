"""Repositories for persisted engine data."""

from .quality_turn_repo import QualityTurnRepository

__all__ = ["QualityTurnRepository"]
