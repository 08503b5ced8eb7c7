from __future__ import annotations


class DomainError(Exception):
    """Base for domain errors."""


class PoolNotFoundError(DomainError):
    """Requested pool is not in the store."""


class InvalidSimulationInputError(DomainError):
    """Invalid parameters for an LP simulation."""


class SimulationDataNotFoundError(DomainError):
    """Insufficient stored data to simulate a position."""

    def __init__(self, message: str, *, code: str = "insufficient_data", context: dict | None = None):
        super().__init__(message)
        self.code = code
        self.context = context or {}


class InvalidStrategyError(DomainError):
    """Strategy definition cannot be executed."""


class StatisticsInputError(DomainError):
    """Series passed to a statistic are empty or mismatched."""
