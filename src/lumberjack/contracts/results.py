# src/lumberjack/contracts/results.py
"""Uniform result type returned by every exporter call."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class ExportResult:
    """Outcome of a single exporter call.

    Exporters return this instead of raising. ``items_exported`` is zero on
    failure. ``retryable`` is False when sending the same batch again cannot
    succeed (it could not be encoded), so the buffer drops it instead of
    requeueing.
    """

    success: bool
    error: BaseException | None = None
    items_exported: int = 0
    retryable: bool = True

    @classmethod
    def ok(cls, items_exported: int) -> ExportResult:
        return cls(success=True, items_exported=items_exported)

    @classmethod
    def failed(cls, error: BaseException, *, retryable: bool = True) -> ExportResult:
        return cls(success=False, error=error, items_exported=0, retryable=retryable)
