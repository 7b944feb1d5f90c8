"""Best-effort side effects (audit trail, notifications).

A primary ticket mutation must succeed even when its follow-up work fails.
Follow-up work runs through run_best_effort, which returns a SideEffectResult
instead of raising.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SideEffectResult:
    """Outcome of a best-effort side effect."""

    name: str
    ok: bool
    error: str | None = None
    value: Any = None


def run_best_effort(
    name: str,
    fn: Callable[..., Any],
    *args: Any,
    on_error: Callable[[], None] | None = None,
    **kwargs: Any,
) -> SideEffectResult:
    """
    Run fn, logging and capturing any exception.

    on_error runs after a failure (e.g. session rollback); its own failure is
    logged as well.
    """
    try:
        value = fn(*args, **kwargs)
    except Exception as exc:
        logger.exception("Best-effort side effect %s failed", name)
        if on_error is not None:
            try:
                on_error()
            except Exception:
                logger.exception("Cleanup after side effect %s failed", name)
        return SideEffectResult(name=name, ok=False, error=f"{type(exc).__name__}: {exc}")
    return SideEffectResult(name=name, ok=True, value=value)
