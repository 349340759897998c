# portfolio_accounting/utils/context.py
"""
Calculation context for the portfolio accounting engine.

Every aggregation run gets a calculation ID so that the log lines produced
by the normalizer, the FIFO matcher and the XIRR solver for one request
can be grouped together.

Uses Python's contextvars, so concurrent runs in different threads or
tasks never see each other's ID.

Usage:
    from portfolio_accounting.utils.context import calculation_scope

    with calculation_scope(user_id="u-1") as calculation_id:
        ...  # every log record carries calculation_id
"""

import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any

# =============================================================================
# CONTEXT VARIABLES
# =============================================================================

_calculation_id_var: ContextVar[str | None] = ContextVar("calculation_id", default=None)

_calculation_context_var: ContextVar[dict[str, Any] | None] = ContextVar(
    "calculation_context", default=None
)


# =============================================================================
# CALCULATION ID
# =============================================================================

def get_calculation_id() -> str | None:
    """
    Get the current calculation ID.

    Returns:
        The calculation ID for the current run, or None if not set.
    """
    return _calculation_id_var.get()


def set_calculation_id(calculation_id: str) -> None:
    """Set the calculation ID for the current run."""
    _calculation_id_var.set(calculation_id)


def clear_calculation_id() -> None:
    """Clear the calculation ID."""
    _calculation_id_var.set(None)


def get_calculation_context() -> dict[str, Any]:
    """
    Get a copy of the extra context attached to the current run.

    Returns:
        Dictionary of context values (empty outside a calculation scope).
    """
    return dict(_calculation_context_var.get() or {})


# =============================================================================
# SCOPE
# =============================================================================

@contextmanager
def calculation_scope(calculation_id: str | None = None, **context: Any) -> Iterator[str]:
    """
    Bind a calculation ID (and optional context) for the duration of a block.

    Nested scopes restore the outer values on exit.

    Args:
        calculation_id: Explicit ID; a random one is generated if omitted
        **context: Extra values exposed through get_calculation_context()

    Yields:
        The calculation ID in effect inside the block
    """
    calculation_id = calculation_id or uuid.uuid4().hex[:12]
    id_token = _calculation_id_var.set(calculation_id)
    context_token = _calculation_context_var.set(dict(context))
    try:
        yield calculation_id
    finally:
        _calculation_context_var.reset(context_token)
        _calculation_id_var.reset(id_token)
