"""
Error taxonomy for the Qi Men engine.

Handles:
- Input validation failures (raised before any computation starts)
- Solar term data unavailability (caught internally, triggers the estimator)
- Invariant violations (lookup tables that failed to resolve)
- Configuration errors
"""

from typing import Any, Mapping


class QimenError(Exception):
    """Base class for every error raised by the engine."""


class InputValidationError(QimenError, ValueError):
    """A caller-supplied value could not be parsed or is out of range."""


class TermDataUnavailable(QimenError, LookupError):
    """The solar term table has no data covering the requested instant."""


class InvariantViolation(QimenError, RuntimeError):
    """A lookup that must always resolve did not. This is a defect."""


class ConfigurationError(QimenError, ValueError):
    """An EngineConfig value is outside its allowed domain."""


def strict_lookup(table: Mapping, key: Any, what: str):
    """
    Look up `key` in `table`, raising InvariantViolation when missing.

    Every rule table in the engine goes through this helper so that an
    unmapped value fails loudly instead of falling back to a placeholder.
    """
    try:
        return table[key]
    except (KeyError, IndexError) as exc:
        raise InvariantViolation(f"unmapped {what}: {key!r}") from exc
