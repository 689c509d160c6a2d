"""Panoptes exception hierarchy.

Only configuration and adapter-validation errors ever surface from Panoptes to
the host application. Transport failures and snapshot failures are logged and
absorbed; the application's own query errors are re-raised unchanged by the
interceptor and never wrapped in these classes.
"""

from __future__ import annotations


class PanoptesError(Exception):
    """Base class for errors raised by Panoptes itself."""


class ConfigurationError(PanoptesError, ValueError):
    """Malformed configuration, double initialization, or a patch before init.

    Raised synchronously at startup/patch time so misconfiguration fails fast.
    """


class AdapterValidationError(PanoptesError, TypeError):
    """A client handed to an adapter does not expose the expected driver methods."""
