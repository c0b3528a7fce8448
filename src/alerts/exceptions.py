"""Alert lifecycle and store exceptions."""

from __future__ import annotations


class AlertError(Exception):
    """Base exception for alert errors."""


class AlertNotFoundError(AlertError):
    """No persisted state exists for the requested alert id."""


class InvalidTransitionError(AlertError):
    """The requested lifecycle change is not allowed from the current status."""


class AlertStoreError(AlertError):
    """The alert store could not read or write state."""
