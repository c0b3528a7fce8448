"""Remediation exceptions."""

from __future__ import annotations


class RemediationError(Exception):
    """Base exception for remediation errors."""


class PlaybookNotFoundError(RemediationError):
    """No playbook is registered under the requested id."""


class GuardrailError(RemediationError):
    """A guardrail could not evaluate a step."""
