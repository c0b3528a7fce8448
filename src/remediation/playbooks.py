"""Playbook contract and registry."""

from __future__ import annotations

import abc
from collections.abc import Iterator
from typing import ClassVar

import structlog

from src.core.types import (
    Alert,
    AlertType,
    EstimatedImpact,
    PlaybookOptions,
    Remediation,
    RemediationStep,
    StepStatus,
)
from src.remediation.exceptions import PlaybookNotFoundError

logger = structlog.stdlib.get_logger()


class Playbook(abc.ABC):
    """Turns a surfaced alert into an ordered list of remediation steps.

    Steps that are taken immediately start ``applied`` on a live run and
    ``pending`` on a dry run; analysis steps always start ``pending``.
    """

    id: ClassVar[str]
    alert_type: ClassVar[AlertType]
    description: ClassVar[str] = ""

    @abc.abstractmethod
    async def execute(self, alert: Alert, options: PlaybookOptions) -> Remediation:
        """Build the remediation for *alert*. Guardrails run afterwards."""

    @staticmethod
    def immediate(options: PlaybookOptions) -> StepStatus:
        return StepStatus.PENDING if options.dry_run else StepStatus.APPLIED

    def remediation(
        self,
        alert: Alert,
        steps: list[RemediationStep],
        impact: EstimatedImpact | None = None,
        blockers: list[str] | None = None,
    ) -> Remediation:
        return Remediation(
            alert_id=alert.id,
            playbook=self.id,
            steps=steps,
            guardrails_passed=True,
            blockers=blockers or [],
            estimated_impact=impact,
        )


class PlaybookRegistry:
    """Playbooks keyed by id; one playbook may be registered under several ids."""

    def __init__(self) -> None:
        self._playbooks: dict[str, Playbook] = {}

    def register(self, playbook: Playbook, key: str | None = None) -> None:
        key = key or playbook.id
        if key in self._playbooks:
            logger.info("playbook_replaced", playbook=key)
        self._playbooks[key] = playbook

    def get(self, key: str) -> Playbook | None:
        return self._playbooks.get(key)

    def require(self, key: str) -> Playbook:
        playbook = self.get(key)
        if playbook is None:
            raise PlaybookNotFoundError(f"No playbook registered as {key!r}")
        return playbook

    @property
    def ids(self) -> list[str]:
        return sorted(self._playbooks)

    def __contains__(self, key: object) -> bool:
        return key in self._playbooks

    def __iter__(self) -> Iterator[str]:
        return iter(self.ids)

    def __len__(self) -> int:
        return len(self._playbooks)
