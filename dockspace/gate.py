"""
Gate controller: confirmation and backup requirements for plan steps.

A step that needs confirmation is only authorized with a token derived from
its exact contents, so an answer given for one step can never authorize a
different one. Steps that need a backup are archived object by object and
authorized only when every archive succeeded.
"""

import hashlib
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from dockspace.backup import Archiver
from dockspace.errors import BackupError, GateError, GateErrorKind
from dockspace.models import GateRejection, PlanStep, ReclaimPlan
from dockspace.units import format_bytes

logger = logging.getLogger(__name__)


class Confirmer(Protocol):
    """Asks a yes/no question. Implementations must never default to yes."""

    def ask(self, prompt: str) -> bool: ...


class ScriptedConfirmer:
    """Confirmer that replays pre-recorded answers (automation and tests).

    Once the answers run out every further question is declined.
    """

    def __init__(self, answers: Iterable[bool] = ()):
        self._answers = list(answers)
        self.prompts: list[str] = []

    def ask(self, prompt: str) -> bool:
        self.prompts.append(prompt)
        return self._answers.pop(0) if self._answers else False


@dataclass(frozen=True)
class AuthorizedStep:
    step: PlanStep
    confirmed: bool = False
    backups: dict[str, Path] = field(default_factory=dict)


def confirmation_token(step: PlanStep) -> str:
    digest = hashlib.sha256()
    digest.update(step.category.value.encode())
    for object_id in step.object_ids:
        digest.update(b"\0" + object_id.encode())
    return digest.hexdigest()


def confirmation_prompt(step: PlanStep) -> str:
    prompt = f"{step.description or step.category.label} (~{format_bytes(step.estimated_bytes_freed)})?"
    if step.requires_backup:
        prompt += " Each object is archived first."
    return prompt


class GateController:
    def __init__(
        self,
        archiver: Archiver | None = None,
        confirmer: Confirmer | None = None,
        backup_enabled: bool = False,
    ):
        """
        Args:
            archiver: Backup collaborator used for steps that require a backup
            confirmer: Asked when a step needs confirmation and no token was given
            backup_enabled: Whether the caller opted into backups (``--backup``)
        """
        self.archiver = archiver
        self.confirmer = confirmer
        self.backup_enabled = backup_enabled

    def authorize(self, step: PlanStep, token: str | None = None) -> AuthorizedStep:
        """
        Authorize one step.

        Raises:
            GateError: CONFIRMATION_REQUIRED without a matching token,
                BACKUP_REQUIRED when backups are disabled,
                BACKUP_FAILED when any archive fails
        """
        confirmed = False
        if step.requires_confirmation:
            if token != confirmation_token(step):
                raise GateError(
                    GateErrorKind.CONFIRMATION_REQUIRED,
                    step,
                    f"Confirmation required: {confirmation_prompt(step)}",
                )
            confirmed = True

        backups: dict[str, Path] = {}
        if step.requires_backup:
            if not self.backup_enabled or self.archiver is None:
                raise GateError(
                    GateErrorKind.BACKUP_REQUIRED,
                    step,
                    f"{step.category.label} can only be removed with backups enabled (--backup)",
                )
            if len(step.objects) != len(step.object_ids):
                raise GateError(GateErrorKind.BACKUP_FAILED, step, "Step objects are incomplete")
            for obj in step.objects:
                try:
                    backups[obj.id] = self.archiver.archive(obj)
                except BackupError as e:
                    logger.error(f"Backup failed, step rejected: {e}")
                    raise GateError(GateErrorKind.BACKUP_FAILED, step, str(e)) from e

        return AuthorizedStep(step=step, confirmed=confirmed, backups=backups)

    def review(self, step: PlanStep, assume_yes: bool = False) -> AuthorizedStep:
        """Authorize a step, asking the confirmer when confirmation is required."""
        token = confirmation_token(step) if assume_yes else None
        try:
            return self.authorize(step, token)
        except GateError as e:
            if e.kind is not GateErrorKind.CONFIRMATION_REQUIRED or self.confirmer is None:
                raise
            if not self.confirmer.ask(confirmation_prompt(step)):
                logger.info(f"Declined: {step.description}")
                raise
        return self.authorize(step, confirmation_token(step))

    def authorize_plan(
        self, plan: ReclaimPlan, assume_yes: bool = False
    ) -> tuple[list[AuthorizedStep], list[GateRejection]]:
        """Review every step; rejected steps are excluded and reported, never skipped silently."""
        authorized: list[AuthorizedStep] = []
        rejections: list[GateRejection] = []
        for step in plan.steps:
            try:
                authorized.append(self.review(step, assume_yes=assume_yes))
            except GateError as e:
                rejections.append(
                    GateRejection(
                        category=step.category,
                        kind=e.kind,
                        object_ids=step.object_ids,
                        message=str(e),
                    )
                )
        return authorized, rejections
