"""Tests for confirmation and backup gates."""

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from conftest import StaticCatalog, make_object, make_snapshot
from dockspace.errors import BackupError, GateError, GateErrorKind
from dockspace.gate import (
    AuthorizedStep,
    GateController,
    ScriptedConfirmer,
    confirmation_token,
)
from dockspace.models import Category, ObjectState, PlanStep, Tier
from dockspace.policy import PolicyEngine


def _step(category=Category.CONTAINERS, confirm=False, backup=False, ids=("a", "b")):
    objects = tuple(make_object(i, category, 10) for i in ids)
    return PlanStep(
        category=category,
        object_ids=tuple(ids),
        estimated_bytes_freed=10 * len(ids),
        requires_confirmation=confirm,
        requires_backup=backup,
        objects=objects,
        description=f"Remove {len(ids)} {category.value}",
    )


class TestConfirmation:
    """Tests for the confirmation gate."""

    def test_ungated_step_authorized(self):
        authorized = GateController().authorize(_step())
        assert isinstance(authorized, AuthorizedStep)
        assert not authorized.confirmed

    def test_missing_token_rejected(self):
        with pytest.raises(GateError) as exc_info:
            GateController().authorize(_step(confirm=True))
        assert exc_info.value.kind is GateErrorKind.CONFIRMATION_REQUIRED

    def test_matching_token_authorizes(self):
        step = _step(confirm=True)
        authorized = GateController().authorize(step, confirmation_token(step))
        assert authorized.confirmed
        assert authorized.step is step

    def test_token_bound_to_step_contents(self):
        first = _step(confirm=True, ids=("a", "b"))
        second = _step(confirm=True, ids=("a", "c"))
        assert confirmation_token(first) != confirmation_token(second)
        with pytest.raises(GateError):
            GateController().authorize(second, confirmation_token(first))

    def test_confirmer_accepts(self):
        confirmer = ScriptedConfirmer([True])
        authorized = GateController(confirmer=confirmer).review(_step(confirm=True))
        assert authorized.confirmed
        assert len(confirmer.prompts) == 1

    def test_confirmer_declines(self):
        confirmer = ScriptedConfirmer([False])
        with pytest.raises(GateError) as exc_info:
            GateController(confirmer=confirmer).review(_step(confirm=True))
        assert exc_info.value.kind is GateErrorKind.CONFIRMATION_REQUIRED

    def test_exhausted_confirmer_declines(self):
        confirmer = ScriptedConfirmer([])
        with pytest.raises(GateError):
            GateController(confirmer=confirmer).review(_step(confirm=True))

    def test_assume_yes_skips_prompt(self):
        confirmer = ScriptedConfirmer([])
        authorized = GateController(confirmer=confirmer).review(_step(confirm=True), assume_yes=True)
        assert authorized.confirmed
        assert confirmer.prompts == []

    def test_ungated_step_never_prompts(self):
        confirmer = ScriptedConfirmer([])
        GateController(confirmer=confirmer).review(_step())
        assert confirmer.prompts == []


class TestBackup:
    """Tests for the backup gate."""

    def test_backup_required_when_disabled(self):
        archiver = MagicMock()
        gate = GateController(archiver=archiver, backup_enabled=False)
        step = _step(Category.VOLUMES, confirm=True, backup=True)

        with pytest.raises(GateError) as exc_info:
            gate.authorize(step, confirmation_token(step))

        assert exc_info.value.kind is GateErrorKind.BACKUP_REQUIRED
        archiver.archive.assert_not_called()

    def test_backup_each_object(self, tmp_path):
        archiver = MagicMock()
        archiver.archive.side_effect = lambda obj: tmp_path / f"{obj.id}.tar.gz"
        gate = GateController(archiver=archiver, backup_enabled=True)
        step = _step(Category.VOLUMES, confirm=True, backup=True)

        authorized = gate.authorize(step, confirmation_token(step))

        assert archiver.archive.call_count == 2
        assert authorized.backups == {"a": tmp_path / "a.tar.gz", "b": tmp_path / "b.tar.gz"}

    def test_backup_failure_rejects_step(self):
        archiver = MagicMock()
        archiver.archive.side_effect = [Path("/tmp/a.tar.gz"), BackupError("b", "disk full")]
        gate = GateController(archiver=archiver, backup_enabled=True)
        step = _step(Category.VOLUMES, confirm=True, backup=True)

        with pytest.raises(GateError) as exc_info:
            gate.authorize(step, confirmation_token(step))

        assert exc_info.value.kind is GateErrorKind.BACKUP_FAILED
        assert exc_info.value.step is step

    def test_confirmation_checked_before_backup(self):
        archiver = MagicMock()
        gate = GateController(archiver=archiver, backup_enabled=True)

        with pytest.raises(GateError) as exc_info:
            gate.authorize(_step(Category.VOLUMES, confirm=True, backup=True))

        assert exc_info.value.kind is GateErrorKind.CONFIRMATION_REQUIRED
        archiver.archive.assert_not_called()


class TestAuthorizePlan:
    """Tests for whole-plan review."""

    def test_rejected_steps_are_reported(self):
        catalog = StaticCatalog(
            [
                make_object("cache", Category.BUILD_CACHE, 100),
                make_object("img", Category.IMAGES, 50, ObjectState.UNUSED, name="app:1"),
                make_object("vol", Category.VOLUMES, 500),
            ]
        )
        plan = PolicyEngine().plan(make_snapshot(), catalog, Tier.NUCLEAR)
        gate = GateController(confirmer=ScriptedConfirmer([False, True]), backup_enabled=False)

        authorized, rejections = gate.authorize_plan(plan)

        assert [a.step.category for a in authorized] == [Category.BUILD_CACHE]
        assert [(r.category, r.kind) for r in rejections] == [
            (Category.IMAGES, GateErrorKind.CONFIRMATION_REQUIRED),
            (Category.VOLUMES, GateErrorKind.BACKUP_REQUIRED),
        ]
        assert rejections[1].object_ids == ("vol",)

    def test_emergency_plan_passes_without_input(self):
        catalog = StaticCatalog(
            [
                make_object("img", Category.IMAGES, 50, ObjectState.UNUSED, name="app:1"),
                make_object("log", Category.LOGS, 20, ObjectState.UNUSED),
            ]
        )
        plan = PolicyEngine().plan(make_snapshot(), catalog, Tier.EMERGENCY)
        confirmer = ScriptedConfirmer([])

        authorized, rejections = GateController(confirmer=confirmer).authorize_plan(plan)

        assert len(authorized) == 2
        assert rejections == []
        assert confirmer.prompts == []
