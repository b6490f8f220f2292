"""Tests for the backup archiver."""

from unittest.mock import MagicMock

import pytest

from conftest import FakeEngine, make_object
from dockspace.backup import BackupArchiver
from dockspace.errors import BackupError, EngineCommandError
from dockspace.models import Category


class WritingEngine(FakeEngine):
    """Engine double whose helper commands produce the archive file."""

    def __init__(self, config, payload=b"archive"):
        super().__init__(config)
        self.payload = payload
        self.backup_dir = None

    def run_helper(self, args, timeout=None):
        super().run_helper(args, timeout)
        if args[:2] == ["save", "-o"]:
            path = args[2]
        else:
            mount = next(arg for arg in args if arg.endswith(":/backup"))
            host_dir = mount.rsplit(":", 1)[0]
            path = f"{host_dir}/{args[-4].split('/backup/', 1)[1]}"
        with open(path, "wb") as fh:
            fh.write(self.payload)
        return ""


class TestBackupArchiver:
    """Tests for BackupArchiver.archive."""

    def test_volume_archived_via_helper_container(self, config):
        engine = WritingEngine(config)
        path = BackupArchiver(engine, config).archive(make_object("pgdata", Category.VOLUMES, 10, name="pgdata"))

        args = engine.helper_calls[0]
        assert args[:2] == ["run", "--rm"]
        assert "pgdata:/source:ro" in args
        assert config.backup_image in args
        assert path.exists()
        assert path.name.startswith("volumes-pgdata-")
        assert path.name.endswith(".tar.gz")

    def test_image_saved(self, config):
        engine = WritingEngine(config)
        path = BackupArchiver(engine, config).archive(
            make_object("sha256:abc123", Category.IMAGES, 10, name="app:1.0")
        )

        assert engine.helper_calls[0][:2] == ["save", "-o"]
        assert engine.helper_calls[0][-1] == "sha256:abc123"
        assert path.name.startswith("images-app_1.0-")

    def test_empty_archive_fails(self, config):
        engine = WritingEngine(config, payload=b"")
        with pytest.raises(BackupError, match="missing or empty"):
            BackupArchiver(engine, config).archive(make_object("vol", Category.VOLUMES, 10))

    def test_missing_archive_fails(self, config, engine):
        with pytest.raises(BackupError):
            BackupArchiver(engine, config).archive(make_object("vol", Category.VOLUMES, 10))

    def test_engine_failure_becomes_backup_error(self, config, engine):
        engine.run_helper = MagicMock(side_effect=EngineCommandError("Unable to find image 'alpine:3'"))
        with pytest.raises(BackupError, match="alpine"):
            BackupArchiver(engine, config).archive(make_object("vol", Category.VOLUMES, 10))

    @pytest.mark.parametrize("category", [Category.CONTAINERS, Category.LOGS, Category.BUILD_CACHE])
    def test_unsupported_categories(self, config, engine, category):
        with pytest.raises(BackupError, match="cannot be archived"):
            BackupArchiver(engine, config).archive(make_object("x", category, 10))
