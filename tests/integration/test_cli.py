"""Integration tests for the command line interface."""

import json
import tempfile
from pathlib import Path

import pytest
from typer.testing import CliRunner

from chatvault.cli import app
from chatvault.config import get_default_db_path
from chatvault.core.hashing import compute_digest
from chatvault.core.migrations import MIGRATIONS

runner = CliRunner()

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 24


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as td:
        yield Path(td)


@pytest.fixture
def db_args(temp_dir: Path) -> list[str]:
    """Global options pointing the CLI at a scratch database."""
    return ["--db", str(get_default_db_path(temp_dir))]


@pytest.fixture
def png_file(temp_dir: Path) -> Path:
    path = temp_dir / "pixel.png"
    path.write_bytes(PNG)
    return path


def attach_json(db_args: list[str], file: Path, conversation_id: str) -> dict:
    result = runner.invoke(app, [*db_args, "attach", str(file), conversation_id, "--json"])
    assert result.exit_code == 0, result.output
    return json.loads(result.stdout)


class TestImageCommands:
    """Tests for the image commands."""

    def test_hash(self, png_file: Path) -> None:
        result = runner.invoke(app, ["hash", str(png_file)])

        assert result.exit_code == 0
        assert result.stdout.strip() == compute_digest(PNG)

    def test_attach_and_images(self, db_args: list[str], png_file: Path) -> None:
        first = attach_json(db_args, png_file, "c1")
        second = attach_json(db_args, png_file, "c2")

        assert first["id"] == second["id"]
        assert first["mimeType"] == "image/png"
        assert first["size"] == len(PNG)

        result = runner.invoke(app, [*db_args, "images", "c1", "--json"])
        assert result.exit_code == 0
        assert [m["id"] for m in json.loads(result.stdout)] == [first["id"]]

    def test_attach_rejects_mismatched_type(
        self, db_args: list[str], temp_dir: Path
    ) -> None:
        """Test that a PNG named .jpg is refused before anything is stored."""
        fake = temp_dir / "photo.jpg"
        fake.write_bytes(PNG)

        result = runner.invoke(app, [*db_args, "attach", str(fake), "c1"])

        assert result.exit_code == 1
        assert "mismatch" in result.output

        stats = runner.invoke(app, [*db_args, "stats", "--json"])
        assert json.loads(stats.stdout)["images"] == 0

    def test_attach_no_validate(self, db_args: list[str], temp_dir: Path) -> None:
        raw = temp_dir / "blob.bin"
        raw.write_bytes(bytes([1, 2, 3]))

        result = runner.invoke(
            app, [*db_args, "attach", str(raw), "c1", "--mime", "image/png", "--no-validate"]
        )

        assert result.exit_code == 0, result.output

    def test_export(self, db_args: list[str], png_file: Path, temp_dir: Path) -> None:
        meta = attach_json(db_args, png_file, "c1")
        out = temp_dir / "out.png"

        result = runner.invoke(app, [*db_args, "export", str(meta["id"]), str(out)])

        assert result.exit_code == 0
        assert out.read_bytes() == PNG

    def test_export_missing_image(self, db_args: list[str], temp_dir: Path) -> None:
        result = runner.invoke(app, [*db_args, "export", "42", str(temp_dir / "x.png")])

        assert result.exit_code == 1
        assert "not found" in result.output

    def test_lookup(self, db_args: list[str], png_file: Path) -> None:
        meta = attach_json(db_args, png_file, "c1")

        found = runner.invoke(app, [*db_args, "lookup", meta["hash"], "--json"])
        missing = runner.invoke(app, [*db_args, "lookup", "0" * 64, "--json"])

        assert json.loads(found.stdout)["id"] == meta["id"]
        assert json.loads(missing.stdout) is None

    def test_detach_and_cleanup(self, db_args: list[str], png_file: Path) -> None:
        attach_json(db_args, png_file, "c1")

        detach = runner.invoke(app, [*db_args, "detach", "c1"])
        assert detach.exit_code == 0
        assert "Removed 1" in detach.stdout

        dry = runner.invoke(app, [*db_args, "cleanup", "--dry-run"])
        assert "1 orphaned image(s)" in dry.stdout

        cleanup = runner.invoke(app, [*db_args, "cleanup"])
        assert cleanup.exit_code == 0
        assert "Deleted 1 orphaned image(s)" in cleanup.stdout

        stats = runner.invoke(app, [*db_args, "stats", "--json"])
        assert json.loads(stats.stdout)["images"] == 0

    def test_detach_single_image(self, db_args: list[str], png_file: Path) -> None:
        """Test that --image drops one reference and leaves other conversations alone."""
        meta = attach_json(db_args, png_file, "c1")
        attach_json(db_args, png_file, "c2")

        detach = runner.invoke(app, [*db_args, "detach", "c1", "--image", str(meta["id"])])
        again = runner.invoke(app, [*db_args, "detach", "c1", "--image", str(meta["id"])])

        assert detach.exit_code == 0
        assert "Removed 1" in detach.stdout
        assert "Removed 0" in again.stdout

        c2 = runner.invoke(app, [*db_args, "images", "c2", "--json"])
        assert [m["id"] for m in json.loads(c2.stdout)] == [meta["id"]]
        dry = runner.invoke(app, [*db_args, "cleanup", "--dry-run"])
        assert "0 orphaned image(s)" in dry.stdout


class TestStoreCommands:
    """Tests for migrate, stats, settings and conversations."""

    def test_migrate(self, db_args: list[str]) -> None:
        result = runner.invoke(app, [*db_args, "migrate"])

        assert result.exit_code == 0
        assert f"Schema at version {len(MIGRATIONS)}" in result.stdout
        assert "create_images_table" in result.stdout

    def test_stats_json(self, db_args: list[str]) -> None:
        result = runner.invoke(app, [*db_args, "stats", "--json"])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["images"] == 0
        assert data["schema_version"] == len(MIGRATIONS)

    def test_settings_round_trip(self, db_args: list[str]) -> None:
        assert runner.invoke(app, [*db_args, "settings", "set", "theme", "dark"]).exit_code == 0

        got = runner.invoke(app, [*db_args, "settings", "get", "theme"])
        assert got.stdout.strip() == "dark"

        listed = runner.invoke(app, [*db_args, "settings", "list"])
        assert "theme" in listed.stdout

        assert runner.invoke(app, [*db_args, "settings", "delete", "theme"]).exit_code == 0
        assert runner.invoke(app, [*db_args, "settings", "get", "theme"]).exit_code == 1

    def test_conversations_empty(self, db_args: list[str]) -> None:
        result = runner.invoke(app, [*db_args, "conversations", "--json"])

        assert result.exit_code == 0
        assert json.loads(result.stdout) == []

    def test_delete_missing_conversation(self, db_args: list[str]) -> None:
        result = runner.invoke(app, [*db_args, "delete-conversation", "nope"])

        assert result.exit_code == 1

    def test_import_legacy(self, db_args: list[str], temp_dir: Path) -> None:
        snapshot = temp_dir / "legacy.json"
        snapshot.write_text(
            json.dumps(
                {
                    "chatalyst_conversations": json.dumps(
                        [{"id": "c1", "title": "Old chat", "model": "m", "messages": []}]
                    )
                }
            )
        )

        first = runner.invoke(app, [*db_args, "import-legacy", str(snapshot)])
        second = runner.invoke(app, [*db_args, "import-legacy", str(snapshot)])

        assert first.exit_code == 0, first.output
        assert "Conversations: 1" in first.stdout
        assert "already imported" in second.stdout

        listed = runner.invoke(app, [*db_args, "conversations", "--json"])
        assert [c["id"] for c in json.loads(listed.stdout)] == ["c1"]

    def test_import_legacy_malformed(self, db_args: list[str], temp_dir: Path) -> None:
        snapshot = temp_dir / "legacy.json"
        snapshot.write_text(
            json.dumps(
                {
                    "chatalyst_conversations": [
                        {"id": "c1", "title": "t", "messages": [{"id": "m", "role": "robot"}]}
                    ]
                }
            )
        )

        result = runner.invoke(app, [*db_args, "import-legacy", str(snapshot)])

        assert result.exit_code == 1
        assert "Malformed legacy snapshot" in result.output
        listed = runner.invoke(app, [*db_args, "conversations", "--json"])
        assert json.loads(listed.stdout) == []

    def test_stats_on_corrupt_database(self, temp_dir: Path) -> None:
        db_path = temp_dir / "junk.db"
        db_path.write_bytes(b"not sqlite" * 500)

        result = runner.invoke(app, ["--db", str(db_path), "stats"])

        assert result.exit_code == 1
        assert "Error" in result.output

    def test_invalid_env_config(self, db_args: list[str], monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CHATVAULT_BUSY_TIMEOUT_MS", "never")

        result = runner.invoke(app, [*db_args, "stats"])

        assert result.exit_code == 1
        assert "Invalid configuration" in result.output
