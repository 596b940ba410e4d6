from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest

from lockkeeper.exceptions import FileOperationError, ParseError
from lockkeeper.utils.filesystem import (
    create_timestamped_backup,
    read_json_file,
    restore_backup,
    safe_read_file,
    safe_write_file,
)


@pytest.mark.unit
class TestSafeReadFile:
    """Tests for safe_read_file."""

    def test_reads_content(self, tmp_path: Path) -> None:
        target = tmp_path / "package.json"
        target.write_text('{"name": "app"}\n', encoding="utf-8")

        assert safe_read_file(target) == '{"name": "app"}\n'

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileOperationError) as exc_info:
            safe_read_file(tmp_path / "missing.json")

        assert exc_info.value.operation == "read"

    def test_directory_is_rejected(self, tmp_path: Path) -> None:
        with pytest.raises(FileOperationError, match="Not a file"):
            safe_read_file(tmp_path)

    def test_size_limit(self, tmp_path: Path) -> None:
        target = tmp_path / "big.json"
        target.write_text("x" * 100, encoding="utf-8")

        with pytest.raises(FileOperationError, match="too large"):
            safe_read_file(target, max_size=10)

        assert len(safe_read_file(target, max_size=None)) == 100


@pytest.mark.unit
class TestReadJsonFile:
    def test_parses_json(self, tmp_path: Path) -> None:
        target = tmp_path / "package.json"
        target.write_text('{"dependencies": {"a": "^1.0.0"}}', encoding="utf-8")

        assert read_json_file(target) == {"dependencies": {"a": "^1.0.0"}}

    def test_invalid_json_raises_parse_error(self, tmp_path: Path) -> None:
        target = tmp_path / "package.json"
        target.write_text('{"name": ', encoding="utf-8")

        with pytest.raises(ParseError) as exc_info:
            read_json_file(target)

        assert exc_info.value.file_path == str(target)
        assert "Invalid JSON" in str(exc_info.value)


@pytest.mark.unit
class TestSafeWriteFile:
    def test_writes_and_creates_parents(self, tmp_path: Path) -> None:
        target = tmp_path / "nested" / "package-lock.json"

        backup = safe_write_file(target, "{}\n")

        assert backup is None
        assert target.read_text(encoding="utf-8") == "{}\n"

    def test_backup_keeps_previous_content(self, tmp_path: Path) -> None:
        target = tmp_path / "package-lock.json"
        target.write_text("old", encoding="utf-8")

        backup = safe_write_file(target, "new", create_backup=True)

        assert backup is not None
        assert backup.read_text(encoding="utf-8") == "old"
        assert target.read_text(encoding="utf-8") == "new"

    def test_no_temp_files_left_behind(self, tmp_path: Path) -> None:
        target = tmp_path / "package-lock.json"

        safe_write_file(target, "content")

        assert [p.name for p in tmp_path.iterdir()] == ["package-lock.json"]

    def test_failed_write_restores_backup(self, tmp_path: Path) -> None:
        target = tmp_path / "package-lock.json"
        target.write_text("old", encoding="utf-8")

        with patch(
            "lockkeeper.utils.filesystem.Path.replace",
            side_effect=OSError("disk full"),
        ):
            with pytest.raises(FileOperationError, match="Atomic write failed"):
                safe_write_file(target, "new", create_backup=True)

        assert target.read_text(encoding="utf-8") == "old"


@pytest.mark.unit
class TestBackups:
    def test_timestamped_backup_name(self, tmp_path: Path) -> None:
        target = tmp_path / "package-lock.json"
        target.write_text("data", encoding="utf-8")

        backup = create_timestamped_backup(target)

        assert backup.name.startswith("package-lock.")
        assert backup.name.endswith(".backup.json")
        assert backup.read_text(encoding="utf-8") == "data"

    def test_backup_of_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileOperationError) as exc_info:
            create_timestamped_backup(tmp_path / "missing.json")

        assert exc_info.value.operation == "backup"

    def test_restore_backup(self, tmp_path: Path) -> None:
        backup = tmp_path / "saved.json"
        backup.write_text("saved", encoding="utf-8")
        target = tmp_path / "package-lock.json"
        target.write_text("broken", encoding="utf-8")

        restore_backup(backup, target)

        assert target.read_text(encoding="utf-8") == "saved"

    def test_restore_missing_backup(self, tmp_path: Path) -> None:
        with pytest.raises(FileOperationError, match="Backup file not found"):
            restore_backup(tmp_path / "nope", tmp_path / "target")
