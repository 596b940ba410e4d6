"""End-to-end tests for the lockkeeper CLI, run against a workspace on disk."""

from __future__ import annotations

import json
from pathlib import Path
from typing import List

import pytest
from click.testing import CliRunner, Result

from lockkeeper.cli import cli
from lockkeeper.models import Graph, Lockfile

NESTED = (
    "node_modules/b/node_modules/chokidar",
    "node_modules/b/node_modules/glob-parent",
    "node_modules/b/node_modules/readdirp",
)


@pytest.fixture
def run(project_dir: Path, monkeypatch: pytest.MonkeyPatch):
    """Invoke the CLI from inside the project directory."""
    monkeypatch.chdir(project_dir)
    monkeypatch.delenv("LOCKKEEPER_CONFIG", raising=False)
    runner = CliRunner()

    def invoke(*args: str) -> Result:
        return runner.invoke(cli, ["--no-color", *args], catch_exceptions=False)

    return invoke


@pytest.fixture
def registry_args(project_dir: Path) -> List[str]:
    return ["-C", str(project_dir), "--registry-file", str(project_dir / "registry.json")]


@pytest.fixture
def naive_lockfile(project_dir: Path, locked_graph: Graph) -> Path:
    """A lockfile that hoisted chokidar over b's optional peer."""
    path = project_dir / "naive-lock.json"
    path.write_text(Lockfile.from_graph(locked_graph.evolve(remove=NESTED)).dumps())
    return path


@pytest.mark.integration
class TestInstallCommand:
    def test_unchanged_project_is_up_to_date(
        self, run, registry_args: List[str], project_dir: Path
    ) -> None:
        before = (project_dir / "package-lock.json").read_text()

        result = run("install", *registry_args)

        assert result.exit_code == 0
        assert "Lockfile is up to date" in result.output
        assert (project_dir / "package-lock.json").read_text() == before

    def test_fresh_dry_run_writes_nothing(
        self, run, registry_args: List[str], project_dir: Path
    ) -> None:
        before = (project_dir / "package-lock.json").read_text()

        result = run("install", *registry_args, "--fresh", "--dry-run")

        assert result.exit_code == 0
        assert "Dry run mode" in result.output
        assert (project_dir / "package-lock.json").read_text() == before

    def test_first_install_writes_lockfile(
        self, run, registry_args: List[str], project_dir: Path
    ) -> None:
        (project_dir / "package-lock.json").unlink()

        result = run("install", *registry_args, "--json")

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert len(data["conflicts"]) == 3
        assert data["diff"]["removed"] == []

        lockfile = Lockfile.loads((project_dir / "package-lock.json").read_text())
        assert lockfile.packages["node_modules/@aws-sdk/client-dynamodb"].version == "3.700.0"
        assert lockfile.packages["node_modules/b/node_modules/chokidar"].version == "3.6.0"
        assert lockfile.packages[""].workspaces == ["packages/api", "packages/web"]


@pytest.mark.integration
class TestUpdateCommand:
    def test_update_writes_manifest_and_lockfile(
        self, run, registry_args: List[str], project_dir: Path, lockfile: Lockfile
    ) -> None:
        result = run(
            "update", "@aws-sdk/client-dynamodb", "3.700.0", "-w", "packages/api", *registry_args
        )

        assert result.exit_code == 0
        assert "1 added, 0 removed, 3 changed" in result.output

        manifest = json.loads((project_dir / "packages/api/package.json").read_text())
        assert manifest["dependencies"]["@aws-sdk/client-dynamodb"] == "^3.700.0"

        updated = Lockfile.loads((project_dir / "package-lock.json").read_text())
        assert updated.packages["node_modules/@aws-sdk/client-dynamodb"].version == "3.700.0"
        for location in NESTED:
            assert updated.packages[location].to_json() == lockfile.packages[location].to_json()

    def test_installed_result_stays_valid(
        self, run, registry_args: List[str], project_dir: Path
    ) -> None:
        run("update", "@aws-sdk/client-dynamodb", "3.700.0", "-w", "api", *registry_args)

        result = run("validate")

        assert result.exit_code == 0
        assert "package-lock.json is valid" in result.output

    def test_dry_run(self, run, registry_args: List[str], project_dir: Path) -> None:
        lock_before = (project_dir / "package-lock.json").read_text()
        manifest_before = (project_dir / "packages/api/package.json").read_text()

        result = run(
            "update", "@aws-sdk/client-dynamodb", "3.700.0", "-w", "api", "--dry-run",
            *registry_args,
        )

        assert result.exit_code == 0
        assert "Dry run mode" in result.output
        assert (project_dir / "package-lock.json").read_text() == lock_before
        assert (project_dir / "packages/api/package.json").read_text() == manifest_before

    def test_json_output(self, run, registry_args: List[str]) -> None:
        result = run(
            "update", "@aws-sdk/client-dynamodb", "3.700.0", "-w", "api", "--json",
            "--dry-run", *registry_args,
        )

        data = json.loads(result.stdout)
        assert data["workspace"] == "packages/api"
        assert data["new_constraint"] == "^3.700.0"
        assert [c["location"] for c in data["diff"]["added"]] == ["node_modules/@smithy/core"]

    def test_backup(self, run, registry_args: List[str], project_dir: Path) -> None:
        result = run(
            "update", "chokidar", "^3.5.2", "-w", "web", "--backup", *registry_args
        )

        assert result.exit_code == 0
        backups = {p.parent.name for p in project_dir.rglob("*.backup.json")}
        assert backups == {"web", project_dir.name}

    def test_rejected_when_lockfile_already_broken(
        self, run, registry_args: List[str], project_dir: Path, naive_lockfile: Path
    ) -> None:
        naive_lockfile.replace(project_dir / "package-lock.json")
        before = (project_dir / "package-lock.json").read_text()

        result = run(
            "update", "@aws-sdk/client-dynamodb", "3.700.0", "-w", "api", *registry_args
        )

        assert result.exit_code == 1
        assert "Update rejected" in result.output
        assert "does not satisfy chokidar@^3.5.2" in result.output
        assert (project_dir / "package-lock.json").read_text() == before

    def test_undeclared_dependency(self, run, registry_args: List[str]) -> None:
        result = run("update", "left-pad", "1.0.0", "-w", "api", *registry_args)

        assert result.exit_code == 1
        assert "does not depend on left-pad" in result.output


@pytest.mark.integration
class TestValidateCommand:
    def test_valid(self, run) -> None:
        result = run("validate")

        assert result.exit_code == 0
        assert "is valid" in result.output

    def test_missing_nested_copy(
        self, run, project_dir: Path, naive_lockfile: Path
    ) -> None:
        result = run(
            "validate",
            "--lockfile",
            str(naive_lockfile),
            "--against",
            str(project_dir / "package-lock.json"),
        )

        assert result.exit_code == 1
        assert "Missing: chokidar@3.6.0 from lock file" in result.output
        assert "1 unresolved edge(s)" in result.output

    def test_json(self, run, naive_lockfile: Path) -> None:
        result = run("validate", "--lockfile", str(naive_lockfile), "--json")

        assert result.exit_code == 1
        data = json.loads(result.stdout)
        assert data["ok"] is False
        assert data["unresolved"][0]["name"] == "chokidar"


@pytest.mark.integration
class TestDiffCommand:
    def test_identical(self, run, project_dir: Path) -> None:
        path = str(project_dir / "package-lock.json")

        result = run("diff", path, path)

        assert result.exit_code == 0
        assert "Lockfiles are identical" in result.output

    def test_json(self, run, project_dir: Path, naive_lockfile: Path) -> None:
        result = run("diff", str(project_dir / "package-lock.json"), str(naive_lockfile), "--json")

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert sorted(c["location"] for c in data["removed"]) == sorted(NESTED)


@pytest.mark.unit
class TestGroup:
    def test_version(self, run) -> None:
        result = run("--version")

        assert result.exit_code == 0
        assert result.output.startswith("lockkeeper ")

    def test_unknown_command(self, run) -> None:
        result = run("frobnicate")

        assert result.exit_code == 2
