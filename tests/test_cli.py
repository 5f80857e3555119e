"""
End-to-end tests for the command line interface.
"""

import logging
from pathlib import Path
from unittest.mock import patch

import pytest

from scaffold_forge.cli import build_parser, build_planner, main
from scaffold_forge.config_validation import ToolConfigSchema
from scaffold_forge.constants import ExitCodes


@pytest.fixture(autouse=True)
def no_logging_setup():
    """Keep main() from replacing the root handlers pytest captures with."""
    with patch("scaffold_forge.cli.setup_colored_logging") as mock_setup:
        yield mock_setup


@pytest.fixture
def project(tmp_path):
    return tmp_path


def run(project: Path, *args: str) -> int:
    return main(["-o", str(project), "--database-url", "sqlite:///db/test.sqlite3", "--no-color", *args])


def migration_files(project: Path):
    directory = project / "db" / "migrations"
    return sorted(directory.glob("*.yaml")) if directory.is_dir() else []


def test_generate_and_migrate(project, caplog):
    caplog.set_level(logging.INFO)

    assert run(project, "generate", "category", "name:string:required", "--migrate") == ExitCodes.OK

    assert (project / "app" / "models" / "category.py").is_file()
    assert (project / "app" / "views" / "categories" / "form.html").is_file()
    assert "import Category" in (project / "app" / "models" / "__init__.py").read_text()
    assert len(migration_files(project)) == 1
    assert migration_files(project)[0].name.endswith("_create_categories.yaml")
    assert (project / "db" / "test.sqlite3").is_file()
    assert "applied" in caplog.text


def test_status_rollback_and_nothing_left(project, caplog):
    run(project, "generate", "category", "name", "--migrate")
    caplog.set_level(logging.INFO)
    caplog.clear()

    assert run(project, "status") == ExitCodes.OK
    assert "create_categories" in caplog.text

    assert run(project, "rollback") == ExitCodes.OK
    assert run(project, "rollback") == ExitCodes.MIGRATION

    assert run(project, "migrate") == ExitCodes.OK
    assert run(project, "migrate", "--pretend") == ExitCodes.OK


def test_invalid_name(project):
    assert run(project, "generate", "invoice-item") == ExitCodes.VALIDATION
    assert list(project.iterdir()) == []


def test_unknown_field_type(project):
    assert run(project, "generate", "paint", "colour:rgb") == ExitCodes.VALIDATION


def test_conflict_rolls_back_everything(project):
    model = project / "app" / "models" / "category.py"
    model.parent.mkdir(parents=True)
    model.write_text("class Category:\n    pass\n")

    assert run(project, "generate", "category", "name", "--migrate") == ExitCodes.IO

    assert model.read_text() == "class Category:\n    pass\n"
    assert migration_files(project) == []
    # The database was never touched
    assert not (project / "db" / "test.sqlite3").exists()


def test_pretend_writes_nothing(project):
    assert run(project, "generate", "category", "name", "--pretend") == ExitCodes.OK

    assert list(project.iterdir()) == []


def test_only_some_kinds(project):
    assert run(project, "generate", "category", "name", "--only", "model,test") == ExitCodes.OK

    assert (project / "app" / "models" / "category.py").is_file()
    assert (project / "tests" / "test_categories.py").is_file()
    assert not (project / "app" / "handlers").exists()
    assert migration_files(project) == []


def test_no_timestamps(project):
    run(project, "generate", "category", "name", "--no-timestamps")

    assert "created_at" not in migration_files(project)[0].read_text()


def test_destroy(project):
    run(project, "generate", "post", "title")
    run(project, "generate", "category", "name")

    assert run(project, "destroy", "post") == ExitCodes.OK

    assert not (project / "app" / "models" / "post.py").exists()
    assert [path.name for path in migration_files(project)][0].endswith("_create_categories.yaml")
    assert len(migration_files(project)) == 1
    routes = (project / "app" / "routes.py").read_text()
    assert '"/posts"' not in routes and '"/categories"' in routes


def test_config_file(project):
    config_file = project / "scaffold-forge.yaml"
    config_file.write_text(
        f"output_dir: {project}\n"
        "database_url: sqlite:///db/app.sqlite3\n"
        "ledger_backend: file\n"
        "migrations_dir: migrate\n"
    )

    assert main(["-c", str(config_file), "generate", "category", "name", "--migrate"]) == ExitCodes.OK

    assert len(list((project / "migrate").glob("*_create_categories.yaml"))) == 1
    assert len((project / "db" / "schema_ledger.txt").read_text().splitlines()) == 1


def test_invalid_dialect(project):
    assert run(project, "--dialect", "oracle", "status") == ExitCodes.VALIDATION


def test_logging_is_configured(project, no_logging_setup):
    run(project, "-v", "status")

    no_logging_setup.assert_called_once_with(level=logging.DEBUG, use_colors=False)


def test_build_planner_follows_migrations_dir():
    planner = build_planner(ToolConfigSchema(migrations_dir="schema/"))

    assert planner.layout["migration"] == "schema/{migration_id}_create_{storage_identifier}.yaml"


def test_parser_requires_a_command():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_generate_twice_is_identical(project):
    run(project, "generate", "category", "name")
    before = {path: path.read_bytes() for path in project.rglob("*") if path.is_file()}

    assert run(project, "generate", "category", "name") == ExitCodes.OK

    after = {path: path.read_bytes() for path in project.rglob("*") if path.is_file()}
    assert after == before


def test_migration_ids_are_unique(project):
    run(project, "generate", "author", "name")
    run(project, "generate", "book", "title", "author_id:integer")

    ids = [path.name.split("_", 1)[0] for path in migration_files(project)]
    assert len(set(ids)) == 2


def test_unlock_releases_a_crashed_migrators_lock(project):
    config_file = project / "scaffold-forge.yaml"
    config_file.write_text(
        f"output_dir: {project}\n"
        "database_url: sqlite:///db/app.sqlite3\n"
        "ledger_backend: file\n"
        "lock_timeout: 0.05\n"
    )
    lock_file = project / "db" / "schema_ledger.txt.lock"
    lock_file.parent.mkdir()
    lock_file.write_text("crashed-host:4242")

    assert main(["-c", str(config_file), "migrate"]) == ExitCodes.LOCKED

    assert main(["-c", str(config_file), "unlock"]) == ExitCodes.OK
    assert not lock_file.exists()
    assert main(["-c", str(config_file), "migrate"]) == ExitCodes.OK
    assert main(["-c", str(config_file), "unlock"]) == ExitCodes.OK
