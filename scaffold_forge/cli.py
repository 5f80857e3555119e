import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from scaffold_forge.colored_logging import (
    setup_colored_logging,
    log_success,
    log_progress,
    log_highlight,
    log_status,
    log_section,
)
from scaffold_forge.config_validation import ToolConfigSchema, load_config
from scaffold_forge.constants import ArtifactKinds, DefaultConfig, DefaultLayout, ExitCodes
from scaffold_forge.domain import ResourceName, parse_field_tokens, variants
from scaffold_forge.exceptions import ScaffoldForgeError
from scaffold_forge.generation import (
    ArtifactPlanner,
    GenerationOrchestrator,
    LocalFileSystem,
    TemplateCatalogue,
    TemplateRenderer,
)
from scaffold_forge.migrations import (
    Database,
    FileLedgerStore,
    MigrationEngine,
    MigrationScript,
    MigrationScriptRepository,
    SqlLedgerStore,
    resolve_sqlite_path,
)

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="scaffold-forge",
        description="Generate resource scaffolding and apply schema migrations.",
    )
    parser.add_argument(
        "-c",
        "--config",
        default=None,
        help=f"Path to the YAML configuration file (default: ./{DefaultConfig.CONFIG_FILE} if present).",
    )
    parser.add_argument(
        "-o",
        "--output-dir",
        help="Project root to generate into. Overrides config file setting.",
    )
    parser.add_argument(
        "--database-url",
        help="SQLAlchemy database URL. Overrides config file setting.",
    )
    parser.add_argument(
        "--dialect",
        help="SQL dialect to emit. Defaults to the dialect of the database URL.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose DEBUG logging.",
    )
    parser.add_argument(
        "--no-color",
        action="store_true",
        help="Disable colored output (useful for CI/CD environments).",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    generate = subparsers.add_parser("generate", help="Generate the artifacts of a resource.")
    generate.add_argument("name", help="Resource name, e.g. 'invoice_item' or 'InvoiceItem'.")
    generate.add_argument(
        "fields",
        nargs="*",
        help="Field declarations: name[:type[{limit}]][:required|unique|index|default=value]",
    )
    generate.add_argument(
        "--only",
        help=f"Comma-separated artifact kinds to generate ({', '.join(ArtifactKinds.ORDERED)}).",
    )
    generate.add_argument(
        "--pretend",
        action="store_true",
        help="Show what would be written without touching the filesystem.",
    )
    generate.add_argument(
        "--migrate",
        action="store_true",
        help="Apply pending migrations after a successful generation.",
    )
    generate.add_argument(
        "--no-timestamps",
        dest="use_timestamps",
        action="store_const",
        const=False,
        default=None,
        help="Do not add created_at/updated_at columns.",
    )

    destroy = subparsers.add_parser("destroy", help="Remove the generated artifacts of a resource.")
    destroy.add_argument("name", help="Resource name used when generating.")

    migrate = subparsers.add_parser("migrate", help="Apply all pending migrations.")
    migrate.add_argument("--pretend", action="store_true", help="Print the SQL without executing it.")

    rollback = subparsers.add_parser("rollback", help="Revert the most recently applied migrations.")
    rollback.add_argument("--steps", type=int, default=1, help="Number of migrations to revert (default: 1).")
    rollback.add_argument("--pretend", action="store_true", help="Print the SQL without executing it.")

    subparsers.add_parser("status", help="List migrations and whether they are applied.")
    subparsers.add_parser(
        "unlock", help="Remove a ledger lock left behind by a migration run that was killed."
    )

    return parser


# --- Collaborator wiring ---

def build_planner(config: ToolConfigSchema) -> ArtifactPlanner:
    layout = dict(config.layout)
    if "migration" not in layout and config.migrations_dir != DefaultConfig.MIGRATIONS_DIR:
        # Keep generated scripts where the migration engine looks for them
        layout["migration"] = DefaultLayout.MIGRATION.replace(
            DefaultConfig.MIGRATIONS_DIR, config.migrations_dir.rstrip("/"), 1
        )
    return ArtifactPlanner(
        layout=layout,
        use_timestamps=config.use_timestamps,
        known_resources=config.known_resources,
        latest_migration_id=MigrationScriptRepository(config.migrations_path).latest_id(),
    )


def build_orchestrator(config: ToolConfigSchema) -> GenerationOrchestrator:
    renderer = TemplateRenderer(TemplateCatalogue(config.templates_path))
    return GenerationOrchestrator(renderer, LocalFileSystem(config.root))


def build_engine(config: ToolConfigSchema) -> MigrationEngine:
    database = Database.from_url(resolve_sqlite_path(config.database_url, config.root))
    if config.ledger_backend == "file":
        ledger = FileLedgerStore(config.ledger_file, lock_timeout=config.lock_timeout)
    else:
        ledger = SqlLedgerStore(database.engine, lock_timeout=config.lock_timeout)
    return MigrationEngine(database, ledger, MigrationScriptRepository(config.migrations_path))


# --- Commands ---

def _parse_kinds(only: Optional[str]) -> Optional[List[str]]:
    if not only:
        return None
    return [kind.strip() for kind in only.split(",") if kind.strip()]


def _apply(engine: MigrationEngine, config: ToolConfigSchema, pretend: bool) -> None:
    result = engine.apply_pending(config.dialect, pretend=pretend)
    for migration_id in result:
        if pretend:
            log_status(logger, "pretend", migration_id)
            for sql in result.statements[migration_id]:
                logger.info(f"    {sql};")
        else:
            log_status(logger, "applied", migration_id)
    if not result:
        logger.info("Schema is up to date.")


def _existing_migration(config: ToolConfigSchema, resource: ResourceName) -> Optional[MigrationScript]:
    """The create-table script of an earlier run for this resource, if any."""
    table = variants(resource).storage_identifier
    repository = MigrationScriptRepository(config.migrations_path)
    return next(
        (script for script in repository.all() if script.name == f"create_{table}"), None
    )


def cmd_generate(args: argparse.Namespace, config: ToolConfigSchema) -> int:
    log_progress(logger, f"Planning artifacts for '{args.name}'...")
    resource = ResourceName(args.name)
    fields = parse_field_tokens(args.fields)
    existing = _existing_migration(config, resource)
    plan = build_planner(config).plan(
        resource, fields, _parse_kinds(args.only), migration_id=existing.id if existing else None
    )

    files = build_orchestrator(config).execute(plan, dry_run=args.pretend)
    for generated in files:
        action = "create" if generated.is_new_file else ("update" if generated.changed else "identical")
        log_status(logger, action, generated.path)

    if args.pretend:
        log_highlight(logger, "Pretend mode: nothing was written.")
        return ExitCodes.OK
    log_success(logger, f"Generated {len(files)} artifact(s) for '{args.name}'")

    if args.migrate and plan.migration is not None:
        log_section(logger, "Migrations")
        engine = build_engine(config)
        try:
            engine.queue(plan.migration)
            _apply(engine, config, pretend=False)
        finally:
            engine.database.dispose()
    return ExitCodes.OK


def cmd_destroy(args: argparse.Namespace, config: ToolConfigSchema) -> int:
    resource = ResourceName(args.name)
    migration = _existing_migration(config, resource)

    kinds = list(ArtifactKinds.ORDERED)
    if migration is None:
        kinds.remove(ArtifactKinds.MIGRATION)
    else:
        logger.warning(
            f"Removing migration {migration.id}; roll it back first if it has been applied."
        )

    plan = build_planner(config).plan(
        resource, kinds=kinds, migration_id=migration.id if migration else None
    )
    removed = build_orchestrator(config).destroy(plan)
    for generated in removed:
        log_status(logger, "remove", generated.path)
    log_success(logger, f"Removed {len(removed)} artifact(s) for '{resource}'")
    return ExitCodes.OK


def cmd_migrate(args: argparse.Namespace, config: ToolConfigSchema) -> int:
    engine = build_engine(config)
    try:
        _apply(engine, config, pretend=args.pretend)
    finally:
        engine.database.dispose()
    return ExitCodes.OK


def cmd_rollback(args: argparse.Namespace, config: ToolConfigSchema) -> int:
    engine = build_engine(config)
    try:
        result = engine.revert(args.steps, config.dialect, pretend=args.pretend)
    finally:
        engine.database.dispose()

    for migration_id in result:
        if args.pretend:
            log_status(logger, "pretend", migration_id)
            for sql in result.statements[migration_id]:
                logger.info(f"    {sql};")
        else:
            log_status(logger, "reverted", migration_id)
    return ExitCodes.OK


def cmd_status(args: argparse.Namespace, config: ToolConfigSchema) -> int:
    engine = build_engine(config)
    try:
        report = engine.status()
    finally:
        engine.database.dispose()

    if not report:
        logger.info("No migrations found.")
    for entry in report:
        note = "  (script missing)" if entry.missing_script else ""
        log_status(logger, entry.state.value, f"{entry.migration_id}  {entry.name}{note}")
    return ExitCodes.OK


def cmd_unlock(args: argparse.Namespace, config: ToolConfigSchema) -> int:
    engine = build_engine(config)
    try:
        holder = engine.ledger.force_unlock()
    finally:
        engine.database.dispose()

    if holder:
        log_success(logger, f"Released ledger lock held by {holder}")
    else:
        logger.info("The ledger is not locked.")
    return ExitCodes.OK


COMMANDS = {
    "generate": cmd_generate,
    "destroy": cmd_destroy,
    "migrate": cmd_migrate,
    "rollback": cmd_rollback,
    "status": cmd_status,
    "unlock": cmd_unlock,
}


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    # --- Logging Setup ---
    log_level = logging.DEBUG if args.verbose else logging.INFO
    setup_colored_logging(level=log_level, use_colors=not args.no_color)
    if args.verbose:
        logger.debug("Verbose mode enabled. DEBUG level logging activated.")

    config_path = args.config
    if config_path is None and Path(DefaultConfig.CONFIG_FILE).is_file():
        config_path = DefaultConfig.CONFIG_FILE

    try:
        config = load_config(config_path, args)
        logger.debug(f"Effective configuration: {config}")
        return COMMANDS[args.command](args, config)

    # --- Error Handling ---
    except ScaffoldForgeError as e:
        logger.error(str(e), exc_info=args.verbose)
        return e.exit_code
    except KeyboardInterrupt:
        logger.error("Interrupted.")
        return ExitCodes.UNEXPECTED
    except Exception as e:
        # Catch any other unexpected exceptions
        logger.error(f"An unexpected error occurred: {e}", exc_info=True)
        return ExitCodes.UNEXPECTED


# --- Script Entry Point ---
if __name__ == "__main__":
    sys.exit(main())
