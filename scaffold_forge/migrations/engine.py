"""
Migration engine: applies and reverts migration scripts.

Every script runs in its own transaction and the ledger is only updated for
a committed script. A failure stops the run at the offending script; scripts
committed earlier in the same call stay applied. At most one migrator runs
at a time, enforced by the ledger lock.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..exceptions import (
    DialectError,
    MigrationError,
    MigrationExecutionError,
    NothingToRevert,
    ScriptNotReversible,
)
from .database import Database
from .dialects import get_dialect
from .ledger import LedgerStore, SqlLedgerStore
from .scripts import MigrationScript, MigrationScriptRepository

logger = logging.getLogger(__name__)


class MigrationState(Enum):
    """Lifecycle of one migration id within an engine."""

    PENDING = "pending"
    APPLYING = "applying"
    APPLIED = "applied"
    ROLLED_BACK = "rolled_back"
    REVERTING = "reverting"


@dataclass
class MigrationRunResult:
    """
    Ids processed by one ``apply_pending``/``revert`` call, in processing
    order, with the SQL executed for each.
    """

    migration_ids: List[str] = field(default_factory=list)
    statements: Dict[str, List[str]] = field(default_factory=dict)
    pretend: bool = False

    def add(self, migration_id: str, statements: List[str]) -> None:
        self.migration_ids.append(migration_id)
        self.statements[migration_id] = statements

    def __len__(self) -> int:
        return len(self.migration_ids)

    def __iter__(self):
        return iter(self.migration_ids)


# Named after the contract they fulfil
AppliedSet = MigrationRunResult
RevertedSet = MigrationRunResult


@dataclass
class MigrationStatus:
    migration_id: str
    name: str
    state: MigrationState
    missing_script: bool = False


class MigrationEngine:
    """Sequences scripts against one database and one version ledger."""

    def __init__(
        self,
        database: Database,
        ledger: LedgerStore,
        repository: Optional[MigrationScriptRepository] = None,
    ):
        self.database = database
        self.ledger = ledger
        self.repository = repository or MigrationScriptRepository()
        self._states: Dict[str, MigrationState] = {}

    def queue(self, script: MigrationScript) -> None:
        """Make a script produced in this process available for application."""
        self.repository.queue(script)

    def state_of(self, migration_id: str) -> MigrationState:
        if migration_id in self._states:
            return self._states[migration_id]
        if migration_id in self.ledger.list():
            return MigrationState.APPLIED
        return MigrationState.PENDING

    def _set_state(self, migration_id: str, state: MigrationState) -> None:
        self._states[migration_id] = state
        logger.debug(f"Migration {migration_id}: {state.value}")

    @property
    def _ledger_in_transaction(self) -> bool:
        return isinstance(self.ledger, SqlLedgerStore)

    def _render(self, operations, dialect: str) -> List[str]:
        adapter = get_dialect(dialect)
        statements: List[str] = []
        for operation in operations:
            statements.extend(adapter.emit(operation))
        return statements

    def pending(self) -> List[MigrationScript]:
        applied = set(self.ledger.list())
        return [script for script in self.repository.all() if script.id not in applied]

    def status(self) -> List[MigrationStatus]:
        """Report every known script as applied or pending."""
        applied = self.ledger.list()
        scripts = self.repository.load()
        report: List[MigrationStatus] = []
        for script in self.repository.all():
            state = MigrationState.APPLIED if script.id in applied else MigrationState.PENDING
            report.append(MigrationStatus(script.id, script.name, state))
        for migration_id in applied:
            if migration_id not in scripts:
                report.append(
                    MigrationStatus(migration_id, "", MigrationState.APPLIED, missing_script=True)
                )
        return report

    def apply_pending(self, dialect: Optional[str] = None, pretend: bool = False) -> AppliedSet:
        """
        Apply every script not yet in the ledger, in ascending id order.

        Raises:
            LedgerLocked: If another migrator holds the ledger lock.
            DialectUnsupportedOperation: If a script uses an operation the
                dialect cannot express; earlier scripts stay applied.
            MigrationExecutionError: If a statement fails; that script is
                rolled back and earlier scripts stay applied.
        """
        dialect = dialect or self.database.dialect
        result = AppliedSet(pretend=pretend)

        if pretend:
            for script in self.pending():
                result.add(script.id, self._render(script.up_operations, dialect))
            return result

        with self.ledger.locked():
            pending = self.pending()
            if not pending:
                logger.info("No pending migrations.")
                return result

            logger.info(f"Applying {len(pending)} pending migration(s) using the {dialect} dialect")
            for script in pending:
                try:
                    statements = self._render(script.up_operations, dialect)
                except DialectError as e:
                    e.context["completed"] = list(result.migration_ids)
                    raise

                self._run_script(script, statements, result, reverting=False)
                logger.info(f"Applied migration {script.id} {script.name}".rstrip())

        return result

    def revert(self, steps: int = 1, dialect: Optional[str] = None, pretend: bool = False) -> RevertedSet:
        """
        Revert the last ``steps`` applied scripts, newest first.

        Every selected script is checked before any down operation runs.

        Raises:
            NothingToRevert: If the ledger is empty.
            ScriptNotReversible: If a selected script has no down operations.
            UnknownMigration: If a selected ledger id has no script.
            MigrationExecutionError: If a statement fails; scripts reverted
                before it stay reverted.
        """
        if steps < 1:
            raise MigrationError(f"Number of steps to revert must be at least 1, got {steps}")

        dialect = dialect or self.database.dialect
        result = RevertedSet(pretend=pretend)

        if pretend:
            targets = self._revert_targets(steps)
            for script in targets:
                result.add(script.id, self._render(script.down_operations, dialect))
            return result

        with self.ledger.locked():
            targets = self._revert_targets(steps)
            planned = [
                (script, self._render(script.down_operations, dialect)) for script in targets
            ]
            for script, statements in planned:
                self._run_script(script, statements, result, reverting=True)
                logger.info(f"Reverted migration {script.id} {script.name}".rstrip())

        return result

    def _revert_targets(self, steps: int) -> List[MigrationScript]:
        applied = self.ledger.list()
        if not applied:
            raise NothingToRevert("Nothing to revert: the ledger is empty")
        if steps > len(applied):
            logger.info(f"Only {len(applied)} migration(s) applied; reverting all of them")

        targets = []
        for migration_id in list(reversed(applied))[:steps]:
            script = self.repository.get(migration_id)
            if not script.is_reversible:
                raise ScriptNotReversible(
                    f"Migration {migration_id} declares no down operations",
                    migration_id=migration_id,
                )
            targets.append(script)
        return targets

    def _run_script(
        self,
        script: MigrationScript,
        statements: List[str],
        result: MigrationRunResult,
        reverting: bool,
    ) -> None:
        self._set_state(script.id, MigrationState.REVERTING if reverting else MigrationState.APPLYING)
        try:
            with self.database.transaction() as transaction:
                for sql in statements:
                    transaction.execute(sql)
                if self._ledger_in_transaction:
                    self._record(script.id, reverting, transaction)
        except SQLAlchemyError as e:
            # The transaction block has already rolled back
            self._set_state(script.id, MigrationState.APPLIED if reverting else MigrationState.ROLLED_BACK)
            action = "revert" if reverting else "apply"
            raise MigrationExecutionError(
                f"Failed to {action} migration {script.id}: {e}",
                migration_id=script.id,
                completed=result.migration_ids,
            ) from e

        if not self._ledger_in_transaction:
            self._record(script.id, reverting, None)
        self._set_state(script.id, MigrationState.PENDING if reverting else MigrationState.APPLIED)
        result.add(script.id, statements)

    def _record(self, migration_id: str, reverting: bool, transaction) -> None:
        if reverting:
            self.ledger.remove(migration_id, transaction=transaction)
        else:
            self.ledger.append(migration_id, transaction=transaction)
