"""Development diagnostic: decide whether to apply, create or reset."""

import logging
from typing import List, Optional

from schemashift.core.differ import compare
from schemashift.core.introspector import introspect
from schemashift.managers.migration import MigrationManager
from schemashift.managers.shadow import ShadowDatabase
from schemashift.models import ChangeSet, DatabaseSchema, DevAction, DiagnosticResult
from schemashift.providers.base import Provider

logger = logging.getLogger(__name__)

DRIFT_HEADER = [
    "Drift detected: Your database schema is not in sync with your migration history.",
    "",
    "The following is a summary of the differences between the expected database schema "
    "given your migrations files, and the actual schema of the database.",
    "",
    "It should be understood as the set of changes to get from the expected schema to "
    "the actual schema.",
    "",
]


def format_drift_summary(drift: ChangeSet) -> str:
    """Describe drift as the changes from the expected to the actual schema.

    Args:
        drift: ChangeSet comparing the live database (desired side) with the
            schema replayed from the migration history (actual side)

    Returns:
        Multi-line summary starting with the drift header
    """
    sections: List[List[str]] = []

    if drift.tables_to_create:
        sections.append(
            ["[+] Added tables"] + [f"  - {table.name}" for table in drift.tables_to_create]
        )
    if drift.tables_to_drop:
        sections.append(["[-] Removed tables"] + [f"  - {name}" for name in drift.tables_to_drop])

    for alteration in drift.tables_to_alter:
        lines = [f"[*] Changed the `{alteration.table_name}` table"]
        lines.extend(f"  [+] Added column `{c.name}`" for c in alteration.added_columns)
        lines.extend(f"  [-] Removed column `{name}`" for name in alteration.dropped_columns)
        lines.extend(f"  [*] Changed column `{c.name}`" for c in alteration.modified_columns)
        if alteration.primary_key_changed:
            lines.append("  [*] Changed the primary key")
        lines.extend(f"  [+] Added index `{i.name}`" for i in alteration.added_indexes)
        lines.extend(f"  [-] Removed index `{i.name}`" for i in alteration.dropped_indexes)
        lines.extend(f"  [+] Added foreign key `{fk.name}`" for fk in alteration.added_foreign_keys)
        lines.extend(
            f"  [-] Removed foreign key `{fk.name}`" for fk in alteration.dropped_foreign_keys
        )
        sections.append(lines)

    for change in drift.index_changes:
        lines = [f"[*] Changed the `{change.table_name}` table"]
        lines.extend(f"  [+] Added index `{i.name}`" for i in change.added)
        lines.extend(f"  [-] Removed index `{i.name}`" for i in change.dropped)
        sections.append(lines)

    if drift.enums_to_create:
        sections.append(["[+] Added enums"] + [f"  - {e.name}" for e in drift.enums_to_create])
    for alteration in drift.enums_to_alter:
        lines = [f"[*] Changed the `{alteration.name}` enum"]
        lines.extend(f"  [+] Added variant `{v}`" for v in alteration.added_values)
        lines.extend(f"  [-] Removed variant `{v}`" for v in alteration.removed_values)
        sections.append(lines)
    if drift.enums_to_drop:
        sections.append(["[-] Removed enums"] + [f"  - {name}" for name in drift.enums_to_drop])

    body = "\n\n".join("\n".join(lines) for lines in sections)
    return "\n".join(DRIFT_HEADER) + body


class DevDiagnostic:
    """Decides the next step of the development workflow.

    Checks run from the most to the least severe: modified, missing and
    failed migrations, then structural drift, then pending migrations.
    Anything the local history cannot explain resolves to RESET.
    """

    def __init__(
        self,
        manager: MigrationManager,
        provider: Provider,
        shadow: Optional[ShadowDatabase] = None,
        index_order_significant: Optional[bool] = None,
    ):
        self.manager = manager
        self.provider = provider
        self.shadow = shadow
        self.index_order_significant = index_order_significant

    def _compare(self, desired: DatabaseSchema, actual: DatabaseSchema) -> ChangeSet:
        return compare(desired, actual, self.provider, self.index_order_significant)

    def diagnose(self, desired: DatabaseSchema) -> DiagnosticResult:
        """Run the diagnostic against the declared schema.

        Args:
            desired: Schema built from the declaration

        Returns:
            DiagnosticResult with the action and its reason
        """
        modified = self.manager.get_modified_migrations()
        if modified:
            return self._reset(
                "The following migration(s) have been modified since they were applied:\n"
                f"  {', '.join(modified)}\n\n"
                "Migrations that have been applied to the database should not be modified."
            )

        missing = self.manager.get_missing_migrations()
        if missing:
            return self._reset(
                "The following migration(s) are applied to the database but missing "
                f"from the local migrations directory:\n  {', '.join(missing)}"
            )

        failed = self.manager.get_failed_migrations()
        if failed:
            return self._reset(
                "The following migration(s) failed to apply and were not rolled back:\n"
                f"  {', '.join(failed)}"
            )

        applied_names = {entry.migration_name for entry in self.manager.get_applied_migrations()}
        local = self.manager.get_local_migrations()
        applied = [m for m in local if m.name in applied_names]
        pending = [m.name for m in local if m.name not in applied_names]

        live = introspect(self.manager.connection, self.provider, self.manager.ledger.table_name)

        if self.shadow is not None and self.shadow.available:
            expected = self.shadow.replay(applied)
            drift = self._compare(live, expected)
            if not drift.is_empty():
                return self._reset(format_drift_summary(drift), drift)
        else:
            logger.warning(
                f"No shadow database configured for {self.provider.name}; "
                f"skipping structural drift detection"
            )
            if not applied and (live.tables or live.enums):
                return self._reset(
                    "The database is not empty and has no applied migrations. "
                    "Its structure cannot be explained by the migration history."
                )

        if pending:
            logger.info(f"{len(pending)} pending migration(s) to apply")
            return DiagnosticResult(action=DevAction.APPLY, pending=pending)

        change_set = self._compare(desired, live)
        return DiagnosticResult(action=DevAction.CREATE, change_set=change_set)

    def _reset(self, reason: str, drift: Optional[ChangeSet] = None) -> DiagnosticResult:
        logger.info("Development diagnostic requires a reset")
        return DiagnosticResult(action=DevAction.RESET, reason=reason, drift=drift)
