"""Render a ChangeSet as a provider-specific SQL script."""

import logging
from typing import Dict, List, Optional, Set, Tuple

from schemashift.models.change import AlterationStrategy, ChangeSet, TableAlteration
from schemashift.models.schema import ForeignKeyInfo, TableInfo
from schemashift.providers.base import Provider

logger = logging.getLogger(__name__)


class SQLGenerator:
    """Orders and renders the statements of a ChangeSet.

    Statements are emitted in phases so that every object exists before it
    is referenced and is unreferenced before it is dropped: foreign keys and
    indexes are dropped first, then tables; enums are created before the
    tables that use them and dropped last.
    """

    def __init__(self, change_set: ChangeSet, provider: Provider):
        self.change_set = change_set
        self.provider = provider
        self.sections: List[Tuple[Optional[str], str]] = []
        self.created: List[Tuple[TableInfo, List[ForeignKeyInfo]]] = []
        self.rebuilt: Set[str] = {
            alteration.table_name
            for alteration in change_set.tables_to_alter
            if provider.requires_rebuild(alteration)
        }

    def _emit(self, header: Optional[str], statements) -> None:
        if isinstance(statements, str):
            statements = [statements]
        for statement in statements:
            self.sections.append((header, statement))
            header = None

    def _altered(self) -> List[TableAlteration]:
        return [a for a in self.change_set.tables_to_alter if a.table_name not in self.rebuilt]

    def generate(self) -> str:
        """Render the script.

        Returns:
            SQL text, or an empty string for an empty ChangeSet
        """
        if self.change_set.is_empty():
            return ""

        deferred = self._ordered_creates()

        self._drop_foreign_keys()
        self._drop_indexes()
        for name in self.change_set.tables_to_drop:
            self._emit("DropTable", self.provider.drop_table(name))
        for enum in self.change_set.enums_to_create:
            self._emit("CreateEnum", self.provider.create_enum(enum))
        for alteration in self.change_set.enums_to_alter:
            self._emit("AlterEnum", self.provider.alter_enum(alteration))
        for table, inline in self.created:
            self._emit("CreateTable", self.provider.create_table(table, inline))
        for alteration in self.change_set.tables_to_alter:
            self._alter_table(alteration)
        self._create_indexes()
        self._add_foreign_keys(deferred)
        for name in self.change_set.enums_to_drop:
            self._emit("DropEnum", self.provider.drop_enum(name))

        parts = []
        for header, statement in self.sections:
            text = f"{statement};"
            parts.append(f"-- {header}\n{text}" if header else text)
        logger.debug(f"Generated {len(self.sections)} statement(s)")
        return "\n\n".join(parts) + "\n"

    def _ordered_creates(self) -> List[Tuple[str, ForeignKeyInfo]]:
        """Order created tables so referenced tables come first.

        Returns:
            Foreign keys that could not be declared inline because their
            target is created later (cycles)
        """
        key = self.provider.normalize_identifier
        pending: Dict[str, TableInfo] = {
            key(table.name): table for table in self.change_set.tables_to_create
        }
        emitted: Set[str] = set()
        deferred: List[Tuple[str, ForeignKeyInfo]] = []

        def depends_on(table: TableInfo) -> Set[str]:
            targets = {key(fk.referenced_table) for fk in table.foreign_keys}
            return {t for t in targets if t in pending and t != key(table.name)}

        while pending:
            ready = sorted(name for name, table in pending.items() if not depends_on(table) - emitted)
            if not ready:
                # Cycle: take the first remaining table and defer its forward references
                ready = [sorted(pending)[0]]
            for name in ready:
                table = pending.pop(name)
                inline, later = [], []
                for fk in table.foreign_keys:
                    target = key(fk.referenced_table)
                    if (
                        self.provider.inline_foreign_keys_only
                        or target == name
                        or target in emitted
                        or target not in pending
                    ):
                        inline.append(fk)
                    else:
                        later.append(fk)
                self.created.append((table, inline))
                deferred.extend((table.name, fk) for fk in later)
                emitted.add(name)
        return deferred

    def _drop_foreign_keys(self) -> None:
        if not self.provider.inline_foreign_keys_only:
            for drop in self.change_set.foreign_keys_to_drop:
                self._emit("DropForeignKey", self.provider.drop_foreign_key(drop.table_name, drop.foreign_key))
        for alteration in self._altered():
            for fk in alteration.dropped_foreign_keys:
                self._emit("DropForeignKey", self.provider.drop_foreign_key(alteration.table_name, fk))

    def _drop_indexes(self) -> None:
        for alteration in self._altered():
            for index in alteration.dropped_indexes:
                self._emit("DropIndex", self.provider.drop_index(alteration.table_name, index))
        for change in self.change_set.index_changes:
            for index in change.dropped:
                self._emit("DropIndex", self.provider.drop_index(change.table_name, index))

    def _alter_table(self, alteration: TableAlteration) -> None:
        if alteration.table_name in self.rebuilt:
            self._emit("RedefineTables", self.provider.rebuild_table(alteration))
            return

        statements = []
        table = alteration.desired
        if alteration.primary_key_changed and alteration.actual.primary_key:
            statements.append(self.provider.drop_primary_key(alteration.actual))
        for name in alteration.dropped_columns:
            statements.append(self.provider.drop_column(alteration.table_name, name))
        for column in alteration.added_columns:
            statements.extend(self.provider.add_column(alteration.table_name, column))
        for change in alteration.modified_columns:
            if change.strategy == AlterationStrategy.RECREATE_COLUMN:
                statements.extend(self.provider.recreate_column(table, change))
            else:
                statements.extend(self.provider.alter_column(table, change))
        if alteration.primary_key_changed and table.primary_key:
            statements.append(self.provider.add_primary_key(table))
        if statements:
            self._emit("AlterTable", statements)

    def _create_indexes(self) -> None:
        for table, _ in self.created:
            for index in table.indexes:
                self._emit("CreateIndex", self.provider.create_index(table.name, index))
        for alteration in self._altered():
            for index in alteration.added_indexes:
                self._emit("CreateIndex", self.provider.create_index(alteration.table_name, index))
        for change in self.change_set.index_changes:
            for index in change.added:
                self._emit("CreateIndex", self.provider.create_index(change.table_name, index))

    def _add_foreign_keys(self, deferred: List[Tuple[str, ForeignKeyInfo]]) -> None:
        for table_name, fk in deferred:
            self._emit("AddForeignKey", self.provider.add_foreign_key(table_name, fk))
        for alteration in self._altered():
            for fk in alteration.added_foreign_keys:
                self._emit("AddForeignKey", self.provider.add_foreign_key(alteration.table_name, fk))


def generate(change_set: ChangeSet, provider: Provider) -> str:
    """Render a ChangeSet as a SQL script for a provider.

    Args:
        change_set: Changes to render
        provider: Target provider

    Returns:
        SQL script with one ``-- <Step>`` comment per group of statements,
        or an empty string when there is nothing to change
    """
    return SQLGenerator(change_set, provider).generate()
