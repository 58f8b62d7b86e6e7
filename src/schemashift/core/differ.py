"""Structural comparison of two canonical schemas."""

import logging
from typing import Dict, List, Optional, Set, Tuple

from schemashift.errors import DestructiveChangeError
from schemashift.models.change import (
    AlterationStrategy,
    ChangeSet,
    ChangeType,
    ColumnChange,
    DataLossWarning,
    EnumAlteration,
    EnumUsage,
    ForeignKeyDrop,
    IndexChange,
    TableAlteration,
)
from schemashift.models.schema import (
    ColumnInfo,
    DatabaseSchema,
    ForeignKeyInfo,
    IndexInfo,
    TableInfo,
)
from schemashift.providers.base import Provider

logger = logging.getLogger(__name__)


class SchemaDiffer:
    """Computes the ChangeSet that turns ``actual`` into ``desired``."""

    def __init__(
        self,
        desired: DatabaseSchema,
        actual: DatabaseSchema,
        provider: Provider,
        index_order_significant: Optional[bool] = None,
    ):
        self.desired = desired
        self.actual = actual
        self.provider = provider
        self.index_order_significant = (
            provider.index_order_significant
            if index_order_significant is None
            else index_order_significant
        )

    def _key(self, name: str) -> str:
        return self.provider.normalize_identifier(name)

    def _by_key(self, tables: Dict[str, TableInfo]) -> Dict[str, TableInfo]:
        return {self._key(name): table for name, table in tables.items()}

    def compare(self) -> ChangeSet:
        change_set = ChangeSet()
        desired_tables = self._by_key(self.desired.tables)
        actual_tables = self._by_key(self.actual.tables)

        for key, table in desired_tables.items():
            if key not in actual_tables:
                change_set.tables_to_create.append(table)
                continue

            alteration = self._compare_table(table, actual_tables[key])
            if alteration.is_empty():
                continue

            index_only = not (
                alteration.added_columns
                or alteration.dropped_columns
                or alteration.modified_columns
                or alteration.added_foreign_keys
                or alteration.dropped_foreign_keys
                or alteration.primary_key_changed
            )
            if index_only and not self.provider.requires_rebuild(alteration):
                change_set.index_changes.append(
                    IndexChange(
                        table_name=table.name,
                        added=alteration.added_indexes,
                        dropped=alteration.dropped_indexes,
                    )
                )
            else:
                change_set.tables_to_alter.append(alteration)

        dropped = [table for key, table in actual_tables.items() if key not in desired_tables]
        change_set.tables_to_drop, change_set.foreign_keys_to_drop = self._order_drops(dropped)

        if self.provider.supports_native_enums:
            self._compare_enums(change_set)

        logger.debug(f"Computed {len(change_set.changes())} change(s)")
        return change_set

    def _compare_table(self, desired: TableInfo, actual: TableInfo) -> TableAlteration:
        alteration = TableAlteration(table_name=desired.name, desired=desired, actual=actual)
        actual_columns = {self._key(name): column for name, column in actual.columns.items()}
        desired_keys = {self._key(name) for name in desired.columns}

        for name, column in desired.columns.items():
            existing = actual_columns.get(self._key(name))
            if existing is None:
                alteration.added_columns.append(column)
                continue
            change = self._compare_column(existing, column)
            if change is not None:
                alteration.modified_columns.append(change)

        for name in actual.columns:
            if self._key(name) not in desired_keys:
                alteration.dropped_columns.append(name)

        desired_pk = [self._key(name) for name in desired.primary_key]
        actual_pk = [self._key(name) for name in actual.primary_key]
        alteration.primary_key_changed = desired_pk != actual_pk

        alteration.added_indexes, alteration.dropped_indexes = self._match(
            desired.effective_indexes(), actual.effective_indexes(), self._index_key
        )
        alteration.added_foreign_keys, alteration.dropped_foreign_keys = self._match(
            desired.foreign_keys, actual.foreign_keys, self._foreign_key_key
        )
        return alteration

    def _compare_column(self, before: ColumnInfo, after: ColumnInfo) -> Optional[ColumnChange]:
        type_changed = before.type != after.type
        nullability_changed = before.nullable != after.nullable
        default_changed = (
            self.provider.comparable_default(before) != self.provider.comparable_default(after)
        )
        if not (type_changed or nullability_changed or default_changed):
            return None

        strategy = AlterationStrategy.IN_PLACE
        if type_changed or default_changed:
            strategy = self.provider.alteration_strategy(before, after)
        elif self.provider.alteration_strategy(before, after) == AlterationStrategy.REBUILD_TABLE:
            strategy = AlterationStrategy.REBUILD_TABLE

        return ColumnChange(
            name=after.name,
            before=before,
            after=after,
            type_changed=type_changed,
            nullability_changed=nullability_changed,
            default_changed=default_changed,
            strategy=strategy,
        )

    def _index_key(self, index: IndexInfo) -> Tuple:
        columns = [
            (self._key(column.name), column.sort or "ASC")
            for column in index.columns
        ]
        if not self.index_order_significant:
            columns.sort()
        return (index.unique, tuple(columns))

    def _foreign_key_key(self, fk: ForeignKeyInfo) -> Tuple:
        return (
            tuple(self._key(column) for column in fk.columns),
            self._key(fk.referenced_table),
            tuple(self._key(column) for column in fk.referenced_columns),
            fk.on_delete,
            fk.on_update,
        )

    @staticmethod
    def _match(desired: list, actual: list, key) -> Tuple[list, list]:
        """Match items by content key; returns (only in desired, only in actual)."""
        remaining = list(actual)
        added = []
        for item in desired:
            item_key = key(item)
            for index, candidate in enumerate(remaining):
                if key(candidate) == item_key:
                    del remaining[index]
                    break
            else:
                added.append(item)
        return added, remaining

    def _order_drops(self, tables: List[TableInfo]) -> Tuple[List[str], List[ForeignKeyDrop]]:
        """Order dropped tables so referencing tables go first.

        Uses Kahn's algorithm over the foreign keys among the dropped
        tables. Tables left in a cycle have those foreign keys dropped first.
        """
        by_key = {self._key(table.name): table for table in tables}
        referenced_by: Dict[str, Set[str]] = {key: set() for key in by_key}
        for key, table in by_key.items():
            for fk in table.foreign_keys:
                target = self._key(fk.referenced_table)
                if target in by_key and target != key:
                    referenced_by[target].add(key)

        order: List[str] = []
        remaining = set(by_key)
        while remaining:
            ready = sorted(key for key in remaining if not (referenced_by[key] & remaining))
            if not ready:
                break
            for key in ready:
                order.append(by_key[key].name)
                remaining.discard(key)

        cycle_drops = []
        if remaining:
            for key in sorted(remaining):
                table = by_key[key]
                for fk in table.foreign_keys:
                    target = self._key(fk.referenced_table)
                    if target in remaining and target != key:
                        cycle_drops.append(ForeignKeyDrop(table_name=table.name, foreign_key=fk))
                order.append(table.name)
        return order, cycle_drops

    def _compare_enums(self, change_set: ChangeSet) -> None:
        dropped_tables = {self._key(name) for name in change_set.tables_to_drop}

        for name, enum in self.desired.enums.items():
            existing = self.actual.enums.get(name)
            if existing is None:
                change_set.enums_to_create.append(enum)
                continue
            if set(existing.values) == set(enum.values):
                continue

            usages = []
            for table in self.actual.tables.values():
                if self._key(table.name) in dropped_tables:
                    continue
                desired_table = self._by_key(self.desired.tables).get(self._key(table.name))
                for column in table.columns.values():
                    if column.enum_name != name:
                        continue
                    if desired_table is None or desired_table.get_column(column.name) is None:
                        continue
                    usages.append(
                        EnumUsage(
                            table_name=table.name,
                            column_name=column.name,
                            default=desired_table.columns[column.name].default,
                        )
                    )

            change_set.enums_to_alter.append(
                EnumAlteration(
                    name=name,
                    values=list(enum.values),
                    added_values=[value for value in enum.values if value not in existing.values],
                    removed_values=[value for value in existing.values if value not in enum.values],
                    usages=usages,
                )
            )

        for name in self.actual.enums:
            if name not in self.desired.enums:
                change_set.enums_to_drop.append(name)


def compare(
    desired: DatabaseSchema,
    actual: DatabaseSchema,
    provider: Provider,
    index_order_significant: Optional[bool] = None,
) -> ChangeSet:
    """Compute the changes that turn ``actual`` into ``desired``.

    Args:
        desired: Target schema, usually built from the declaration
        actual: Current schema, usually introspected
        provider: Provider used for name matching and alteration policy
        index_order_significant: Compare index columns in order; the
            provider's default when None

    Returns:
        ChangeSet, empty when both schemas are equivalent
    """
    return SchemaDiffer(desired, actual, provider, index_order_significant).compare()


def _is_risky_type_change(provider: Provider, before: ColumnInfo, after: ColumnInfo) -> bool:
    source = provider.type_family(before.type)
    target = provider.type_family(after.type)
    if source == target or target == "text":
        return False
    numeric = ("integer", "float", "decimal")
    # Widening integers to floating point or decimal keeps the values
    return not (source == "integer" and target in numeric)


def find_data_loss(change_set: ChangeSet, provider: Provider) -> List[DataLossWarning]:
    """List the changes in a ChangeSet that may destroy data.

    Args:
        change_set: Changes to analyse
        provider: Provider whose alteration policy applies

    Returns:
        One warning per destructive change, in change order
    """
    warnings = []

    for name in change_set.tables_to_drop:
        warnings.append(
            DataLossWarning(
                type=ChangeType.DROP_TABLE,
                table=name,
                message=f"You are about to drop the `{name}` table. All the data in the table will be lost.",
            )
        )

    for alteration in change_set.tables_to_alter:
        table = alteration.table_name
        for column in alteration.dropped_columns:
            warnings.append(
                DataLossWarning(
                    type=ChangeType.DROP_COLUMN,
                    table=table,
                    column=column,
                    message=f"You are about to drop the column `{column}` on the `{table}` table. "
                    f"All the data in the column will be lost.",
                )
            )

        for column in alteration.added_columns:
            if not column.nullable and column.default is None:
                warnings.append(
                    DataLossWarning(
                        type=ChangeType.ADD_COLUMN,
                        table=table,
                        column=column.name,
                        message=f"Added the required column `{column.name}` to the `{table}` table "
                        f"without a default value. This is not possible if the table is not empty.",
                    )
                )

        for change in alteration.modified_columns:
            if change.type_changed and (
                change.strategy == AlterationStrategy.RECREATE_COLUMN
                or _is_risky_type_change(provider, change.before, change.after)
            ):
                warnings.append(
                    DataLossWarning(
                        type=ChangeType.MODIFY_COLUMN,
                        table=table,
                        column=change.name,
                        message=f"The column `{change.name}` on the `{table}` table would be "
                        f"changed from {change.before.type} to {change.after.type}. "
                        f"Existing data in the column may be lost.",
                    )
                )
            elif change.strategy == AlterationStrategy.RECREATE_COLUMN:
                warnings.append(
                    DataLossWarning(
                        type=ChangeType.MODIFY_COLUMN,
                        table=table,
                        column=change.name,
                        message=f"The column `{change.name}` on the `{table}` table would be "
                        f"dropped and recreated. All the data in the column will be lost.",
                    )
                )
            if (
                change.nullability_changed
                and not change.after.nullable
                and change.after.default is None
            ):
                warnings.append(
                    DataLossWarning(
                        type=ChangeType.MODIFY_COLUMN,
                        table=table,
                        column=change.name,
                        message=f"Made the column `{change.name}` on table `{table}` required, "
                        f"but there may be existing NULL values.",
                    )
                )

    for alteration in change_set.enums_to_alter:
        for value in alteration.removed_values:
            warnings.append(
                DataLossWarning(
                    type=ChangeType.ALTER_ENUM,
                    message=f"The value `{value}` will be removed from the enum `{alteration.name}`. "
                    f"If it is still used, this will fail.",
                )
            )

    return warnings


def ensure_no_data_loss(
    change_set: ChangeSet, provider: Provider, accept_data_loss: bool = False
) -> List[DataLossWarning]:
    """Raise unless the change set is safe or data loss was accepted.

    Returns:
        The warnings that were accepted, if any

    Raises:
        DestructiveChangeError: If there are warnings and data loss was not accepted
    """
    warnings = find_data_loss(change_set, provider)
    if warnings and not accept_data_loss:
        raise DestructiveChangeError(warnings)
    for warning in warnings:
        logger.warning(f"Accepted data loss: {warning.message}")
    return warnings
