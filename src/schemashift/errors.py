"""Exception hierarchy for schemashift."""

from typing import List, Optional


class SchemaShiftError(Exception):
    """Base class for all schemashift errors."""

    pass


class SchemaSyntaxError(SchemaShiftError):
    """A syntax error found while parsing a schema declaration."""

    def __init__(self, message: str, line: int, column: int, context: str = ""):
        self.message = message
        self.line = line
        self.column = column
        self.context = context
        super().__init__(self._format())

    def _format(self) -> str:
        text = f"line {self.line}, column {self.column}: {self.message}"
        if self.context:
            pointer = " " * max(self.column - 1, 0) + "^"
            text += f"\n  {self.context}\n  {pointer}"
        return text


class SchemaSyntaxErrors(SchemaShiftError):
    """Raised when a declaration has one or more syntax errors."""

    def __init__(self, errors: List[SchemaSyntaxError]):
        self.errors = list(errors)
        lines = [str(e) for e in self.errors]
        super().__init__(
            f"Schema has {len(self.errors)} syntax error(s):\n" + "\n".join(lines)
        )


class SchemaValidationError(SchemaShiftError):
    """A semantic error in an otherwise well-formed declaration."""

    def __init__(self, message: str, location: Optional[str] = None):
        self.message = message
        self.location = location
        super().__init__(f"{location}: {message}" if location else message)


class SchemaValidationErrors(SchemaShiftError):
    """Raised when a declaration fails semantic validation."""

    def __init__(self, errors: List[SchemaValidationError]):
        self.errors = list(errors)
        lines = [f"  - {e}" for e in self.errors]
        super().__init__(
            f"Schema validation failed with {len(self.errors)} error(s):\n"
            + "\n".join(lines)
        )


class UnsupportedProviderError(SchemaShiftError):
    """Raised for unknown providers or connection URL schemes."""

    pass


class ConnectivityError(SchemaShiftError):
    """Raised when the database cannot be reached."""

    pass


class IntrospectionError(SchemaShiftError):
    """Raised when reading the database catalog fails, fully or partially."""

    def __init__(self, message: str, failed_tables: Optional[List[str]] = None):
        self.failed_tables = list(failed_tables or [])
        super().__init__(message)


class DestructiveChangeError(SchemaShiftError):
    """Raised when a change set would lose data and that was not accepted."""

    def __init__(self, warnings):
        self.warnings = list(warnings)
        lines = [f"  - {w.message}" for w in self.warnings]
        super().__init__(
            "The following changes may cause data loss and were not accepted "
            "(set accept_data_loss to apply them):\n" + "\n".join(lines)
        )


class ApplyError(SchemaShiftError):
    """Raised when a statement fails while applying SQL to the database."""

    def __init__(
        self,
        migration_name: Optional[str],
        statement: str,
        cause: str,
        applied_steps_count: int = 0,
    ):
        self.migration_name = migration_name
        self.statement = statement
        self.cause = cause
        self.applied_steps_count = applied_steps_count
        target = f"migration '{migration_name}'" if migration_name else "script"
        super().__init__(f"Error applying {target}: {cause}\nSQL: {statement}")


class DriftError(SchemaShiftError):
    """Raised when the migration history and the database disagree."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class MigrationError(SchemaShiftError):
    """Raised for migration directory and ledger problems."""

    pass


class MigrationLockError(MigrationError):
    """Raised when migration_lock.toml names a different provider."""

    pass
