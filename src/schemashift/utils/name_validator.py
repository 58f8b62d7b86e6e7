"""Name validation utilities for migrations.

Migration directories are named ``<14-digit timestamp>_<description>`` and
are created on the filesystem, so descriptions are reduced to a safe subset.
"""

import re


# 14-digit UTC timestamp, underscore, normalized description
VALID_MIGRATION_NAME_PATTERN = re.compile(r"^\d{14}_[a-z0-9_]+$")

MAX_DESCRIPTION_LENGTH = 200

DEFAULT_DESCRIPTION = "migration"


class InvalidMigrationNameError(ValueError):
    """Raised when a migration name doesn't meet validation requirements."""

    pass


def normalize_migration_name(description: str) -> str:
    """Turn a free-form description into a migration name suffix.

    This performs the following:
    - Convert to lowercase
    - Replace spaces and dashes with underscores
    - Remove any other character that is not a letter, digit or underscore
    - Collapse repeated underscores and trim them from both ends

    Args:
        description: The description supplied by the operator

    Returns:
        Normalized description, or ``"migration"`` if nothing is left
    """
    cleaned = (description or "").lower()
    cleaned = re.sub(r"[\s\-]+", "_", cleaned)
    cleaned = re.sub(r"[^a-z0-9_]", "", cleaned)
    cleaned = re.sub(r"_{2,}", "_", cleaned)
    cleaned = cleaned.strip("_")
    cleaned = cleaned[:MAX_DESCRIPTION_LENGTH].rstrip("_")

    return cleaned or DEFAULT_DESCRIPTION


def validate_migration_name(name: str) -> None:
    """Validate a full migration directory name.

    Args:
        name: The name to validate

    Raises:
        InvalidMigrationNameError: If the name is invalid
    """
    if not name:
        raise InvalidMigrationNameError("Migration name cannot be empty")

    # Critical: Check for path traversal attempts
    if ".." in name or "/" in name or "\\" in name:
        raise InvalidMigrationNameError(
            f"Security violation: migration name '{name}' contains "
            f"forbidden path traversal characters"
        )

    if not VALID_MIGRATION_NAME_PATTERN.match(name):
        raise InvalidMigrationNameError(
            f"Invalid migration name '{name}'. Migration names must be a "
            f"14-digit timestamp followed by an underscore and a description "
            f"of lowercase letters (a-z), numbers (0-9) and underscores (_)."
        )


def is_valid_migration_name(name: str) -> bool:
    """Check if a migration name is valid without raising an exception.

    Args:
        name: The name to check

    Returns:
        True if valid, False otherwise
    """
    try:
        validate_migration_name(name)
        return True
    except InvalidMigrationNameError:
        return False
