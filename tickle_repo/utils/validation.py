"""
Input validation utilities for repository operations.

Provides reusable checks for caller-supplied identifiers so malformed input
is rejected with a ValidationError before it reaches the database.
"""

from datetime import datetime

from tickle_repo.core.errors import ValidationError

MAX_LOCAL_IDS = 10000


def validate_dataset_name(name: str, field_name: str = "name") -> str:
    """
    Validate a dataset name.

    Names are stored and looked up exactly as given, so any characters are
    accepted. A name must not be blank, hold null bytes or exceed 255
    characters.

    Args:
        name: The dataset name to validate
        field_name: Name of the field (for error messages)

    Returns:
        The name, unchanged

    Raises:
        ValidationError: If validation fails

    Examples:
        >>> validate_dataset_name("870970-basis")
        '870970-basis'
        >>> validate_dataset_name("   ")  # doctest: +SKIP
        ValidationError: name cannot be empty or whitespace-only
    """
    if not name or not isinstance(name, str):
        raise ValidationError(f"{field_name} must be a non-empty string")

    if not name.strip():
        raise ValidationError(f"{field_name} cannot be empty or whitespace-only")

    if "\x00" in name:
        raise ValidationError(f"{field_name} contains null bytes")

    if len(name) > 255:
        raise ValidationError(f"{field_name} exceeds maximum length of 255 characters")

    return name


def validate_local_id(local_id: str, field_name: str = "local_id") -> str:
    """
    Validate a record local ID.

    Local IDs come from upstream systems and may hold any printable
    characters, but must be non-blank and free of null bytes.

    Args:
        local_id: The local ID to validate
        field_name: Name of the field (for error messages)

    Returns:
        The local ID, unchanged

    Raises:
        ValidationError: If validation fails
    """
    if not local_id or not isinstance(local_id, str):
        raise ValidationError(f"{field_name} must be a non-empty string")

    if not local_id.strip():
        raise ValidationError(f"{field_name} cannot be empty or whitespace-only")

    if "\x00" in local_id:
        raise ValidationError(f"{field_name} contains null bytes")

    return local_id


def validate_local_ids(local_ids: list[str], field_name: str = "local_ids") -> list[str]:
    """
    Validate a list of local IDs for a bulk lookup.

    Args:
        local_ids: List of local IDs
        field_name: Name of the field (for error messages)

    Returns:
        The validated list

    Raises:
        ValidationError: If validation fails

    Examples:
        >>> validate_local_ids(["r1", "r2"])
        ['r1', 'r2']
        >>> validate_local_ids([])
        []
    """
    if not isinstance(local_ids, list):
        raise ValidationError(f"{field_name} must be a list")

    for i, local_id in enumerate(local_ids):
        validate_local_id(local_id, f"{field_name}[{i}]")

    if len(local_ids) > MAX_LOCAL_IDS:
        raise ValidationError(
            f"{field_name} exceeds maximum length of {MAX_LOCAL_IDS} items. "
            "Split the lookup into smaller chunks."
        )

    return local_ids


def validate_id(value: int, field_name: str = "id") -> int:
    """
    Validate a store-assigned identifier.

    Args:
        value: The identifier
        field_name: Name of the field (for error messages)

    Returns:
        The validated identifier

    Raises:
        ValidationError: If value is not a positive integer
    """
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValidationError(f"{field_name} must be an integer, got {type(value).__name__}")

    if value <= 0:
        raise ValidationError(f"{field_name} must be a positive integer, got {value}")

    return value


def validate_fetch_size(fetch_size: int, field_name: str = "fetch_size", max_size: int = 10000) -> int:
    """
    Validate the page size of a streaming cursor.

    Examples:
        >>> validate_fetch_size(50)
        50
        >>> validate_fetch_size(0)  # doctest: +SKIP
        ValidationError: fetch_size must be a positive integer
    """
    if not isinstance(fetch_size, int) or isinstance(fetch_size, bool):
        raise ValidationError(f"{field_name} must be an integer, got {type(fetch_size).__name__}")

    if fetch_size <= 0:
        raise ValidationError(f"{field_name} must be a positive integer, got {fetch_size}")

    if fetch_size > max_size:
        raise ValidationError(f"{field_name} exceeds maximum of {max_size}")

    return fetch_size


def validate_cut_off_time(cut_off_time: datetime, field_name: str = "cut_off_time") -> datetime:
    """Validate a timestamp used as an exclusive upper bound."""
    if not isinstance(cut_off_time, datetime):
        raise ValidationError(f"{field_name} must be a datetime, got {type(cut_off_time).__name__}")

    if cut_off_time.tzinfo is None:
        raise ValidationError(f"{field_name} must be timezone-aware")

    return cut_off_time
