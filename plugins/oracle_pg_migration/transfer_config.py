"""
Transfer Configuration Module

Batch and fetch sizes for the transfer strategies. Defaults match the values
the strategies were tuned with; each one can be overridden per deployment
through environment variables (Airflow workers inherit them).

Environment variables:
- TRANSFER_COPY_BATCH_SIZE: rows per COPY flush (default 10000)
- TRANSFER_COPY_FETCH_SIZE: Oracle fetch size for the COPY path (default 5000)
- TRANSFER_OBJECT_BATCH_SIZE: rows per INSERT batch for object types (default 1000)
- TRANSFER_OBJECT_FETCH_SIZE: Oracle fetch size for object types (default 1000)
- TRANSFER_DEFAULT_ROW_ESTIMATE: estimate used when COUNT(*) fails (default 1000)
- TRANSFER_LOWERCASE_TARGET_NAMES: lower-case PostgreSQL identifiers (default true)
"""

from dataclasses import dataclass
import logging
import os

logger = logging.getLogger(__name__)

DEFAULT_COPY_BATCH_SIZE = 10000
DEFAULT_COPY_FETCH_SIZE = 5000
DEFAULT_OBJECT_BATCH_SIZE = 1000
DEFAULT_OBJECT_FETCH_SIZE = 1000
DEFAULT_ROW_ESTIMATE = 1000


def _int_from_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return max(1, int(raw))
    except ValueError:
        logger.warning(f"Ignoring non-integer value {raw!r} for {name}, using {default}")
        return default


def _bool_from_env(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ('true', '1', 'yes', 'on')


@dataclass(frozen=True)
class TransferConfig:
    """Tunable sizes shared by all transfer strategies."""

    copy_batch_size: int = DEFAULT_COPY_BATCH_SIZE
    copy_fetch_size: int = DEFAULT_COPY_FETCH_SIZE
    object_batch_size: int = DEFAULT_OBJECT_BATCH_SIZE
    object_fetch_size: int = DEFAULT_OBJECT_FETCH_SIZE
    default_row_estimate: int = DEFAULT_ROW_ESTIMATE
    lowercase_target_names: bool = True

    def __post_init__(self):
        for field_name in (
            'copy_batch_size',
            'copy_fetch_size',
            'object_batch_size',
            'object_fetch_size',
        ):
            if getattr(self, field_name) < 1:
                raise ValueError(f"{field_name} must be at least 1")

    @classmethod
    def from_env(cls) -> "TransferConfig":
        """Build a configuration from TRANSFER_* environment variables."""
        config = cls(
            copy_batch_size=_int_from_env('TRANSFER_COPY_BATCH_SIZE', DEFAULT_COPY_BATCH_SIZE),
            copy_fetch_size=_int_from_env('TRANSFER_COPY_FETCH_SIZE', DEFAULT_COPY_FETCH_SIZE),
            object_batch_size=_int_from_env('TRANSFER_OBJECT_BATCH_SIZE', DEFAULT_OBJECT_BATCH_SIZE),
            object_fetch_size=_int_from_env('TRANSFER_OBJECT_FETCH_SIZE', DEFAULT_OBJECT_FETCH_SIZE),
            default_row_estimate=_int_from_env('TRANSFER_DEFAULT_ROW_ESTIMATE', DEFAULT_ROW_ESTIMATE),
            lowercase_target_names=_bool_from_env('TRANSFER_LOWERCASE_TARGET_NAMES', True),
        )
        logger.debug(f"Loaded transfer configuration: {config}")
        return config
