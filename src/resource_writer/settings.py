from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from .policy import RetryPolicy, SanitationMode


class WriterSettings(BaseSettings):
    """Chunking, throttling and retry defaults for all bulk operations.

    Read from the environment with the ``RW_`` prefix, e.g.
    ``RW_TIMESERIES_THROTTLE=5`` or ``RW_RETRY_POLICY=on_fatal``.
    """

    model_config = SettingsConfigDict(env_prefix="RW_", env_file=".env", extra="ignore")

    timeseries_chunk_size: int = 1000
    timeseries_throttle: int = 20

    datapoints_key_chunk_size: int = 10_000
    datapoints_chunk_size: int = 100_000
    datapoints_throttle: int = 10
    datapoints_delete_chunk_size: int = 10_000
    datapoints_list_chunk_size: int = 100

    assets_chunk_size: int = 1000
    assets_throttle: int = 20

    events_chunk_size: int = 1000
    events_throttle: int = 20

    sequences_chunk_size: int = 1000
    sequences_throttle: int = 10
    sequence_rows_chunk_size: int = 10_000

    retry_policy: RetryPolicy = RetryPolicy.ON_ERROR
    sanitation_mode: SanitationMode = SanitationMode.CLEAN

    fatal_retry_delay: float = 1.0
    max_attempts: int = 10
    duplicate_retry_limit: int = 5
    duplicate_base_delay: float = 0.1

    delete_verify_attempts: int = 5
    delete_verify_delay: float = 0.5

    non_finite_replacement: Optional[float] = None


@lru_cache()
def get_settings() -> WriterSettings:
    return WriterSettings()
