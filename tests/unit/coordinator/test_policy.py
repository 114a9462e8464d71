"""
Unit tests for RetryPolicy flags and the backoff curve.
"""

from resource_writer import RetryPolicy
from resource_writer.utils import calculate_retry_delay


def test_policy_flags():
    """Each policy retries exactly one class of failure."""
    assert RetryPolicy.ON_ERROR.retries_errors and not RetryPolicy.ON_ERROR.retries_fatal
    assert RetryPolicy.ON_FATAL.retries_fatal and not RetryPolicy.ON_FATAL.retries_errors
    assert not RetryPolicy.NONE.retries_errors and not RetryPolicy.NONE.retries_fatal
    assert {p for p in RetryPolicy if p.keeps_duplicates} == {
        RetryPolicy.ON_ERROR_KEEP_DUPLICATES,
        RetryPolicy.ON_FATAL_KEEP_DUPLICATES,
    }


def test_policy_from_string():
    assert RetryPolicy("on_fatal_keep_duplicates") is RetryPolicy.ON_FATAL_KEEP_DUPLICATES


def test_backoff_curve_monotonic_with_cap():
    """Test exponential backoff with max cap."""
    vals = [calculate_retry_delay(i, base_delay=0.05, max_delay=0.2, jitter=False) for i in range(6)]
    # 0.05, 0.1, 0.2, 0.2, ...
    assert vals[:3] == [0.05, 0.1, 0.2]
    assert all(v <= 0.2 for v in vals)


def test_backoff_with_jitter():
    """Jitter stays within 25% of the calculated delay."""
    vals = [calculate_retry_delay(2, base_delay=0.1) for _ in range(20)]
    assert all(0.3 <= v <= 0.5 for v in vals)
