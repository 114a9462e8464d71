"""
Unit tests for identities.
"""

import pytest

from resource_writer import ExternalId, InstanceId, InternalId, identity_of


def test_variants_never_collide():
    assert InternalId(1) != ExternalId("1")
    assert len({InternalId(1), ExternalId("1"), InternalId(1), ExternalId("1")}) == 2


def test_identity_of():
    assert identity_of(5) == InternalId(5)
    assert identity_of("x") == ExternalId("x")
    assert identity_of({"space": "s", "externalId": "x"}) == InstanceId("s", "x")
    assert identity_of(None) is None
    assert identity_of(InternalId(5)) is not None


@pytest.mark.parametrize("value", [True, 1.5, ["x"], {"externalId": "x"}])
def test_identity_of_rejects(value):
    with pytest.raises(TypeError):
        identity_of(value)


def test_str():
    assert str(InstanceId("space", "x")) == "space:x"
    assert str(InternalId(3)) == "3"
