# tests/property/test_identity_properties.py
"""Property-based tests for run identity keys.

The identity key decides whether start() runs something new or returns an
existing execution, so it must depend only on the name and the parameter
values, never on how the mapping was built.
"""

from __future__ import annotations

import random

from hypothesis import assume, given
from hypothesis import strategies as st

from chunkwise.core.canonical import identity_key, make_identity

json_scalars = st.one_of(
    st.none(),
    st.booleans(),
    st.integers(min_value=-(2**53), max_value=2**53),
    st.floats(allow_nan=False, allow_infinity=False),
    st.text(max_size=20),
)
json_values = st.recursive(
    json_scalars,
    lambda children: st.lists(children, max_size=4) | st.dictionaries(st.text(max_size=8), children, max_size=4),
    max_leaves=12,
)
params_strategy = st.dictionaries(st.text(min_size=1, max_size=12), json_values, max_size=6)
names = st.text(min_size=1, max_size=30)


class TestIdentityKeyProperties:
    @given(name=names, params=params_strategy, seed=st.integers())
    def test_insertion_order_does_not_matter(self, name: str, params: dict[str, object], seed: int) -> None:
        """Property: the same items in any order give the same key."""
        items = list(params.items())
        random.Random(seed).shuffle(items)

        assert identity_key(name, dict(items)) == identity_key(name, params)

    @given(name=names, params=params_strategy)
    def test_key_is_stable_hex_digest(self, name: str, params: dict[str, object]) -> None:
        """Property: keys are 64-char lowercase hex and repeatable."""
        key = identity_key(name, params)

        assert len(key) == 64
        assert all(c in "0123456789abcdef" for c in key)
        assert make_identity(name, params).key == key

    @given(first=names, second=names, params=params_strategy)
    def test_name_is_part_of_identity(self, first: str, second: str, params: dict[str, object]) -> None:
        """Property: different work unit names never share a key."""
        assume(first != second)

        assert identity_key(first, params) != identity_key(second, params)

    @given(name=names, params=params_strategy, extra=st.text(min_size=1, max_size=12))
    def test_adding_a_param_changes_the_key(self, name: str, params: dict[str, object], extra: str) -> None:
        """Property: a parameter that was absent changes the identity."""
        assume(extra not in params)

        assert identity_key(name, {**params, extra: 1}) != identity_key(name, params)
