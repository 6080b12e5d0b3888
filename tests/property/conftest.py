# tests/property/conftest.py
"""Shared Hypothesis strategies for property tests.

Attribute trees mimic captured entity state: string keys, JSON-safe
scalars, nested compounds and lists of compounds.
"""

from __future__ import annotations

from hypothesis import strategies as st

# Keys drawn from a small alphabet so live and baseline trees overlap often
attribute_keys = st.sampled_from(
    [
        "Age",
        "Air",
        "Attributes",
        "Brain",
        "CustomName",
        "DeathTime",
        "Fire",
        "Health",
        "HurtTime",
        "Motion",
        "OnGround",
        "Owner",
        "Tags",
        "WorldUUIDMost",
    ]
)

scalars = st.one_of(
    st.none(),
    st.booleans(),
    st.integers(min_value=-(2**63), max_value=2**63 - 1),
    st.floats(allow_nan=False, allow_infinity=False),
    st.text(max_size=12),
)

attribute_values = st.recursive(
    scalars,
    lambda children: st.one_of(
        st.lists(children, max_size=4),
        st.dictionaries(attribute_keys, children, max_size=4),
    ),
    max_leaves=20,
)

attribute_trees = st.dictionaries(attribute_keys, attribute_values, max_size=8)
