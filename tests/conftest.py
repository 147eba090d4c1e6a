# tests/conftest.py
"""Shared test fixtures and helpers.

Fixtures live in tests/fixtures and are registered here as plugins so every
test package sees them:

- tests.fixtures.ledger: in-memory SQL and dict ledgers, ledger wrappers
  that fail on demand
- tests.fixtures.plugins: collaborators with scripted failures and a
  work unit factory

Hypothesis Configuration:
- "ci" profile: Fast tests for CI (100 examples) - default
- "nightly" profile: Thorough tests (1000 examples)
- "debug" profile: Minimal tests with verbose output (10 examples)

Set profile via environment variable:
    HYPOTHESIS_PROFILE=nightly pytest tests/property/
"""

import os

from hypothesis import Phase, Verbosity, settings

pytest_plugins = [
    "tests.fixtures.ledger",
    "tests.fixtures.plugins",
]


# =============================================================================
# Hypothesis Profiles
# =============================================================================

settings.register_profile(
    "ci",
    max_examples=100,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,  # Disable deadline for CI (timing varies)
)

settings.register_profile(
    "nightly",
    max_examples=1000,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "ci"))
