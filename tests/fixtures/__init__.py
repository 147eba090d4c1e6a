"""Shared test fixtures: ledgers, collaborators and work unit factories."""
