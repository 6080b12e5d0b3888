# tests/fixtures/__init__.py
"""Shared pytest fixtures for worldlog tests.

Available fixtures:
- activity_db / activity_store: fresh in-memory activity store per test
- entity_world: fake host factory and state capture for compaction tests
"""
