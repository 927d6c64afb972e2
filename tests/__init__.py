"""
Tests package - test suite for the broker namespace manager.

Contains:
- unit/: Unit tests for individual components and sweep scenarios
- fakes.py: In-memory broker and notifier used in place of live services
"""
