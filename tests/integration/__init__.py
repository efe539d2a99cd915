"""Integration test package.

These tests exercise the end-to-end behaviour of the Systematic Review
Pipeline.  They require network access to external APIs and may be
skipped or marked as slow in CI environments.
"""