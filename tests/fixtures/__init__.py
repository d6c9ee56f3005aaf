"""Shared test data for the studygraph test suite."""
