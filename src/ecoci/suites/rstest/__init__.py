"""Suites run against local rstest builds."""
