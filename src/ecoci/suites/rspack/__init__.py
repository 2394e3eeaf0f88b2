"""Suites run against local rspack builds."""
