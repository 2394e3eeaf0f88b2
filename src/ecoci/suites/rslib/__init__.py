"""Suites run against local rslib builds."""
