"""Suites run against local rspress builds."""
