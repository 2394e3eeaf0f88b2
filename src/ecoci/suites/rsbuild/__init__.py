"""Suites run against local rsbuild builds."""
