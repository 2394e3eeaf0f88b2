"""Suites run against local rsdoctor builds."""
