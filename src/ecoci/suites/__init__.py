"""Precoded downstream suites, one subpackage per stack."""
