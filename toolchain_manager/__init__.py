"""Manage side-by-side IDE toolchain installations."""

__version__ = "0.1.0"
