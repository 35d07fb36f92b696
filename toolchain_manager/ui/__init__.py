"""UI module for the toolchain manager."""
