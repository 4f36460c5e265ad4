"""Readers turning result files of various formats into check annotations."""
