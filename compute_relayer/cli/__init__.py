"""Command line interface for the compute relayer."""
