"""Command-line front end for nmt-harness."""
