"""HTTP surface for scripts, runs and reports."""
