"""HTTP API for the clinical coding workflow."""
