"""HTTP surface for triggering evaluations and reading run history."""
