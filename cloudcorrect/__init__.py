"""CloudCorrect — continuous verification of cloud architecture invariants."""
