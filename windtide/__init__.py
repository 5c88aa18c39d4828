"""Wind and tide forecast dashboard for two fixed beaches."""
