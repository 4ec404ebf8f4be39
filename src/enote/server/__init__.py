"""Command server for the ENote backend."""
