"""Service layer for the ENote backend."""
