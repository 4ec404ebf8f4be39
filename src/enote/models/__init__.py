"""Data models for the ENote backend."""
