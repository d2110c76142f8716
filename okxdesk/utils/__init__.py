"""Shared helpers with no exchange or UI dependencies."""
