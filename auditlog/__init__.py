"""Audit event logging and retention engine."""
