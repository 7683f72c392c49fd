"""Headless editor host: documents, tabs, selection and diagnostics."""

from . import diagnostics, document_model, workspace

__all__ = ["diagnostics", "document_model", "workspace"]
