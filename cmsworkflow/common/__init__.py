"""Shared helpers for cmsworkflow."""
