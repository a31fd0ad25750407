"""Persistence layer for cmsworkflow."""
