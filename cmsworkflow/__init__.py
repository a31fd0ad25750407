"""Content approval workflow engine for CMS pages."""

__version__ = "0.1.0"
