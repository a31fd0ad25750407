"""Capability checks for CMS members.

Site-wide permissions complement the per-page editor and publisher
assignments held on :class:`cmsworkflow.db.models.Page`.
"""

from .permissions import Permission, Resource, Action, PAGE_EDIT, PAGE_PUBLISH
from .checker import PermissionChecker, has_permission

__all__ = [
    "Permission",
    "Resource",
    "Action",
    "PAGE_EDIT",
    "PAGE_PUBLISH",
    "PermissionChecker",
    "has_permission",
]
