"""Permission model for page workflow capabilities.

Permission string format: "resource:action"
Examples:
  - pages:edit
  - pages:publish
"""

from enum import Enum
from typing import NamedTuple


class Resource(str, Enum):
    """Resources that can be protected by permissions."""

    PAGES = "pages"          # CMS pages and their draft/live stages


class Action(str, Enum):
    """Actions that can be performed on resources."""

    EDIT = "edit"
    PUBLISH = "publish"


class Permission(NamedTuple):
    """A permission is a combination of resource and action."""
    resource: Resource
    action: Action

    def __str__(self) -> str:
        return f"{self.resource.value}:{self.action.value}"


PAGE_EDIT = Permission(Resource.PAGES, Action.EDIT)
PAGE_PUBLISH = Permission(Resource.PAGES, Action.PUBLISH)
