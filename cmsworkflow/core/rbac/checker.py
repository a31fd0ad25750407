"""Site-wide permission checks for CMS members."""

from typing import Iterable, Iterator, Union

from .permissions import Permission


def granting_permissions(permission: Union[str, Permission]) -> Iterator[str]:
    """Permission strings that grant ``permission``, most specific first.

    ``pages:publish`` is granted by itself, by ``pages:*`` and by ``*:*``.
    """
    perm_str = str(permission)
    yield perm_str
    if ":" in perm_str:
        yield f"{perm_str.split(':', 1)[0]}:*"
        yield "*:*"


class PermissionChecker:
    """Answers permission questions for one member's permission list."""

    def __init__(self, permissions: Iterable[str]):
        self.permissions = frozenset(permissions)

    @classmethod
    def for_member(cls, member) -> "PermissionChecker":
        return cls(getattr(member, "permissions", None) or [])

    def has_permission(self, permission: Union[str, Permission]) -> bool:
        return any(p in self.permissions for p in granting_permissions(permission))


def has_permission(member, permission: Union[str, Permission]) -> bool:
    """
    Check a member's site-wide permissions.

    Per-page editor and publisher assignments are checked by the page itself;
    see :meth:`cmsworkflow.db.models.Page.can_publish`.

    Args:
        member: Member with a ``permissions`` list, or None
        permission: Permission string or Permission object

    Returns:
        True if the member holds the permission or a wildcard covering it
    """
    if member is None:
        return False
    return PermissionChecker.for_member(member).has_permission(permission)
