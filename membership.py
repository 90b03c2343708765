"""
Project membership checks.

Pure functions over a project document. The admin counts as a participant even
when it is missing from `members`.
"""
from typing import Any, Dict, List


def _ids(values) -> List[str]:
    return [str(v) for v in (values or []) if v]


def is_admin(project: Dict[str, Any], user_id) -> bool:
    admin = project.get("admin")
    return bool(admin) and str(admin) == str(user_id)


def is_member(project: Dict[str, Any], user_id) -> bool:
    return str(user_id) in _ids(project.get("members"))


def is_participant(project: Dict[str, Any], user_id) -> bool:
    return is_admin(project, user_id) or is_member(project, user_id)


def participants(project: Dict[str, Any]) -> List[str]:
    """Admin first, then members, without duplicates."""
    seen = []
    for uid in _ids([project.get("admin")]) + _ids(project.get("members")):
        if uid not in seen:
            seen.append(uid)
    return seen
