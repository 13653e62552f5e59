"""Rendering of the per-guild crown announcement template."""

from __future__ import annotations

import re
from typing import Mapping

MEMBER_PLACEHOLDER = "?member"
ROLE_PLACEHOLDER = "?role"

PLACEHOLDERS = (MEMBER_PLACEHOLDER, ROLE_PLACEHOLDER)

_PLACEHOLDER_PATTERN = re.compile("|".join(re.escape(token) for token in PLACEHOLDERS))


def render_template(template: str, values: Mapping[str, str]) -> str:
    """
    Substitute every placeholder occurrence in a single left-to-right pass.

    Substituted values are never rescanned, so a member display name that
    happens to contain ``?role`` stays literal. Placeholders missing from
    ``values`` are left untouched.
    """
    return _PLACEHOLDER_PATTERN.sub(lambda match: values.get(match.group(0), match.group(0)), template)


def render_grant_message(template: str | None, member_mention: str, role_mention: str) -> str | None:
    """
    Build the announcement sent after a successful rotation.

    Returns None when the guild has no template (or only whitespace), which
    means no announcement is sent.
    """
    if not template or not template.strip():
        return None
    return render_template(
        template,
        {MEMBER_PLACEHOLDER: member_mention, ROLE_PLACEHOLDER: role_mention},
    )


def describe_placeholders() -> str:
    """Short help text listing the supported placeholders."""
    return f"`{MEMBER_PLACEHOLDER}` is replaced by the new title holder, `{ROLE_PLACEHOLDER}` by the title role."
