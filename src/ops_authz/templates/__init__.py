"""Bundled permission matrix seeds for ops-authz."""
from __future__ import annotations

from ops_authz.templates.default_matrix import (
    TEMPLATES,
    get_template,
    list_templates,
    write_template,
)

__all__ = [
    "TEMPLATES",
    "get_template",
    "list_templates",
    "write_template",
]
