"""Built-in YAML matrix seeds.

Two seeds are bundled:

- ``default``: the operations platform catalog (admin, team_leader and
  employee over users, teams, schedules, entries, evaluations, reports and
  settings) with its standard grants and a handful of sample users.
- ``minimal``: one administrator role holding ``settings``/``update`` and
  one member role, a starting point for a custom catalog.

Example
-------
>>> from ops_authz.templates.default_matrix import get_template, list_templates
>>> list_templates()
['default', 'minimal']
>>> get_template("default").startswith("# Operations platform")
True
"""
from __future__ import annotations

from pathlib import Path

# ---------------------------------------------------------------------------
# Template definitions
# ---------------------------------------------------------------------------

_DEFAULT = """\
# Operations platform permission matrix
# --------------------------------------
# Roles are ordered by hierarchy_level; the highest level is the top role
# that may still edit approved schedules.

version: "1.0"

roles:
  - {id: 1, name: admin, hierarchy_level: 3, display_name: Administrator}
  - {id: 2, name: team_leader, hierarchy_level: 2, display_name: Team leader}
  - {id: 3, name: employee, hierarchy_level: 1, display_name: Employee}

resources:
  - {id: 1, name: users, display_name: Users}
  - {id: 2, name: teams, display_name: Teams}
  - {id: 3, name: schedules, display_name: Schedules}
  - {id: 4, name: entries, display_name: Data entries}
  - {id: 5, name: evaluations, display_name: Evaluations}
  - {id: 6, name: reports, display_name: Reports}
  - {id: 7, name: settings, display_name: Settings}

actions:
  - {id: 1, name: create}
  - {id: 2, name: read}
  - {id: 3, name: update}
  - {id: 4, name: delete}
  - {id: 5, name: approve}
  - {id: 6, name: reject}
  - {id: 7, name: evaluate}

permissions:
  # admin
  - {role: admin, resource: users, action: create, scope: all}
  - {role: admin, resource: users, action: read, scope: all}
  - {role: admin, resource: users, action: update, scope: all}
  - {role: admin, resource: users, action: delete, scope: all}
  - {role: admin, resource: teams, action: create, scope: all}
  - {role: admin, resource: teams, action: read, scope: all}
  - {role: admin, resource: teams, action: update, scope: all}
  - {role: admin, resource: teams, action: delete, scope: all}
  - {role: admin, resource: schedules, action: create, scope: all}
  - {role: admin, resource: schedules, action: read, scope: all}
  - {role: admin, resource: schedules, action: update, scope: all}
  - {role: admin, resource: schedules, action: delete, scope: all}
  - {role: admin, resource: schedules, action: approve, scope: all}
  - {role: admin, resource: schedules, action: reject, scope: all}
  - {role: admin, resource: entries, action: create, scope: all}
  - {role: admin, resource: entries, action: read, scope: all}
  - {role: admin, resource: entries, action: update, scope: all}
  - {role: admin, resource: entries, action: delete, scope: all}
  - {role: admin, resource: evaluations, action: create, scope: all}
  - {role: admin, resource: evaluations, action: read, scope: all}
  - {role: admin, resource: evaluations, action: update, scope: all}
  - {role: admin, resource: evaluations, action: delete, scope: all}
  - {role: admin, resource: reports, action: read, scope: all}
  - {role: admin, resource: settings, action: create, scope: all}
  - {role: admin, resource: settings, action: read, scope: all}
  - {role: admin, resource: settings, action: update, scope: all}
  - {role: admin, resource: settings, action: delete, scope: all}

  # team_leader
  - {role: team_leader, resource: users, action: read, scope: team}
  - {role: team_leader, resource: teams, action: read, scope: own}
  - {role: team_leader, resource: schedules, action: create, scope: team}
  - {role: team_leader, resource: schedules, action: read, scope: team}
  - {role: team_leader, resource: schedules, action: update, scope: team}
  - {role: team_leader, resource: entries, action: read, scope: team}
  - {role: team_leader, resource: evaluations, action: create, scope: team}
  - {role: team_leader, resource: evaluations, action: read, scope: team}
  - {role: team_leader, resource: evaluations, action: update, scope: team}
  - {role: team_leader, resource: reports, action: read, scope: team}

  # employee
  - {role: employee, resource: users, action: read, scope: own}
  - {role: employee, resource: users, action: update, scope: own}
  - {role: employee, resource: teams, action: read, scope: own}
  - {role: employee, resource: schedules, action: create, scope: own}
  - {role: employee, resource: schedules, action: read, scope: own}
  - {role: employee, resource: schedules, action: update, scope: own}
  - {role: employee, resource: entries, action: create, scope: own}
  - {role: employee, resource: entries, action: read, scope: own}
  - {role: employee, resource: entries, action: update, scope: own}
  - {role: employee, resource: evaluations, action: read, scope: own}
  - {role: employee, resource: reports, action: read, scope: own}

users:
  - {id: 1, role: admin}
  - {id: 2, role: team_leader, team_id: 10}
  - {id: 3, role: employee, team_id: 10}
  - {id: 4, role: employee, team_id: 20}
  - {id: 5, role: employee}
"""

_MINIMAL = """\
# Minimal permission matrix
# --------------------------
# One administrator that may edit the matrix and one member role with no
# grants.  Extend the catalog and permissions for your own resources.

version: "1.0"

roles:
  - {id: 1, name: administrator, hierarchy_level: 2}
  - {id: 2, name: member, hierarchy_level: 1}

resources:
  - {id: 1, name: settings}

actions:
  - {id: 1, name: read}
  - {id: 2, name: update}

permissions:
  - {role: administrator, resource: settings, action: read, scope: all}
  - {role: administrator, resource: settings, action: update, scope: all}
  - {role: member, resource: settings, action: read, scope: all, granted: false}

users:
  - {id: 1, role: administrator}
"""

TEMPLATES: dict[str, str] = {
    "default": _DEFAULT,
    "minimal": _MINIMAL,
}

# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def get_template(name: str) -> str:
    """Return the YAML string for a built-in matrix seed.

    Raises
    ------
    KeyError
        If no template with the given name is registered.
    """
    if name not in TEMPLATES:
        available = ", ".join(sorted(TEMPLATES))
        raise KeyError(f"Template {name!r} not found. Available templates: {available}.")
    return TEMPLATES[name]


def list_templates() -> list[str]:
    """Return a sorted list of all built-in template names."""
    return sorted(TEMPLATES)


def write_template(name: str, output_path: Path) -> Path:
    """Write a built-in matrix seed to ``output_path`` and return its absolute path.

    Parent directories are created automatically if they do not exist.
    """
    content = get_template(name)
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(content, encoding="utf-8")
    return output_path.resolve()
