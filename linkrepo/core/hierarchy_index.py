"""
Hierarchy assembly

This module turns the three flat row lists fetched from the backend
into the nested in-memory tree used by the rest of the application:

1. ``groups`` rows become ``GroupNode`` instances, in fetch order.
2. ``subgroups`` rows are nested under the group whose id matches
   their ``group_id``.
3. ``files`` rows are nested under the subgroup whose id matches their
   ``subgroup_id``.

The backend returns each table ordered by ``created_at`` ascending, and
that order is preserved for the children of every node; no client-side
sorting happens here.

Rows whose parent is not present in the fetched data are orphans. They
are dropped from the assembled tree so that every child in the tree
resolves to a loaded parent. Rows that cannot be decoded at all are
skipped with a warning.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping

from linkrepo.core.models import (
    FileEntry,
    Group,
    GroupNode,
    Hierarchy,
    Subgroup,
    SubgroupNode,
)

log = logging.getLogger(__name__)


def build_hierarchy(
    group_rows: Iterable[Mapping[str, Any]],
    subgroup_rows: Iterable[Mapping[str, Any]],
    file_rows: Iterable[Mapping[str, Any]],
) -> Hierarchy:
    """
    Assemble the Group → Subgroup → FileEntry tree from backend rows.

    Every node in the result has ``expanded = True``.

    Args:
        group_rows: Rows of the ``groups`` table, creation order.
        subgroup_rows: Rows of the ``subgroups`` table, creation order.
        file_rows: Rows of the ``files`` table, creation order.

    Returns:
        The list of top-level ``GroupNode`` objects.
    """
    groups: Hierarchy = []
    groups_by_id: Dict[str, GroupNode] = {}
    for row in group_rows or []:
        try:
            group = Group.from_row(row)
        except (KeyError, TypeError) as exc:
            log.warning("Skipping malformed group row %r (error: %s)", row, exc)
            continue
        node = GroupNode(record=group, subgroups=[], expanded=True)
        groups.append(node)
        groups_by_id[group.id] = node

    subgroups_by_id: Dict[str, SubgroupNode] = {}
    for row in subgroup_rows or []:
        try:
            subgroup = Subgroup.from_row(row)
        except (KeyError, TypeError) as exc:
            log.warning("Skipping malformed subgroup row %r (error: %s)", row, exc)
            continue
        parent = groups_by_id.get(subgroup.group_id)
        if parent is None:
            log.debug(
                "Dropping orphaned subgroup %s (group %s not loaded)",
                subgroup.id,
                subgroup.group_id,
            )
            continue
        node = SubgroupNode(record=subgroup, files=[], expanded=True)
        parent.subgroups.append(node)
        subgroups_by_id[subgroup.id] = node

    for row in file_rows or []:
        try:
            entry = FileEntry.from_row(row)
        except (KeyError, TypeError) as exc:
            log.warning("Skipping malformed file row %r (error: %s)", row, exc)
            continue
        parent = subgroups_by_id.get(entry.subgroup_id)
        if parent is None:
            log.debug(
                "Dropping orphaned file %s (subgroup %s not loaded)",
                entry.id,
                entry.subgroup_id,
            )
            continue
        parent.files.append(entry)

    return groups


def count_nodes(groups: Hierarchy) -> Dict[str, int]:
    """Return the number of groups, subgroups and files in ``groups``."""
    subgroups: List[SubgroupNode] = [s for g in groups for s in g.subgroups]
    return {
        "groups": len(groups),
        "subgroups": len(subgroups),
        "files": sum(len(s.files) for s in subgroups),
    }
