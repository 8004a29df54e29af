"""
Pure traversal helpers over a flat ComponentState array.

Dangling ``parent_uuid`` references are treated as roots: a node's former parent may
already have been removed from the array when these run.
"""

import dataclasses
from typing import Callable, Iterator, Optional

from .errors import InvalidMoveError, WriteError, WriteErrorKind
from .models import (
    BuiltInState,
    ComponentMetadata,
    ModuleMetadata,
    ModuleState,
    RepeaterState,
    StandardState,
)

# 外部樹狀元件使用的根節點標記
ROOT_ID = "tree-root-uuid"

VOID_ELEMENTS = frozenset({
    "area", "base", "br", "col", "embed", "hr", "img", "input",
    "link", "meta", "param", "source", "track", "wbr",
})


def _parent_key(state, known: dict) -> Optional[str]:
    parent = state.parent_uuid
    if parent is None or parent == ROOT_ID or parent == state.uuid or parent not in known:
        return None
    return parent


def get_children_map(tree: list) -> dict:
    """{parent uuid (None for roots): [children in array order]}."""
    known = {s.uuid: s for s in tree}
    children: dict = {}
    for state in tree:
        children.setdefault(_parent_key(state, known), []).append(state)
    return children


def get_root_components(tree: list) -> list:
    return get_children_map(tree).get(None, [])


def get_children(tree: list, uuid: str) -> list:
    return get_children_map(tree).get(uuid, [])


def get_descendants(tree: list, uuid: str) -> list:
    """All descendants of ``uuid``, depth-first in array order."""
    children = get_children_map(tree)
    result = []
    seen = {uuid}
    stack = list(reversed(children.get(uuid, [])))
    while stack:
        state = stack.pop()
        if state.uuid in seen:
            continue
        seen.add(state.uuid)
        result.append(state)
        stack.extend(reversed(children.get(state.uuid, [])))
    return result


def get_ancestors(tree: list, uuid: str) -> list:
    """Ancestor uuids, nearest first. Stops at a dangling parent or a cycle."""
    known = {s.uuid: s for s in tree}
    ancestors = []
    seen = {uuid}
    current = known.get(uuid)
    while current is not None:
        parent = _parent_key(current, known)
        if parent is None or parent in seen:
            break
        ancestors.append(parent)
        seen.add(parent)
        current = known[parent]
    return ancestors


def walk(tree: list) -> Iterator[tuple]:
    """Yield ``(depth, state)`` for every node reachable from a root."""
    children = get_children_map(tree)
    seen = set()

    def visit(state, depth):
        if state.uuid in seen:
            return
        seen.add(state.uuid)
        yield depth, state
        for child in children.get(state.uuid, []):
            yield from visit(child, depth + 1)

    for root in children.get(None, []):
        yield from visit(root, 0)


def get_highest_parent_uuid(selected_uuids: list, tree: list) -> Optional[str]:
    """Lowest common ancestor of the parents of the top-level selected nodes.

    A selected node is top-level when none of its ancestors is selected. ``None``
    means the selection hangs directly off the root.
    """
    known = {s.uuid: s for s in tree}
    selected = [u for u in selected_uuids if u in known]
    if not selected:
        return None
    selected_set = set(selected)
    top_level = [
        u for u in selected
        if not any(a in selected_set for a in get_ancestors(tree, u))
    ]

    chains = []
    for uuid in top_level:
        parent = _parent_key(known[uuid], known)
        if parent is None:
            return None
        chain = [parent] + get_ancestors(tree, parent)
        chains.append(list(reversed(chain)))

    common = None
    for level in zip(*chains):
        if any(u != level[0] for u in level):
            break
        common = level[0]
    return common


def can_accept_children(state, metadata=None) -> bool:
    """BuiltIn containers and container-capable components accept children."""
    if isinstance(state, BuiltInState):
        return state.component_name.lower() not in VOID_ELEMENTS
    if isinstance(state, (StandardState, ModuleState)):
        if isinstance(metadata, ModuleMetadata):
            return True
        if isinstance(metadata, ComponentMetadata):
            return metadata.accepts_children
    return False


def is_editable_component_state(state) -> bool:
    return isinstance(state, (BuiltInState, StandardState, ModuleState, RepeaterState))


def validate_component_tree(tree: list, filepath: Optional[str] = None) -> None:
    """Reject trees the writer cannot emit without orphaning or looping nodes."""

    def fail(message: str):
        raise WriteError(WriteErrorKind.COMPONENT_TREE_INCONSISTENT, message, filepath=filepath)

    known: dict = {}
    for state in tree:
        if state.uuid in known:
            fail(f"duplicate uuid '{state.uuid}'")
        known[state.uuid] = state

    for state in tree:
        parent = state.parent_uuid
        if parent is None or parent == ROOT_ID:
            continue
        if parent not in known:
            fail(f"'{state.uuid}' references missing parent '{parent}'")
        if isinstance(known[parent], RepeaterState):
            fail(f"'{state.uuid}' is parented to repeater '{parent}', which cannot have children")

    for state in tree:
        seen = {state.uuid}
        current = state
        while current.parent_uuid not in (None, ROOT_ID):
            if current.parent_uuid in seen:
                fail(f"'{state.uuid}' is its own ancestor")
            seen.add(current.parent_uuid)
            current = known[current.parent_uuid]


def move_components(
    tree: list,
    selected_uuids: list,
    destination_parent_uuid: Optional[str],
    destination_index: int,
    metadata_lookup: Optional[Callable] = None,
) -> list:
    """Reparent a (possibly non-contiguous) selection under a new parent.

    The top-level selected nodes, with their subtrees, become children of
    ``destination_parent_uuid`` at ``destination_index`` among its remaining
    children. Dropping the selection inside itself is rejected.
    ``metadata_lookup(metadata_uuid)`` is used to decide whether a component
    destination accepts children.
    """
    known = {s.uuid: s for s in tree}
    destination = None if destination_parent_uuid in (None, ROOT_ID) else destination_parent_uuid
    if destination is not None and destination not in known:
        raise InvalidMoveError(f"Drop target '{destination}' is not in the component tree")

    selected = [u for u in selected_uuids if u in known]
    if not selected:
        return list(tree)
    selected_set = set(selected)

    if destination is not None:
        if destination in selected_set or any(
            a in selected_set for a in get_ancestors(tree, destination)
        ):
            raise InvalidMoveError("Cannot drop a selection inside itself")
        target = known[destination]
        metadata = None
        if metadata_lookup and getattr(target, "metadata_uuid", None):
            metadata = metadata_lookup(target.metadata_uuid)
        if not can_accept_children(target, metadata):
            raise InvalidMoveError(f"Drop target '{destination}' cannot accept children")

    top_level = [
        s.uuid for s in tree
        if s.uuid in selected_set
        and not any(a in selected_set for a in get_ancestors(tree, s.uuid))
    ]
    moving = set(top_level)
    for uuid in top_level:
        moving.update(d.uuid for d in get_descendants(tree, uuid))

    moved_block = [
        dataclasses.replace(s, parent_uuid=destination) if s.uuid in top_level else s
        for s in tree if s.uuid in moving
    ]
    remaining = [s for s in tree if s.uuid not in moving]

    siblings = [s for s in remaining if _parent_key(s, known) == destination]
    index = max(destination_index, 0)
    if index < len(siblings):
        position = remaining.index(siblings[index])
    elif siblings:
        last = siblings[-1]
        subtree = {last.uuid} | {d.uuid for d in get_descendants(remaining, last.uuid)}
        position = max(i for i, s in enumerate(remaining) if s.uuid in subtree) + 1
    elif destination is None:
        position = len(remaining)
    else:
        position = next(i for i, s in enumerate(remaining) if s.uuid == destination) + 1

    return remaining[:position] + moved_block + remaining[position:]
