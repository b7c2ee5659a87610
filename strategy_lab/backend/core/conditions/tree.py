"""Immutable edits on condition trees, addressed by item id."""

from __future__ import annotations

from typing import Any, List, Optional, Sequence

from strategy_lab.backend.core.conditions.factories import new_condition_id
from strategy_lab.backend.core.conditions.models import ConditionItem, GroupCondition


def find_item(groups: Sequence[GroupCondition], item_id: str) -> Optional[ConditionItem]:
    for group in groups:
        if group.id == item_id:
            return group
        found = find_item([c for c in group.conditions if isinstance(c, GroupCondition)], item_id)
        if found is not None:
            return found
        for child in group.conditions:
            if not isinstance(child, GroupCondition) and child.id == item_id:
                return child
    return None


def _rebuild(group: GroupCondition, visit: Any) -> GroupCondition:
    children: List[ConditionItem] = []
    for child in group.conditions:
        result = visit(child)
        if result is None:
            continue
        if isinstance(result, GroupCondition):
            result = _rebuild(result, visit)
        children.append(result)
    return group.model_copy(update={"conditions": children})


def insert_item(groups: Sequence[GroupCondition], parent_id: str, item: ConditionItem) -> List[GroupCondition]:
    """Append `item` to the group `parent_id`; raises KeyError when the group does not exist."""

    inserted = False

    def add_to(group: GroupCondition) -> GroupCondition:
        nonlocal inserted
        if group.id == parent_id:
            inserted = True
            return group.model_copy(update={"conditions": [*group.conditions, item]})
        return group

    def visit(child: ConditionItem) -> ConditionItem:
        return add_to(child) if isinstance(child, GroupCondition) else child

    result = [_rebuild(add_to(group), visit) for group in groups]
    if not inserted:
        raise KeyError(parent_id)
    return result


def remove_item(groups: Sequence[GroupCondition], item_id: str) -> List[GroupCondition]:
    def visit(child: ConditionItem) -> Optional[ConditionItem]:
        return None if child.id == item_id else child

    return [_rebuild(group, visit) for group in groups if group.id != item_id]


def replace_item(groups: Sequence[GroupCondition], item_id: str, new_item: ConditionItem) -> List[GroupCondition]:
    def visit(child: ConditionItem) -> ConditionItem:
        return new_item if child.id == item_id else child

    result: List[GroupCondition] = []
    for group in groups:
        if group.id == item_id and isinstance(new_item, GroupCondition):
            result.append(new_item)
        else:
            result.append(_rebuild(group, visit))
    return result


def regenerate_ids(item: ConditionItem) -> ConditionItem:
    """Deep copy with fresh ids on every group and leaf, used when pasting conditions."""

    if isinstance(item, GroupCondition):
        return item.model_copy(
            update={"id": new_condition_id("group"), "conditions": [regenerate_ids(c) for c in item.conditions]}
        )
    return item.model_copy(update={"id": new_condition_id()}, deep=True)


__all__ = ["find_item", "insert_item", "remove_item", "replace_item", "regenerate_ids"]
