"""core/mixer/membership.py — Which groups a channel belongs to.

Resolution rules for one bus context:

    local   aux only — the single enabled section holding the channel (custom or
            the residual `others`; the pinned section has no master)
    global  every enabled global group holding the channel
    view    main/gain only — the implicit whole-view master

Pure functions over a :class:`~core.mixer.layout.LayoutView`; cheap enough to
call on every fader event.
"""

from __future__ import annotations

from core.mixer.layout import VIEW_GROUP_ID, VIEW_GROUP_MODE, LayoutView
from core.mixer.types import GroupKey, GroupKind, GroupRef, GroupTarget


def resolve(channel_id: int, layout: LayoutView) -> list[GroupRef]:
    """Return every group ``channel_id`` currently belongs to in ``layout.context``."""
    ctx = layout.context
    refs: list[GroupRef] = []

    if ctx.is_aux:
        for section in layout.sections:
            if section.is_pinned or not section.enabled:
                continue
            if channel_id in section.channel_ids:
                refs.append(
                    GroupRef(
                        key=GroupKey.for_context(ctx, GroupKind.LOCAL, section.id),
                        master_db=section.offset_db,
                        mode=section.mode,
                    )
                )
                break

    for group in layout.global_groups:
        if channel_id not in group.channel_ids:
            continue
        settings = layout.settings_for(group.id)
        if not settings.enabled:
            continue
        refs.append(
            GroupRef(
                key=GroupKey.for_context(ctx, GroupKind.GLOBAL, group.id),
                master_db=settings.offset_db,
                mode=settings.mode,
            )
        )

    if ctx.bus_type.has_view_master and channel_id in layout.channel_ids:
        refs.append(
            GroupRef(
                key=GroupKey.for_context(ctx, GroupKind.VIEW, VIEW_GROUP_ID),
                master_db=layout.view_settings.offset_db,
                mode=VIEW_GROUP_MODE,
            )
        )

    return refs


def lookup(kind: GroupKind, group_id: str, layout: LayoutView) -> GroupTarget | None:
    """Return the members, master and policy of one group, or None if it does not exist.

    Local sections only exist on aux contexts and the view master only on
    main/gain. The pinned section has no master of its own and resolves to
    None. Global groups resolve regardless of their enabled flag so an
    operator can still move a hidden group's master.
    """
    ctx = layout.context
    key = GroupKey.for_context(ctx, kind, group_id)

    if kind is GroupKind.LOCAL:
        if not ctx.is_aux:
            return None
        section = layout.section(group_id)
        if section is None or section.is_pinned:
            return None
        return GroupTarget(key, section.channel_ids, section.offset_db, section.mode)

    if kind is GroupKind.GLOBAL:
        group = layout.global_group(group_id)
        if group is None:
            return None
        settings = layout.settings_for(group_id)
        return GroupTarget(key, group.channel_ids, settings.offset_db, settings.mode)

    if not ctx.bus_type.has_view_master or group_id != VIEW_GROUP_ID:
        return None
    return GroupTarget(key, layout.channel_ids, layout.view_settings.offset_db, VIEW_GROUP_MODE)


def all_targets(layout: LayoutView) -> list[GroupTarget]:
    """Every group with a master in this context (used to prime ratios on load)."""
    ctx = layout.context
    targets: list[GroupTarget] = []
    if ctx.is_aux:
        for section in layout.sections:
            if section.is_pinned or not section.enabled:
                continue
            target = lookup(GroupKind.LOCAL, section.id, layout)
            if target is not None:
                targets.append(target)
    for group in layout.global_groups:
        if layout.settings_for(group.id).enabled:
            target = lookup(GroupKind.GLOBAL, group.id, layout)
            if target is not None:
                targets.append(target)
    if ctx.bus_type.has_view_master:
        target = lookup(GroupKind.VIEW, VIEW_GROUP_ID, layout)
        if target is not None:
            targets.append(target)
    return targets
