"""Organization sub-teams and their membership.

A user holds at most one membership system-wide; deleting a group removes its
memberships and group-scoped predictions while members' individual predictions
stay untouched.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from foresight.core.security import RequestContext
from foresight.errors import BusinessRuleError, FORM_KEY, NotFoundError, PermissionDeniedError
from foresight.models import Group, GroupMember, Prediction, User
from foresight.schemas.groups import (
    CreateGroupIn,
    GroupDetailOut,
    GroupOut,
    GroupSummaryOut,
    MemberOut,
    UpdateGroupIn,
)

logger = structlog.get_logger(__name__)


def _org_group(db: Session, ctx: RequestContext, group_id: int, action: str) -> Group:
    group = db.get(Group, group_id)
    if group is None or group.organization_id != ctx.organization_id:
        raise PermissionDeniedError(f"You are not authorized to {action} this group.")
    return group


def _member_dict(member: GroupMember) -> Dict[str, Any]:
    return MemberOut(
        user_id=member.user_id,
        name=member.user.name if member.user else None,
        email=member.user.email if member.user else "",
        joined_at=member.joined_at,
    ).model_dump()


def _counts(db: Session, group_ids: List[int]) -> tuple[Dict[int, int], Dict[int, int]]:
    if not group_ids:
        return {}, {}
    members = dict(
        db.execute(
            select(GroupMember.group_id, func.count(GroupMember.id))
            .where(GroupMember.group_id.in_(group_ids))
            .group_by(GroupMember.group_id)
        ).all()
    )
    predictions = dict(
        db.execute(
            select(Prediction.group_id, func.count(Prediction.id))
            .where(Prediction.group_id.in_(group_ids))
            .group_by(Prediction.group_id)
        ).all()
    )
    return members, predictions


def group_summary(group: Group, member_count: int = 0, prediction_count: int = 0) -> Dict[str, Any]:
    return GroupSummaryOut(
        **GroupOut.model_validate(group).model_dump(),
        member_count=member_count,
        prediction_count=prediction_count,
    ).model_dump()


def group_detail(db: Session, group: Group) -> Dict[str, Any]:
    members, predictions = _counts(db, [group.id])
    return GroupDetailOut(
        **group_summary(group, members.get(group.id, 0), predictions.get(group.id, 0)),
        members=[_member_dict(m) for m in group.members],
    ).model_dump()


def create_group(
    db: Session,
    ctx: RequestContext,
    data: CreateGroupIn,
    organization_id: Optional[int] = None,
) -> Group:
    """Create a group inside the requester's organization."""
    if ctx.organization_id is None:
        raise PermissionDeniedError("Requester does not belong to an organization.")
    target_org = organization_id if organization_id is not None else ctx.organization_id
    if target_org != ctx.organization_id:
        raise PermissionDeniedError("You can only create groups inside your organization.")

    group = Group(name=data.name, description=data.description, organization_id=target_org)
    db.add(group)
    db.commit()
    db.refresh(group)
    logger.info("group.created", group_id=group.id, organization_id=target_org, user_id=ctx.user_id)
    return group


def update_group(db: Session, ctx: RequestContext, group_id: int, data: UpdateGroupIn) -> Group:
    group = _org_group(db, ctx, group_id, "update")
    fields = data.model_dump(exclude_unset=True)
    if fields.get("name") is not None:
        group.name = fields["name"]
    if "description" in fields:
        group.description = fields["description"]
    db.commit()
    db.refresh(group)
    logger.info("group.updated", group_id=group.id, fields=sorted(fields))
    return group


def delete_group(db: Session, ctx: RequestContext, group_id: int) -> None:
    group = _org_group(db, ctx, group_id, "delete")
    db.delete(group)
    db.commit()
    logger.info("group.deleted", group_id=group_id, organization_id=ctx.organization_id)


def get_group(db: Session, ctx: RequestContext, group_id: int) -> Group:
    group = db.get(Group, group_id)
    if group is None or group.organization_id != ctx.organization_id:
        raise NotFoundError("Group not found.")
    return group


def list_organization_groups(db: Session, organization_id: int) -> List[Dict[str, Any]]:
    groups = (
        db.execute(
            select(Group)
            .where(Group.organization_id == organization_id)
            .order_by(Group.created_at.desc(), Group.id.desc())
        )
        .scalars()
        .all()
    )
    members, predictions = _counts(db, [g.id for g in groups])
    return [group_summary(g, members.get(g.id, 0), predictions.get(g.id, 0)) for g in groups]


def get_user_group(db: Session, user_id: int, organization_id: int) -> Optional[Group]:
    return db.execute(
        select(Group)
        .join(GroupMember, GroupMember.group_id == Group.id)
        .where(GroupMember.user_id == user_id, Group.organization_id == organization_id)
    ).scalar_one_or_none()


def get_available_users(db: Session, organization_id: int) -> List[User]:
    """Organization users that are not in any group yet."""
    return (
        db.execute(
            select(User)
            .outerjoin(GroupMember, GroupMember.user_id == User.id)
            .where(User.organization_id == organization_id, GroupMember.id.is_(None))
            .order_by(User.name.asc(), User.id.asc())
        )
        .scalars()
        .all()
    )


def add_group_member(db: Session, ctx: RequestContext, group_id: int, user_id: int) -> GroupMember:
    group = _org_group(db, ctx, group_id, "modify")
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found.")
    if user.organization_id is None or user.organization_id != group.organization_id:
        raise BusinessRuleError({FORM_KEY: ["User must belong to the same organization as the group."]})

    already = db.execute(select(GroupMember.id).where(GroupMember.user_id == user_id)).first()
    if already is not None:
        raise BusinessRuleError({FORM_KEY: ["User already belongs to a group."]})

    member = GroupMember(group_id=group.id, user_id=user.id)
    db.add(member)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise BusinessRuleError({FORM_KEY: ["User already belongs to a group."]}) from exc
    db.refresh(member)
    logger.info("group.member_added", group_id=group.id, member_id=user.id)
    return member


def remove_group_member(db: Session, ctx: RequestContext, group_id: int, user_id: int) -> None:
    _org_group(db, ctx, group_id, "modify")
    member = db.execute(
        select(GroupMember).where(GroupMember.group_id == group_id, GroupMember.user_id == user_id)
    ).scalar_one_or_none()
    if member is None:
        raise NotFoundError("User is not a member of this group.")
    db.delete(member)
    db.commit()
    logger.info("group.member_removed", group_id=group_id, member_id=user_id)


def validate_group_access(db: Session, group_id: int, user_id: int) -> bool:
    """True when the user is a current member of the group."""
    row = db.execute(
        select(GroupMember.id).where(GroupMember.group_id == group_id, GroupMember.user_id == user_id)
    ).first()
    return row is not None


def member_out(member: GroupMember) -> Dict[str, Any]:
    return _member_dict(member)
