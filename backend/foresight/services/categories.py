from __future__ import annotations

from typing import List, Optional, Tuple

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from foresight.errors import BusinessRuleError
from foresight.models import Category
from foresight.schemas.forecasts import CreateCategoryIn

logger = structlog.get_logger(__name__)


def get_category_by_name(db: Session, organization_id: int, name: str) -> Optional[Category]:
    """Case-insensitive lookup inside one organization."""
    return db.execute(
        select(Category).where(
            Category.organization_id == organization_id,
            func.lower(Category.name) == name.strip().lower(),
        )
    ).scalars().first()


def list_categories(db: Session, organization_id: int) -> List[Category]:
    return (
        db.execute(
            select(Category)
            .where(Category.organization_id == organization_id)
            .order_by(Category.name.asc())
        )
        .scalars()
        .all()
    )


def create_category(db: Session, organization_id: int, data: CreateCategoryIn) -> Category:
    name = data.name.strip()
    if get_category_by_name(db, organization_id, name) is not None:
        raise BusinessRuleError({"name": ["A category with this name already exists"]})
    category = Category(
        name=name,
        description=(data.description or "").strip() or None,
        color=data.color,
        organization_id=organization_id,
    )
    db.add(category)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise BusinessRuleError({"name": ["A category with this name already exists"]}) from exc
    db.refresh(category)
    logger.info("category.created", category_id=category.id, organization_id=organization_id)
    return category


def find_or_create_category(db: Session, organization_id: int, name: str) -> Tuple[Category, bool]:
    """Return ``(category, was_created)``; a concurrent insert of the same name is re-read."""
    name = name.strip()
    existing = get_category_by_name(db, organization_id, name)
    if existing is not None:
        return existing, False

    category = Category(name=name, organization_id=organization_id)
    db.add(category)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        existing = get_category_by_name(db, organization_id, name)
        if existing is None:
            raise
        return existing, False
    db.refresh(category)
    logger.info("category.created", category_id=category.id, organization_id=organization_id, via="lookup")
    return category, True
