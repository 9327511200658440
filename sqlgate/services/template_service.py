"""Template service — reusable Jinja2 SQL templates stored with the records."""

from __future__ import annotations

import json
import logging

import jinja2
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from sqlgate.errors import NotFoundError, ValidationError
from sqlgate.models.template import QueryTemplate
from sqlgate.models.user import User
from sqlgate.schemas.template import QueryTemplateCreate

logger = logging.getLogger(__name__)

_env = jinja2.Environment(undefined=jinja2.StrictUndefined, autoescape=False)


async def list_templates(
    db: AsyncSession, user_id: str, category: str | None = None
) -> list[QueryTemplate]:
    """The caller's own templates plus every public one."""
    stmt = (
        select(QueryTemplate)
        .where(or_(QueryTemplate.created_by == user_id, QueryTemplate.is_public.is_(True)))
        .order_by(QueryTemplate.category, QueryTemplate.name)
    )
    if category:
        stmt = stmt.where(QueryTemplate.category == category)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_template(db: AsyncSession, template_id: str, user_id: str) -> QueryTemplate:
    tpl = await db.get(QueryTemplate, template_id)
    # Private templates are invisible to everyone but their author.
    if not tpl or (not tpl.is_public and tpl.created_by != user_id):
        raise NotFoundError(f"Template '{template_id}' not found")
    return tpl


async def create_template(db: AsyncSession, data: QueryTemplateCreate, creator: User) -> QueryTemplate:
    try:
        _env.parse(data.sql_template)
    except jinja2.TemplateSyntaxError as exc:
        raise ValidationError(f"Template syntax error on line {exc.lineno}: {exc.message}") from exc

    tpl = QueryTemplate(
        name=data.name,
        description=data.description,
        sql_template=data.sql_template,
        category=data.category,
        parameters=json.dumps(data.parameters),
        created_by=creator.id,
        is_public=data.is_public,
    )
    db.add(tpl)
    await db.commit()
    await db.refresh(tpl)
    logger.info("Template %s (%s) created by %s", tpl.id, tpl.name, creator.username)
    return tpl


async def delete_template(db: AsyncSession, template_id: str, caller: User) -> None:
    tpl = await get_template(db, template_id, caller.id)
    if tpl.created_by != caller.id:
        raise NotFoundError(f"Template '{template_id}' not found")
    await db.delete(tpl)
    await db.commit()


def render_template(template_content: str, variables: dict) -> str:
    """Render a Jinja2 template string; unknown variables are an error."""
    try:
        return _env.from_string(template_content).render(**variables)
    except jinja2.UndefinedError as exc:
        raise ValidationError(f"Missing template variable: {exc.message}") from exc
    except jinja2.TemplateSyntaxError as exc:
        raise ValidationError(f"Template syntax error on line {exc.lineno}: {exc.message}") from exc
