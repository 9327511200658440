"""Query template endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from sqlgate.database import get_db
from sqlgate.deps import get_current_user
from sqlgate.models.user import User
from sqlgate.schemas.template import (
    QueryTemplateCreate,
    QueryTemplateResponse,
    TemplateRender,
    TemplateRenderResponse,
)
from sqlgate.services import template_service

router = APIRouter()


@router.get("/", response_model=list[QueryTemplateResponse])
async def list_templates(
    category: str | None = None,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return await template_service.list_templates(db, user.id, category=category)


@router.post("/", response_model=QueryTemplateResponse, status_code=201)
async def create_template(
    data: QueryTemplateCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return await template_service.create_template(db, data, user)


@router.get("/{template_id}", response_model=QueryTemplateResponse)
async def get_template(
    template_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return await template_service.get_template(db, template_id, user.id)


@router.delete("/{template_id}", status_code=204)
async def delete_template(
    template_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    await template_service.delete_template(db, template_id, user)


@router.post("/{template_id}/render", response_model=TemplateRenderResponse)
async def render_template(
    template_id: str,
    body: TemplateRender,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    tpl = await template_service.get_template(db, template_id, user.id)
    rendered = template_service.render_template(tpl.sql_template, body.variables)
    return TemplateRenderResponse(template_id=tpl.id, rendered=rendered)
