"""
Invitation mail template endpoints (admin only).
"""
from typing import Optional
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from ballotbox.core.deps import get_current_user
from ballotbox.db.base import get_db
from ballotbox.models.user import User
from ballotbox.schemas.mail_template import (
    MailTemplateCreate,
    MailTemplateListResponse,
    MailTemplateResponse,
    MailTemplateUpdate,
)
from ballotbox.services import mail_templates as template_service

router = APIRouter()


@router.get("", response_model=MailTemplateListResponse)
async def list_templates(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    templates = await template_service.list_templates(db, current_user)
    return MailTemplateListResponse(
        items=[MailTemplateResponse.model_validate(t) for t in templates],
        total=len(templates),
    )


@router.get("/default", response_model=Optional[MailTemplateResponse])
async def get_default_template(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """The default template, or null when none is set."""
    template = await template_service.default_template(db, current_user)
    return MailTemplateResponse.model_validate(template) if template else None


@router.get("/{template_id}", response_model=MailTemplateResponse)
async def get_template(
    template_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    template = await template_service.get_template(db, current_user, template_id)
    return MailTemplateResponse.model_validate(template)


@router.post("", response_model=MailTemplateResponse, status_code=status.HTTP_201_CREATED)
async def create_template(
    template_data: MailTemplateCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    template = await template_service.create_template(db, current_user, template_data)
    return MailTemplateResponse.model_validate(template)


@router.put("/{template_id}", response_model=MailTemplateResponse)
async def update_template(
    template_id: str,
    template_data: MailTemplateUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    template = await template_service.update_template(db, current_user, template_id, template_data)
    return MailTemplateResponse.model_validate(template)


@router.delete("/{template_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_template(
    template_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    await template_service.delete_template(db, current_user, template_id)
