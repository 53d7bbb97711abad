"""
Invitation mail template service.

Admins keep a library of templates; a poll picks one through its
mail_template_id setting. Invitations fall back to the default template,
then to the built-in one.
"""
import logging
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ballotbox.core.exceptions import NotFound, ValidationFailed
from ballotbox.core.permissions import require_admin
from ballotbox.models.mail_template import MailTemplate
from ballotbox.models.poll import Poll
from ballotbox.models.user import User
from ballotbox.schemas.mail_template import MailTemplateCreate, MailTemplateUpdate
from ballotbox.services.email import DEFAULT_TEMPLATE, InvitationTemplate

logger = logging.getLogger(__name__)


async def _clear_default(db: AsyncSession) -> None:
    await db.execute(
        update(MailTemplate)
        .where(MailTemplate.is_default.is_(True))
        .values(is_default=False)
        .execution_options(synchronize_session="fetch")
    )


async def get_default_template(db: AsyncSession) -> Optional[MailTemplate]:
    result = await db.execute(select(MailTemplate).where(MailTemplate.is_default.is_(True)))
    return result.scalars().first()


async def list_templates(db: AsyncSession, actor: User) -> list[MailTemplate]:
    require_admin(actor)
    result = await db.execute(select(MailTemplate).order_by(MailTemplate.name.asc()))
    return list(result.scalars().all())


async def get_template(db: AsyncSession, actor: User, template_id: str) -> MailTemplate:
    require_admin(actor)
    template = await db.get(MailTemplate, template_id)
    if template is None:
        raise NotFound("Template not found")
    return template


async def default_template(db: AsyncSession, actor: User) -> Optional[MailTemplate]:
    require_admin(actor)
    return await get_default_template(db)


async def create_template(db: AsyncSession, actor: User, data: MailTemplateCreate) -> MailTemplate:
    require_admin(actor)
    if data.is_default:
        await _clear_default(db)
    template = MailTemplate(
        name=data.name,
        subject=data.subject,
        body=data.body,
        html_body=data.html_body,
        is_default=data.is_default,
    )
    db.add(template)
    await db.flush()
    logger.info(f"Mail template {template.id} created by {actor.id}")
    return template


async def update_template(
    db: AsyncSession, actor: User, template_id: str, data: MailTemplateUpdate
) -> MailTemplate:
    template = await get_template(db, actor, template_id)
    if data.is_default is True and not template.is_default:
        await _clear_default(db)

    for field in ("name", "subject", "body", "is_default"):
        value = getattr(data, field)
        if value is not None:
            setattr(template, field, value)
    if "html_body" in data.model_fields_set:
        template.html_body = data.html_body
    await db.flush()
    return template


async def delete_template(db: AsyncSession, actor: User, template_id: str) -> None:
    template = await get_template(db, actor, template_id)
    if template.is_default:
        raise ValidationFailed(
            "Cannot delete the default template. Please set another template as default first."
        )
    await db.delete(template)
    await db.flush()


async def invitation_template_for(db: AsyncSession, poll: Poll) -> InvitationTemplate:
    """The poll's chosen template, else the default one, else the built-in one."""
    template: Optional[MailTemplate] = None
    template_id = poll.poll_settings.mail_template_id
    if template_id:
        template = await db.get(MailTemplate, template_id)
        if template is None:
            logger.warning(f"Poll {poll.id} references missing mail template {template_id}")
    if template is None:
        template = await get_default_template(db)
    if template is None:
        return DEFAULT_TEMPLATE
    return InvitationTemplate(subject=template.subject, body=template.body, html_body=template.html_body)
