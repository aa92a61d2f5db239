from __future__ import annotations

import secrets
import uuid

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from leaddesk import audit
from leaddesk.core.auth import ActorUser
from leaddesk.departments.access import department_access
from leaddesk.departments.models import Department
from leaddesk.sites.models import Site
from leaddesk.sites.schemas import SiteCreate, SiteRead, SiteUpdate


def generate_site_token() -> str:
    return secrets.token_hex(32)


class SiteService:
    entity_type = "site"

    def create_site(self, session: Session, actor_user: ActorUser, dto: SiteCreate) -> SiteRead:
        department_access.require_manage(
            session,
            actor_user,
            dto.department_id,
            detail="You can only create sites for your department or need super role",
        )
        if session.get(Department, dto.department_id) is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Department not found")

        token = generate_site_token()
        while self.find_by_token(session, token) is not None:
            token = generate_site_token()

        site = Site(
            url=dto.url.strip(),
            description=(dto.description or "").strip(),
            token=token,
            department_id=dto.department_id,
        )
        session.add(site)
        session.commit()
        session.refresh(site)
        site_read = self._to_read(site)
        self._audit(actor_user, site.id, "create", None, site_read)
        return site_read

    def list_sites(self, session: Session, actor_user: ActorUser, department_id: uuid.UUID | None) -> list[SiteRead]:
        if department_id is None:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="department_id is required")
        department_access.require_view(session, actor_user, department_id, detail="Access denied to this department sites")
        rows = session.scalars(
            select(Site).where(Site.department_id == department_id).order_by(Site.created_at.asc())
        ).all()
        return [self._to_read(item) for item in rows]

    def get(self, session: Session, site_id: uuid.UUID) -> Site | None:
        return session.get(Site, site_id)

    def find_by_token(self, session: Session, token: str) -> Site | None:
        if not token or not token.strip():
            return None
        return session.scalar(select(Site).where(Site.token == token.strip()))

    def get_site(self, session: Session, actor_user: ActorUser, site_id: uuid.UUID) -> SiteRead:
        site = self.require(session, site_id)
        department_access.require_view(session, actor_user, site.department_id, detail="Access denied")
        return self._to_read(site)

    def update_site(self, session: Session, actor_user: ActorUser, site_id: uuid.UUID, dto: SiteUpdate) -> SiteRead:
        site = self.require(session, site_id)
        department_access.require_manage(
            session,
            actor_user,
            site.department_id,
            detail="You can only edit sites of your department or need super role",
        )
        before = self._to_read(site)
        if dto.url is not None:
            site.url = dto.url.strip()
        if dto.description is not None:
            site.description = dto.description.strip()
        session.commit()
        session.refresh(site)
        site_read = self._to_read(site)
        self._audit(actor_user, site.id, "update", before, site_read)
        return site_read

    def delete_site(self, session: Session, actor_user: ActorUser, site_id: uuid.UUID) -> None:
        site = self.require(session, site_id)
        department_access.require_manage(
            session,
            actor_user,
            site.department_id,
            detail="You can only delete sites of your department or need super role",
        )
        before = self._to_read(site)
        session.delete(site)
        session.commit()
        self._audit(actor_user, site_id, "delete", before, None)

    def require(self, session: Session, site_id: uuid.UUID) -> Site:
        site = self.get(session, site_id)
        if site is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Site not found")
        return site

    def _audit(
        self,
        actor_user: ActorUser,
        site_id: uuid.UUID,
        action: str,
        before: SiteRead | None,
        after: SiteRead | None,
    ) -> None:
        # Tokens are credentials and stay out of the audit trail.
        audit.record(
            actor_user,
            self.entity_type,
            site_id,
            action,
            before=before.model_dump(mode="json") if before is not None else None,
            after=after.model_dump(mode="json") if after is not None else None,
        )

    def _to_read(self, site: Site) -> SiteRead:
        return SiteRead.model_validate(site)


site_service = SiteService()
