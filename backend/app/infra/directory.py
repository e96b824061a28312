# app/infra/directory.py
"""
Passerelle vers l'annuaire tenants / membres / équipes.

Le moteur Pulse n'a besoin que de trois lectures :
    - la liste des tenants à évaluer
    - les membres éligibles d'un tenant (+ équipe principale, email)
    - le seuil d'anonymat du tenant
"""
from typing import Dict, List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.shared.models import Tenant, Member


class DirectoryGateway:

    async def list_tenant_ids(self, db: AsyncSession) -> List[str]:
        r = await db.execute(select(Tenant.id).order_by(Tenant.slug))
        return list(r.scalars().all())

    async def get_eligible_members(self, db: AsyncSession, tenant_id: str) -> Dict[str, Member]:
        """user_id → Member, membres actifs uniquement."""
        r = await db.execute(
            select(Member).where(
                Member.tenant_id == tenant_id,
                Member.is_active == True,
            )
        )
        return {m.id: m for m in r.scalars().all()}

    async def get_anon_threshold(self, db: AsyncSession, tenant_id: str) -> int:
        r = await db.execute(select(Tenant.anon_threshold).where(Tenant.id == tenant_id))
        value = r.scalar_one_or_none()
        return value if value else settings.PULSE_DEFAULT_ANON_THRESHOLD
