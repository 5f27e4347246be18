"""Entity synchronizer -- keeps in-memory CRM collections consistent with the store.

Every create/update/delete/move intent takes exactly one of two branches,
chosen once when the synchronizer is built:

- Remote branch (gateway configured): issue the gateway call and adopt the
  returned record (server id and timestamps) when there is one. When the
  gateway degrades to None, the collection is still updated from local
  values. Writes are never rolled back, only left unpersisted.
- Local branch (no gateway): ids and timestamps come from the
  IdentityGenerator and no remote call is made.

The in-memory update is the same in both branches. Each mutation replaces
the affected list with a new list so DerivedViews can detect change by
identity. Deletes cascade: contact -> its deals and activities;
company -> contacts' company reference nulled; stage -> its deals.

There is no queuing, cancellation or locking: intents run in program
order on one event loop and two overlapping edits to the same entity can
race.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

import structlog
from pydantic import BaseModel

from src.leaddesk.crm.field_mapping import EntityKind, table_for
from src.leaddesk.crm.gateway import RemoteStore
from src.leaddesk.crm.identity import IdentityGenerator
from src.leaddesk.crm.schemas import (
    DEFAULT_PIPELINE_STAGES,
    Activity,
    ActivityCreate,
    ActivityType,
    CampaignStatus,
    Company,
    CompanyCreate,
    CompanyUpdate,
    Contact,
    ContactCreate,
    ContactUpdate,
    EmailCampaign,
    EmailCampaignCreate,
    EmailCampaignUpdate,
    EmailStep,
    GeneratedDocument,
    GeneratedDocumentCreate,
    GeneratedDocumentUpdate,
    Opportunity,
    PipelineDeal,
    PipelineDealCreate,
    PipelineDealUpdate,
    PipelineStage,
    StageChanges,
    UpdateModel,
)
from src.leaddesk.crm.views import DerivedViews, stage_name

logger = structlog.get_logger(__name__)


@dataclass
class CollectionState:
    """The UI-facing collections for one session."""

    contacts: list[Contact] = field(default_factory=list)
    companies: list[Company] = field(default_factory=list)
    stages: list[PipelineStage] = field(default_factory=list)
    deals: list[PipelineDeal] = field(default_factory=list)
    activities: list[Activity] = field(default_factory=list)
    campaigns: list[EmailCampaign] = field(default_factory=list)
    documents: list[GeneratedDocument] = field(default_factory=list)
    opportunities: list[Opportunity] = field(default_factory=list)
    saved_leads: list[Opportunity] = field(default_factory=list)


# Which CollectionState attribute holds each synchronized kind
_COLLECTIONS: dict[EntityKind, str] = {
    EntityKind.CONTACT: "contacts",
    EntityKind.COMPANY: "companies",
    EntityKind.STAGE: "stages",
    EntityKind.DEAL: "deals",
    EntityKind.ACTIVITY: "activities",
    EntityKind.CAMPAIGN: "campaigns",
    EntityKind.DOCUMENT: "documents",
}


def _by_position(stages: list[PipelineStage]) -> list[PipelineStage]:
    return sorted(stages, key=lambda s: s.position)


class EntitySynchronizer:
    """Dual-mode synchronizer for CRM, campaign and document entities.

    Args:
        gateway: Remote store gateway, or None for local-only mode. An
            unconfigured gateway is treated as None and never called.
        identity: Generator for local ids/timestamps. A fresh one is made
            when omitted.
    """

    def __init__(
        self,
        gateway: RemoteStore | None = None,
        identity: IdentityGenerator | None = None,
    ) -> None:
        self._gateway = gateway
        self._remote = gateway is not None and gateway.is_configured()
        self._identity = identity or IdentityGenerator()
        self.state = CollectionState()
        self.views = DerivedViews(self.state)

        logger.info("sync.initialized", mode="remote" if self._remote else "local")

    @property
    def is_remote(self) -> bool:
        return self._remote

    async def aclose(self) -> None:
        """Release the gateway's connection pool, if there is one."""
        if self._gateway is not None:
            await self._gateway.aclose()

    # ── Generic Branch Helpers ───────────────────────────────────────────

    def _collection(self, kind: EntityKind) -> list[BaseModel]:
        return getattr(self.state, _COLLECTIONS[kind])

    def _set_collection(self, kind: EntityKind, items: list[BaseModel]) -> None:
        setattr(self.state, _COLLECTIONS[kind], items)

    def _find(self, kind: EntityKind, entity_id: str) -> BaseModel | None:
        return next((e for e in self._collection(kind) if e.id == entity_id), None)

    def _mint(self, kind: EntityKind, payload: BaseModel) -> BaseModel:
        """Build a local-only entity from a create payload."""
        meta = table_for(kind)
        timestamp = self._identity.now()
        attributes = payload.model_dump()
        attributes["id"] = self._identity.new_id()
        attributes["created_at"] = timestamp
        if meta.mutable:
            attributes["updated_at"] = timestamp
        return meta.model.model_validate(attributes)

    def _merge(self, kind: EntityKind, current: BaseModel, changes: UpdateModel) -> BaseModel:
        """Apply a partial update locally, refreshing the update timestamp."""
        meta = table_for(kind)
        attributes = current.model_dump()
        attributes.update(changes.changes())
        if meta.mutable:
            attributes["updated_at"] = self._identity.now()
        return meta.model.model_validate(attributes)

    async def _create(self, kind: EntityKind, payload: BaseModel) -> BaseModel:
        if self._remote:
            created = await self._gateway.create_entity(kind, payload)
            if created is not None:
                return created
            logger.warning("sync.remote_create_unpersisted", kind=kind.value)
        return self._mint(kind, payload)

    async def _create_and_prepend(self, kind: EntityKind, payload: BaseModel) -> BaseModel:
        entity = await self._create(kind, payload)
        self._set_collection(kind, [entity, *self._collection(kind)])
        logger.info("sync.entity_created", kind=kind.value, entity_id=entity.id)
        return entity

    async def _update(
        self, kind: EntityKind, entity_id: str, changes: UpdateModel
    ) -> BaseModel | None:
        current = self._find(kind, entity_id)
        if current is None:
            logger.warning("sync.update_unknown_entity", kind=kind.value, entity_id=entity_id)
            return None

        updated = None
        if self._remote:
            updated = await self._gateway.update_entity(kind, entity_id, changes)
            if updated is None:
                logger.warning(
                    "sync.remote_update_unpersisted", kind=kind.value, entity_id=entity_id
                )
        if updated is None:
            updated = self._merge(kind, current, changes)

        self._set_collection(
            kind, [updated if e.id == entity_id else e for e in self._collection(kind)]
        )
        logger.info("sync.entity_updated", kind=kind.value, entity_id=entity_id)
        return updated

    async def _delete(self, kind: EntityKind, entity_id: str) -> bool:
        if self._find(kind, entity_id) is None:
            return False
        if self._remote:
            await self._gateway.delete_entity(kind, entity_id)
        self._set_collection(kind, [e for e in self._collection(kind) if e.id != entity_id])
        logger.info("sync.entity_deleted", kind=kind.value, entity_id=entity_id)
        return True

    # ── Load & Bootstrap ─────────────────────────────────────────────────

    async def load_all(self) -> CollectionState:
        """Load every collection, then seed default stages if the pipeline is empty.

        In the remote branch the fetches are dispatched concurrently and
        joined before returning; there is no ordering between kinds.
        """
        if self._remote:
            gateway = self._gateway
            (
                contacts,
                companies,
                stages,
                deals,
                activities,
                campaigns,
                documents,
                saved_leads,
            ) = await asyncio.gather(
                gateway.list_entities(EntityKind.CONTACT),
                gateway.list_entities(EntityKind.COMPANY),
                gateway.list_entities(EntityKind.STAGE),
                gateway.list_entities(EntityKind.DEAL),
                gateway.list_entities(EntityKind.ACTIVITY),
                gateway.list_entities(EntityKind.CAMPAIGN),
                gateway.list_entities(EntityKind.DOCUMENT),
                gateway.list_watchlist(),
            )
            self.state.contacts = contacts
            self.state.companies = companies
            self.state.stages = stages
            self.state.deals = deals
            self.state.activities = activities
            self.state.campaigns = campaigns
            self.state.documents = documents
            self.state.saved_leads = saved_leads

        await self._bootstrap_stages()

        logger.info(
            "sync.loaded",
            contacts=len(self.state.contacts),
            companies=len(self.state.companies),
            stages=len(self.state.stages),
            deals=len(self.state.deals),
        )
        return self.state

    async def _bootstrap_stages(self) -> None:
        if self.state.stages:
            return

        seeded: list[PipelineStage] = []
        if self._remote:
            seeded = await self._gateway.create_entities(EntityKind.STAGE, DEFAULT_PIPELINE_STAGES)
            if not seeded:
                logger.warning("sync.default_stages_unpersisted")
        if not seeded:
            seeded = [self._mint(EntityKind.STAGE, s) for s in DEFAULT_PIPELINE_STAGES]

        self.state.stages = _by_position(seeded)
        logger.info("sync.default_stages_seeded", count=len(seeded))

    # ── Activities ───────────────────────────────────────────────────────

    async def _append_activity(self, payload: ActivityCreate) -> Activity:
        return await self._create_and_prepend(EntityKind.ACTIVITY, payload)

    async def log_activity(
        self,
        type: ActivityType,
        title: str,
        description: str = "",
        contact_id: str | None = None,
        deal_id: str | None = None,
    ) -> Activity | None:
        """Append a manually logged activity.

        Without a contact id the most recent contact is used; with no
        contacts at all nothing is logged.
        """
        if contact_id is None:
            if not self.state.contacts:
                return None
            contact_id = self.state.contacts[0].id
        return await self._append_activity(
            ActivityCreate(
                contact_id=contact_id,
                deal_id=deal_id,
                type=type,
                title=title,
                description=description,
            )
        )

    # ── Contacts ─────────────────────────────────────────────────────────

    async def create_contact(self, payload: ContactCreate) -> Contact:
        """Create a contact and log a contact_created activity for it."""
        contact = await self._create_and_prepend(EntityKind.CONTACT, payload)
        await self._append_activity(
            ActivityCreate(
                contact_id=contact.id,
                type=ActivityType.CONTACT_CREATED,
                title=f"{contact.full_name} was added",
            )
        )
        return contact

    async def update_contact(self, contact_id: str, changes: ContactUpdate) -> Contact | None:
        return await self._update(EntityKind.CONTACT, contact_id, changes)

    async def delete_contact(self, contact_id: str) -> bool:
        """Delete a contact with its dependent deals and activities."""
        if not await self._delete(EntityKind.CONTACT, contact_id):
            return False
        self.state.deals = [d for d in self.state.deals if d.contact_id != contact_id]
        self.state.activities = [a for a in self.state.activities if a.contact_id != contact_id]
        self.views.forget(contact_id)
        return True

    async def link_opportunities(
        self, contact_id: str, opportunity_ids: list[str]
    ) -> Contact | None:
        """Replace the set of opportunities linked to a contact."""
        return await self.update_contact(
            contact_id, ContactUpdate(linked_opportunity_ids=list(dict.fromkeys(opportunity_ids)))
        )

    # ── Companies ────────────────────────────────────────────────────────

    async def create_company(self, payload: CompanyCreate) -> Company:
        return await self._create_and_prepend(EntityKind.COMPANY, payload)

    async def update_company(self, company_id: str, changes: CompanyUpdate) -> Company | None:
        return await self._update(EntityKind.COMPANY, company_id, changes)

    async def delete_company(self, company_id: str) -> bool:
        """Delete a company. Its contacts are orphaned, not deleted."""
        if not await self._delete(EntityKind.COMPANY, company_id):
            return False
        self.state.contacts = [
            c.model_copy(update={"company_id": None}) if c.company_id == company_id else c
            for c in self.state.contacts
        ]
        return True

    # ── Deals ────────────────────────────────────────────────────────────

    def _deal_references_resolve(
        self, contact_id: str | None, stage_id: str | None
    ) -> bool:
        """Whether the contact and stage a deal points at exist in the current state."""
        if stage_id is not None and self._find(EntityKind.STAGE, stage_id) is None:
            logger.warning("sync.deal_unknown_stage", stage_id=stage_id)
            return False
        if contact_id is not None and self._find(EntityKind.CONTACT, contact_id) is None:
            logger.warning("sync.deal_unknown_contact", contact_id=contact_id)
            return False
        return True

    async def create_deal(self, payload: PipelineDealCreate) -> PipelineDeal | None:
        """Create a deal on an existing stage for an existing contact.

        Returns:
            The new deal, or None if the stage or contact does not resolve.
        """
        if not self._deal_references_resolve(payload.contact_id, payload.stage_id):
            return None
        return await self._create_and_prepend(EntityKind.DEAL, payload)

    async def update_deal(
        self, deal_id: str, changes: PipelineDealUpdate
    ) -> PipelineDeal | None:
        """Apply a partial update; a new stage or contact must already exist."""
        if not self._deal_references_resolve(changes.contact_id, changes.stage_id):
            return None
        return await self._update(EntityKind.DEAL, deal_id, changes)

    async def delete_deal(self, deal_id: str) -> bool:
        return await self._delete(EntityKind.DEAL, deal_id)

    async def move_deal(
        self, deal_id: str, to_stage_id: str, from_stage_id: str | None = None
    ) -> Activity | None:
        """Move a deal to another stage and log a deal_moved activity.

        ``from_stage_id`` defaults to the deal's current stage. Stage ids
        that do not resolve against the current stages are named "unknown"
        in the activity. Moving a deal onto its current stage is a no-op.

        Returns:
            The deal_moved activity, or None if nothing moved.
        """
        deal = self._find(EntityKind.DEAL, deal_id)
        if deal is None:
            logger.warning("sync.move_unknown_deal", deal_id=deal_id)
            return None
        if to_stage_id == deal.stage_id:
            return None

        source_name = stage_name(self.state.stages, from_stage_id or deal.stage_id)
        target_name = stage_name(self.state.stages, to_stage_id)

        await self._update(EntityKind.DEAL, deal_id, PipelineDealUpdate(stage_id=to_stage_id))
        return await self._append_activity(
            ActivityCreate(
                contact_id=deal.contact_id,
                deal_id=deal_id,
                type=ActivityType.DEAL_MOVED,
                title=f'Deal "{deal.title}" moved to {target_name}',
                description=f"From {source_name} to {target_name}",
            )
        )

    # ── Stages ───────────────────────────────────────────────────────────

    def _patch_stages(self, changes: StageChanges) -> list[PipelineStage]:
        deleted = set(changes.deleted)
        edits = {edit.id: edit for edit in changes.updated}

        stages = [s for s in self.state.stages if s.id not in deleted]
        stages = [
            s.model_copy(
                update={
                    "name": edits[s.id].name,
                    "color": edits[s.id].color,
                    "position": edits[s.id].position,
                }
            )
            if s.id in edits
            else s
            for s in stages
        ]
        stages.extend(self._mint(EntityKind.STAGE, new) for new in changes.created)
        return stages

    async def apply_stage_changes(self, changes: StageChanges) -> list[PipelineStage]:
        """Apply a stage-manager batch: delete, then update, then create.

        The result is sorted by position. Deals on deleted stages are
        removed. In the remote branch the stage list is re-fetched after
        the writes, since ids of inserted stages are only known to the
        store; if that fetch comes back empty the locally patched list is
        kept instead.
        """
        if self._remote:
            gateway = self._gateway
            for stage_id in changes.deleted:
                await gateway.delete_entity(EntityKind.STAGE, stage_id)
            for edit in changes.updated:
                await gateway.update_entity(EntityKind.STAGE, edit.id, edit.as_update())
            for new in changes.created:
                await gateway.create_entity(EntityKind.STAGE, new)

            stages = await gateway.list_entities(EntityKind.STAGE)
            if not stages:
                logger.warning("sync.stage_refetch_empty")
                stages = self._patch_stages(changes)
        else:
            stages = self._patch_stages(changes)

        deleted = set(changes.deleted)
        self.state.stages = _by_position(stages)
        self.state.deals = [d for d in self.state.deals if d.stage_id not in deleted]
        for stage_id in deleted:
            self.views.forget(stage_id)

        logger.info(
            "sync.stages_applied",
            deleted=len(changes.deleted),
            updated=len(changes.updated),
            created=len(changes.created),
        )
        return self.state.stages

    # ── Email Campaigns ──────────────────────────────────────────────────

    async def create_campaign(self, payload: EmailCampaignCreate) -> EmailCampaign:
        return await self._create_and_prepend(EntityKind.CAMPAIGN, payload)

    async def update_campaign(
        self, campaign_id: str, changes: EmailCampaignUpdate
    ) -> EmailCampaign | None:
        return await self._update(EntityKind.CAMPAIGN, campaign_id, changes)

    async def delete_campaign(self, campaign_id: str) -> bool:
        return await self._delete(EntityKind.CAMPAIGN, campaign_id)

    async def duplicate_campaign(self, campaign_id: str) -> EmailCampaign | None:
        """Copy a campaign's steps and links into a new draft campaign."""
        original = self._find(EntityKind.CAMPAIGN, campaign_id)
        if original is None:
            return None
        copy = EmailCampaignCreate(
            name=f"{original.name} (Copy)",
            status=CampaignStatus.DRAFT,
            opportunity_id=original.opportunity_id,
            linked_contact_ids=list(original.linked_contact_ids),
            steps=[step.model_copy() for step in original.steps],
        )
        return await self._create_and_prepend(EntityKind.CAMPAIGN, copy)

    async def set_campaign_status(
        self, campaign_id: str, status: CampaignStatus
    ) -> EmailCampaign | None:
        return await self.update_campaign(campaign_id, EmailCampaignUpdate(status=status))

    async def update_campaign_steps(
        self, campaign_id: str, steps: list[EmailStep]
    ) -> EmailCampaign | None:
        return await self.update_campaign(campaign_id, EmailCampaignUpdate(steps=steps))

    async def link_campaign_contacts(
        self, campaign_id: str, contact_ids: list[str]
    ) -> EmailCampaign | None:
        return await self.update_campaign(
            campaign_id, EmailCampaignUpdate(linked_contact_ids=list(dict.fromkeys(contact_ids)))
        )

    # ── Generated Documents ──────────────────────────────────────────────

    async def save_document(self, payload: GeneratedDocumentCreate) -> GeneratedDocument:
        return await self._create_and_prepend(EntityKind.DOCUMENT, payload)

    async def update_document(
        self, document_id: str, changes: GeneratedDocumentUpdate
    ) -> GeneratedDocument | None:
        return await self._update(EntityKind.DOCUMENT, document_id, changes)

    async def delete_document(self, document_id: str) -> bool:
        return await self._delete(EntityKind.DOCUMENT, document_id)

    async def load_documents(self, opportunity_id: str | None = None) -> list[GeneratedDocument]:
        """Refresh documents, optionally only those for one opportunity."""
        if self._remote:
            if opportunity_id is None:
                self.state.documents = await self._gateway.list_entities(EntityKind.DOCUMENT)
            else:
                fetched = await self._gateway.list_by_parent(
                    EntityKind.DOCUMENT, "opportunity_id", opportunity_id
                )
                others = [d for d in self.state.documents if d.opportunity_id != opportunity_id]
                self.state.documents = [*fetched, *others]

        if opportunity_id is None:
            return self.state.documents
        return [d for d in self.state.documents if d.opportunity_id == opportunity_id]

    # ── Opportunities ────────────────────────────────────────────────────

    async def record_search_results(self, opportunities: list[Opportunity]) -> list[Opportunity]:
        """Replace the freshly searched opportunities, persisting them when remote."""
        self.state.opportunities = list(opportunities)
        if self._remote:
            await self._gateway.upsert_opportunities(self.state.opportunities)
        return self.state.opportunities

    async def save_lead(self, opportunity: Opportunity) -> bool:
        """Add an opportunity to the saved leads (watchlist).

        Returns False if it was already saved.
        """
        if any(o.id == opportunity.id for o in self.state.saved_leads):
            return False
        if self._remote:
            await self._gateway.upsert_opportunities([opportunity])
            await self._gateway.add_to_watchlist(opportunity.id)
        self.state.saved_leads = [opportunity, *self.state.saved_leads]
        return True

    async def remove_saved_lead(self, opportunity_id: str) -> bool:
        if not any(o.id == opportunity_id for o in self.state.saved_leads):
            return False
        if self._remote:
            await self._gateway.remove_from_watchlist(opportunity_id)
        self.state.saved_leads = [o for o in self.state.saved_leads if o.id != opportunity_id]
        return True
