"""ProjectMaterializer -- one delivery project per confirmed deal.

Triggered after a contract is fully executed, a speaker confirms a firm
offer, or a client accepts a proposal. Whichever fires first creates the
project; later triggers only fill in missing links. The trigger's own
state change is already committed by the time this runs, so failures are
logged and reported as None rather than raised.
"""

from __future__ import annotations

from typing import Any

import structlog

from src.app.contracts.schemas import ContractRead
from src.app.deals.schemas import DealRead, ProposalRead
from src.app.firm_offers.schemas import FirmOfferRead
from src.app.projects.schemas import ProjectRead

logger = structlog.get_logger(__name__)


def project_values(
    deal: DealRead,
    contract: ContractRead | None = None,
    firm_offer: FirmOfferRead | None = None,
    proposal: ProposalRead | None = None,
) -> dict[str, Any]:
    """Column values for a new project, preferring the most binding source."""
    speaker_fee: float | None = None
    if contract is not None:
        speaker_fee = contract.speaker_fee
    elif firm_offer is not None and firm_offer.financial_details is not None:
        speaker_fee = firm_offer.financial_details.speaker_fee
    elif proposal is not None:
        speaker_fee = proposal.total_investment

    return {
        "project_name": f"{deal.event_title} - {deal.company or deal.client_name}",
        "client_name": deal.client_name,
        "client_email": deal.client_email,
        "company": deal.company,
        "event_date": contract.event_date if contract else deal.event_date,
        "event_location": contract.event_location if contract else deal.event_location,
        "speaker_fee": speaker_fee,
        "budget": deal.deal_value,
        "status": "planning",
        "contract_id": contract.id if contract else None,
        "firm_offer_id": firm_offer.id if firm_offer else None,
        "proposal_id": proposal.id if proposal else (firm_offer.proposal_id if firm_offer else None),
    }


class ProjectMaterializer:
    """Creates or links the project for a deal.

    Args:
        projects: ProjectRepository (or an in-memory equivalent).
        deals: DealRepository for the deal snapshot.
    """

    def __init__(self, projects: Any, deals: Any) -> None:
        self._projects = projects
        self._deals = deals

    async def materialize(
        self,
        deal_id: str,
        contract: ContractRead | None = None,
        firm_offer: FirmOfferRead | None = None,
        proposal: ProposalRead | None = None,
        source: str | None = None,
    ) -> ProjectRead | None:
        """Return the deal's project, creating it on first call.

        Returns:
            The project, or None if it could not be materialized.
        """
        try:
            deal = await self._deals.get_deal(deal_id)
            if deal is None:
                logger.warning("project_materializer.deal_missing", deal_id=deal_id, source=source)
                return None

            values = project_values(deal, contract, firm_offer, proposal)
            values["source"] = source
            project, created = await self._projects.get_or_create(deal_id, values)

            if not created:
                links = {
                    key: values[key]
                    for key in ("contract_id", "firm_offer_id", "proposal_id")
                    if values[key] is not None
                }
                if links:
                    project = await self._projects.link(project.id, links)
        except Exception:
            logger.warning(
                "project_materializer.failed", deal_id=deal_id, source=source, exc_info=True
            )
            return None

        logger.info(
            "project_materializer.materialized",
            deal_id=deal_id,
            project_id=project.id,
            created=created,
            source=source,
        )
        return project
