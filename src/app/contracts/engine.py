"""ContractEngine -- derives contracts from won deals and drives signing.

Lifecycle: draft -> sent -> partially_signed -> fully_executed, with any
non-terminal state -> cancelled. Signatures are recorded per party with
timestamps and the status is recomputed from those timestamps under a row
lock, so concurrent client and speaker signatures both land and the
contract ends fully executed regardless of order.

Notifications and project materialization run after the state change is
committed and never undo it; their outcomes are returned alongside the
contract.
"""

from __future__ import annotations

import secrets
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

import structlog

from src.app.contracts.lifecycle import (
    SIGNABLE_STATUSES,
    SIGNATURE_DERIVED,
    TERMINAL_STATUSES,
    derive_status,
    signed_at_field,
    validate_contract_transition,
)
from src.app.contracts.schemas import (
    Amendment,
    ContractCreate,
    ContractCreated,
    ContractPreview,
    ContractPublicView,
    ContractRead,
    ContractStats,
    ContractStatus,
    ContractTerms,
    ContractTokens,
    SignatureResult,
    SignerRole,
    SigningLinks,
    StatusUpdateResult,
)
from src.app.contracts.template import (
    DEFAULT_ADDITIONAL_TERMS,
    DEFAULT_PAYMENT_TERMS,
    generate_content,
)
from src.app.core.errors import (
    AuthError,
    InvalidStateError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from src.app.core.monitoring import record_transition
from src.app.core.tokens import TokenRole, hash_token, issue_tokens, looks_like_token
from src.app.deals.schemas import DealRead, DealStatus
from src.app.notifications.models import NotificationResult

logger = structlog.get_logger(__name__)

CONTRACT_NUMBER_ATTEMPTS = 2


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def public_view(contract: ContractRead, role: str) -> ContractPublicView:
    """Project a contract onto the fields a token holder may see."""
    return ContractPublicView(
        contract_number=contract.contract_number,
        title=contract.title,
        status=contract.status,
        event_title=contract.event_title,
        event_date=contract.event_date,
        event_location=contract.event_location,
        client_name=contract.client_name,
        client_company=contract.client_company,
        speaker_name=contract.speaker_name,
        total_amount=contract.total_amount,
        payment_terms=contract.payment_terms,
        content=contract.content,
        client_signed_at=contract.client_signed_at,
        speaker_signed_at=contract.speaker_signed_at,
        expires_at=contract.expires_at,
        role=role,
    )


def generate_contract_number(now: datetime) -> str:
    """CTR-YYYYMMDD-NNNN with a random suffix; uniqueness is checked by the caller."""
    return f"CTR-{now:%Y%m%d}-{secrets.randbelow(10000):04d}"


class ContractEngine:
    """Creates, renders, transitions and signs contracts.

    Args:
        contracts: ContractRepository (or an in-memory equivalent).
        deals: DealRepository used to read the source deal.
        dispatcher: NotificationDispatcher, optional.
        materializer: ProjectMaterializer, optional.
        public_base_url: Base for signing and view links.
        expiry_days: Lifetime of a contract's tokens from creation.
        clock: Returns the current UTC time (overridable in tests).
    """

    def __init__(
        self,
        contracts: Any,
        deals: Any,
        dispatcher: Any | None = None,
        materializer: Any | None = None,
        public_base_url: str = "http://localhost:3000",
        expiry_days: int = 90,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._contracts = contracts
        self._deals = deals
        self._dispatcher = dispatcher
        self._materializer = materializer
        self._base_url = public_base_url.rstrip("/")
        self._expiry_days = expiry_days
        self._clock = clock

    # ── Links ──────────────────────────────────────────────────────────────

    def signing_url(self, token: str) -> str:
        return f"{self._base_url}/contracts/sign/{token}"

    def view_url(self, token: str) -> str:
        return f"{self._base_url}/contracts/view/{token}"

    # ── Creation ───────────────────────────────────────────────────────────

    async def _load_won_deal(self, data: ContractCreate) -> DealRead:
        if not data.deal_id:
            raise ValidationError("deal_id is required", fields=["deal_id"])

        deal = await self._deals.get_deal(data.deal_id)
        if deal is None:
            raise NotFoundError("Deal", data.deal_id)

        if deal.status != DealStatus.WON:
            raise InvalidStateError(
                f"Contracts can only be created from won deals (deal is {deal.status.value})"
            )
        return deal

    def _build_terms(
        self, deal: DealRead, data: ContractCreate, contract_number: str, now: datetime
    ) -> ContractTerms:
        speaker = data.speaker_info
        signer = data.client_signer_info

        speaker_fee = speaker.fee if speaker and speaker.fee else deal.deal_value
        if not speaker_fee or speaker_fee <= 0:
            raise ValidationError(
                "Speaker fee or deal value must be greater than 0",
                fields=["speaker_info.fee"],
            )

        return ContractTerms(
            contract_number=contract_number,
            contract_date=now.date(),
            client_name=deal.client_name,
            client_email=(signer.email if signer and signer.email else deal.client_email),
            client_phone=deal.client_phone,
            client_company=deal.company,
            client_signer_name=(signer.name if signer and signer.name else deal.client_name),
            event_title=deal.event_title,
            event_date=deal.event_date,
            event_location=deal.event_location,
            event_type=deal.event_type,
            attendee_count=deal.attendee_count,
            speaker_name=(speaker.name if speaker and speaker.name else deal.speaker_requested),
            speaker_email=speaker.email if speaker else None,
            speaker_fee=speaker_fee,
            total_amount=speaker_fee,
            payment_terms=data.payment_terms or DEFAULT_PAYMENT_TERMS,
            additional_terms=data.additional_terms or DEFAULT_ADDITIONAL_TERMS,
        )

    async def _unique_contract_number(self, now: datetime) -> str:
        for _ in range(CONTRACT_NUMBER_ATTEMPTS):
            candidate = generate_contract_number(now)
            if not await self._contracts.contract_number_exists(candidate):
                return candidate
        raise PersistenceError(
            "Could not allocate a unique contract number",
            detail=f"{CONTRACT_NUMBER_ATTEMPTS} collisions for {now:%Y%m%d}",
        )

    async def preview(self, data: ContractCreate) -> ContractPreview:
        """Render what create_from_deal would produce, without persisting."""
        deal = await self._load_won_deal(data)
        now = self._clock()
        terms = self._build_terms(deal, data, generate_contract_number(now), now)
        return ContractPreview(
            contract_number=terms.contract_number,
            title=f"Speaking Agreement - {deal.event_title}",
            speaker_fee=terms.speaker_fee,
            total_amount=terms.total_amount,
            payment_terms=terms.payment_terms,
            additional_terms=terms.additional_terms,
            content=generate_content(terms),
        )

    async def create_from_deal(self, data: ContractCreate) -> ContractCreated:
        """Create a draft contract from a won deal.

        Args:
            data: deal_id plus optional speaker info, client signer and terms.

        Returns:
            ContractCreated with the contract, its three plaintext tokens
            and the matching links. Tokens are never retrievable again.

        Raises:
            ValidationError: deal_id missing or no usable fee.
            NotFoundError: Deal does not exist.
            InvalidStateError: Deal is not won.
            PersistenceError: Database failure.
        """
        deal = await self._load_won_deal(data)
        now = self._clock()
        contract_number = await self._unique_contract_number(now)
        terms = self._build_terms(deal, data, contract_number, now)
        tokens = issue_tokens(TokenRole.ACCESS, TokenRole.CLIENT, TokenRole.SPEAKER)

        contract = await self._contracts.create_contract({
            "deal_id": deal.id,
            "contract_number": contract_number,
            "title": f"Speaking Agreement - {deal.event_title}",
            "status": ContractStatus.DRAFT,
            "speaker_fee": terms.speaker_fee,
            "total_amount": terms.total_amount,
            "payment_terms": terms.payment_terms,
            "additional_terms": terms.additional_terms,
            "event_title": deal.event_title,
            "event_date": deal.event_date,
            "event_location": deal.event_location,
            "event_type": deal.event_type,
            "client_name": deal.client_name,
            "client_email": deal.client_email,
            "client_company": deal.company,
            "client_signer_name": terms.client_signer_name,
            "client_signer_email": terms.client_email,
            "speaker_name": terms.speaker_name,
            "speaker_email": terms.speaker_email,
            "content": generate_content(terms),
            "access_token_hash": tokens[TokenRole.ACCESS].token_hash,
            "client_signing_token_hash": tokens[TokenRole.CLIENT].token_hash,
            "speaker_signing_token_hash": tokens[TokenRole.SPEAKER].token_hash,
            "amendments": [],
            "expires_at": now + timedelta(days=self._expiry_days),
            "created_by": data.created_by,
            "created_at": now,
        })

        logger.info(
            "contract_engine.created",
            contract_id=contract.id,
            contract_number=contract_number,
            deal_id=deal.id,
            total_amount=contract.total_amount,
        )

        plaintext = ContractTokens(
            access_token=tokens[TokenRole.ACCESS].token,
            client_signing_token=tokens[TokenRole.CLIENT].token,
            speaker_signing_token=tokens[TokenRole.SPEAKER].token,
        )
        return ContractCreated(
            contract=contract,
            tokens=plaintext,
            links=SigningLinks(
                view_url=self.view_url(plaintext.access_token),
                client_signing_url=self.signing_url(plaintext.client_signing_token),
                speaker_signing_url=self.signing_url(plaintext.speaker_signing_token),
            ),
        )

    # ── Reads ──────────────────────────────────────────────────────────────

    async def get(self, contract_id: str) -> ContractRead:
        contract = await self._contracts.get_contract(contract_id)
        if contract is None:
            raise NotFoundError("Contract", contract_id)
        return contract

    async def list(self, status: ContractStatus | None = None) -> list[ContractRead]:
        return await self._contracts.list_contracts(status)

    async def stats(self) -> ContractStats:
        return await self._contracts.stats()

    # ── Status Transitions ─────────────────────────────────────────────────

    async def update_status(
        self,
        contract_id: str,
        new_status: ContractStatus,
        updated_by: str | None = None,
    ) -> StatusUpdateResult:
        """Apply an admin status change.

        Moving to ``sent`` rotates both signing tokens and emails each party
        their link. Targets implied by signatures (partially_signed,
        fully_executed) must agree with the recorded signatures.

        Raises:
            NotFoundError: Contract does not exist.
            InvalidTransitionError: Transition not in the allowed set.
            InvalidStateError: Declared status contradicts recorded signatures,
                or the contract has expired.
        """
        now = self._clock()
        rotated: dict[TokenRole, Any] = {}
        previous: dict[str, ContractStatus] = {}

        def mutate(contract: ContractRead) -> dict[str, Any]:
            validate_contract_transition(contract.status, new_status)
            previous["status"] = contract.status

            if new_status in SIGNATURE_DERIVED:
                implied = derive_status(
                    ContractStatus.SENT, contract.client_signed_at, contract.speaker_signed_at
                )
                if implied != new_status:
                    raise InvalidStateError(
                        f"Recorded signatures imply {implied.value}, not {new_status.value}"
                    )

            changes: dict[str, Any] = {"status": new_status}
            if new_status == ContractStatus.SENT:
                if contract.expires_at <= now:
                    raise InvalidStateError("Contract has expired and cannot be sent")
                rotated.update(issue_tokens(TokenRole.CLIENT, TokenRole.SPEAKER))
                changes["client_signing_token_hash"] = rotated[TokenRole.CLIENT].token_hash
                changes["speaker_signing_token_hash"] = rotated[TokenRole.SPEAKER].token_hash
                changes["sent_at"] = now
            return changes

        contract = await self._contracts.update_locked(contract_id, mutate)
        from_status = previous["status"]
        record_transition("contract", from_status.value, new_status.value)
        logger.info(
            "contract_engine.status_changed",
            contract_id=contract_id,
            from_status=from_status.value,
            to_status=new_status.value,
            updated_by=updated_by,
        )

        result = StatusUpdateResult(contract=contract)
        if new_status == ContractStatus.SENT:
            links = SigningLinks(
                client_signing_url=self.signing_url(rotated[TokenRole.CLIENT].token),
                speaker_signing_url=self.signing_url(rotated[TokenRole.SPEAKER].token),
            )
            result.links = links
            result.notifications = await self._notify_sent(contract, links)
        elif new_status == ContractStatus.FULLY_EXECUTED:
            result.notifications = await self._on_executed(contract)
        return result

    async def send(self, contract_id: str, updated_by: str | None = None) -> StatusUpdateResult:
        """Shortcut for update_status(..., SENT)."""
        return await self.update_status(contract_id, ContractStatus.SENT, updated_by)

    # ── Signing ────────────────────────────────────────────────────────────

    async def sign(
        self,
        token: str,
        signer_name: str | None = None,
        signer_ip: str | None = None,
    ) -> SignatureResult:
        """Record consent for the party the signing token belongs to.

        Returns:
            SignatureResult with outcome "signed", or "already_signed" when
            this party signed before (no error, no change).

        Raises:
            AuthError: Unknown, non-signing, or expired token.
            InvalidStateError: Contract is a draft or cancelled.
        """
        if not looks_like_token(token):
            raise AuthError("This signing link is invalid or has expired")

        now = self._clock()
        outcome: dict[str, Any] = {"value": "signed"}

        def mutate(contract: ContractRead, role: TokenRole) -> dict[str, Any]:
            if role == TokenRole.ACCESS:
                raise AuthError("This link is for viewing only and cannot be used to sign")

            signer = SignerRole(role.value)
            outcome["role"] = signer
            outcome["previous"] = contract.status
            field = signed_at_field(signer)

            if getattr(contract, field) is not None:
                outcome["value"] = "already_signed"
                return {}
            if contract.expires_at <= now:
                raise AuthError("This signing link has expired")
            if contract.status == ContractStatus.CANCELLED:
                raise InvalidStateError("This contract has been cancelled")
            if contract.status not in SIGNABLE_STATUSES:
                raise InvalidStateError("This contract has not been sent for signature")

            client_signed_at = now if signer == SignerRole.CLIENT else contract.client_signed_at
            speaker_signed_at = now if signer == SignerRole.SPEAKER else contract.speaker_signed_at

            changes: dict[str, Any] = {field: now}
            if signer == SignerRole.CLIENT:
                changes["client_signer_ip"] = signer_ip
                if signer_name:
                    changes["client_signer_name"] = signer_name
            else:
                changes["speaker_signer_name"] = signer_name or contract.speaker_name
            changes["status"] = derive_status(
                contract.status, client_signed_at, speaker_signed_at
            )
            return changes

        resolved = await self._contracts.update_locked_by_token(hash_token(token), mutate)
        if resolved is None:
            raise AuthError("This signing link is invalid or has expired")

        contract, _role = resolved
        signer = outcome["role"]
        result = SignatureResult(outcome=outcome["value"], role=signer, contract=contract)

        if outcome["value"] == "already_signed":
            logger.info(
                "contract_engine.already_signed",
                contract_id=contract.id,
                role=signer.value,
            )
            return result

        previous = outcome["previous"]
        if contract.status != previous:
            record_transition("contract", previous.value, contract.status.value)
        logger.info(
            "contract_engine.signed",
            contract_id=contract.id,
            role=signer.value,
            status=contract.status.value,
        )

        if contract.status == ContractStatus.FULLY_EXECUTED:
            result.notifications = await self._on_executed(contract)
        return result

    async def view(self, token: str) -> ContractPublicView:
        """Read-only view for any of the contract's tokens.

        Raises:
            AuthError: Unknown or expired token.
        """
        if not looks_like_token(token):
            raise AuthError("This link is invalid or has expired")

        resolved = await self._contracts.resolve_token(hash_token(token))
        if resolved is None:
            raise AuthError("This link is invalid or has expired")

        contract, role = resolved
        if contract.expires_at <= self._clock():
            raise AuthError("This link has expired")

        return public_view(contract, role.value)

    # ── Amendments & Deletion ──────────────────────────────────────────────

    async def amend(
        self, contract_id: str, amendment: Amendment, amended_by: str | None = None
    ) -> ContractRead:
        """Append an amendment; the original financial snapshot is untouched.

        Raises:
            NotFoundError: Contract does not exist.
            InvalidStateError: Contract is fully executed or cancelled.
        """
        now = self._clock()

        def mutate(contract: ContractRead) -> dict[str, Any]:
            if contract.status in TERMINAL_STATUSES:
                raise InvalidStateError(
                    f"Cannot amend a {contract.status.value} contract"
                )
            entry = amendment.model_copy(
                update={"amended_by": amended_by or amendment.amended_by, "amended_at": now}
            ).model_dump(mode="json")
            return {"amendments": [*contract.amendments, entry]}

        contract = await self._contracts.update_locked(contract_id, mutate)
        logger.info(
            "contract_engine.amended",
            contract_id=contract_id,
            amendment_count=len(contract.amendments),
        )
        return contract

    async def delete(self, contract_id: str) -> None:
        """Hard delete a contract.

        Raises:
            NotFoundError: Contract does not exist.
        """
        deleted = await self._contracts.delete_contract(contract_id)
        if not deleted:
            raise NotFoundError("Contract", contract_id)
        logger.info("contract_engine.deleted", contract_id=contract_id)

    # ── Side Effects ───────────────────────────────────────────────────────

    async def _notify_sent(
        self, contract: ContractRead, links: SigningLinks
    ) -> list[NotificationResult]:
        if self._dispatcher is None:
            return []
        return await self._dispatcher.contract_sent(
            contract_number=contract.contract_number,
            event_title=contract.event_title,
            event_date=contract.event_date.date().isoformat() if contract.event_date else None,
            total_amount=contract.total_amount,
            client_name=contract.client_signer_name or contract.client_name,
            client_email=contract.client_signer_email or contract.client_email,
            client_signing_url=links.client_signing_url,
            speaker_name=contract.speaker_name,
            speaker_email=contract.speaker_email,
            speaker_signing_url=links.speaker_signing_url,
        )

    async def _on_executed(self, contract: ContractRead) -> list[NotificationResult]:
        if self._materializer is not None:
            await self._materializer.materialize(
                deal_id=contract.deal_id,
                contract=contract,
                source="contract_executed",
            )
        if self._dispatcher is None:
            return []
        return await self._dispatcher.contract_executed(
            contract_number=contract.contract_number,
            event_title=contract.event_title,
            client_name=contract.client_name,
            speaker_name=contract.speaker_name,
        )
