"""Deal pipeline module -- models, schemas, repository and status rules.

Provides SQLAlchemy models (Deal, Proposal), Pydantic schemas, the
DealRepository for async CRUD, the DealPipeline for status transitions
and inbound CRM webhook ingestion, and the ProposalService for
token-scoped proposal acceptance.
"""
