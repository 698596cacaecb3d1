"""V1 API router -- aggregates all v1 endpoint routers."""

from __future__ import annotations

from fastapi import APIRouter

from src.app.api.v1 import auth, contracts, deals, firm_offers, health, projects, proposals

router = APIRouter(prefix="/api/v1")

router.include_router(health.router)
router.include_router(auth.router)
router.include_router(deals.router)
router.include_router(proposals.router)
router.include_router(contracts.router)
router.include_router(firm_offers.router)
router.include_router(projects.router)
