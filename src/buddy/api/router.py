"""API router -- aggregates all endpoint routers."""

from __future__ import annotations

from fastapi import APIRouter

from src.buddy.api import auth, health, pages, rpc, webhooks

router = APIRouter()

router.include_router(health.router)
router.include_router(auth.router)
router.include_router(rpc.router)
router.include_router(webhooks.router)
router.include_router(pages.router)
