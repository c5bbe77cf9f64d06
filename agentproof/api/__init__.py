"""API router registry used by the app factory.

Route module imports and inclusion order live here so `agentproof.main`
stays focused on startup wiring.
"""

from __future__ import annotations

from fastapi import APIRouter

from . import agents, health, proofs

API_PREFIX = "/api/v1"

API_ROUTERS: tuple[APIRouter, ...] = (
    health.router,
    agents.router,
    proofs.router,
)

__all__ = ["API_PREFIX", "API_ROUTERS"]
