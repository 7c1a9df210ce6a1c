# backend/webhooks/deps.py
# FastAPI dependencies - collaborators built once in the app lifespan

from fastapi import Request

from core.config import Settings
from integrations.pelecard_client import PelecardClient
from integrations.summit_client import SummitClient
from storage.scratch_store import ScratchStore
from .reconcile import ReconciliationWorkflow


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> ScratchStore:
    return request.app.state.store


def get_gateway(request: Request) -> PelecardClient:
    return request.app.state.gateway


def get_accounting(request: Request) -> SummitClient:
    return request.app.state.accounting


def get_workflow(request: Request) -> ReconciliationWorkflow:
    state = request.app.state
    return ReconciliationWorkflow(
        store=state.store,
        gateway=state.gateway,
        accounting=state.accounting,
        settings=state.settings
    )
