"""Composition root: wires settings into the supervisor and its collaborators."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from offerbridge.config import Settings, load_settings
from offerbridge.infra.crypto import parse_key
from offerbridge.offers.affiliate_client import AffiliateClient
from offerbridge.offers.copywriter import Copywriter
from offerbridge.offers.pipeline import OfferPipeline
from offerbridge.session.credential_store import CredentialStore
from offerbridge.session.notifications import StatusBroadcaster
from offerbridge.session.supervisor import SessionSupervisor
from offerbridge.whatsapp.evolution_transport import EvolutionTransport


@dataclass
class Runtime:
    settings: Settings
    store: CredentialStore
    broadcaster: StatusBroadcaster
    transport: EvolutionTransport
    supervisor: SessionSupervisor


def build_runtime(settings: Settings | None = None) -> Runtime:
    """Build the process-wide runtime.

    Raises:
        RuntimeError: If CREDENTIALS_KEY or the Evolution config is missing.
    """
    settings = settings or load_settings()

    store = CredentialStore(settings.session_cache_dir, parse_key(settings.credentials_key))
    broadcaster = StatusBroadcaster()
    transport = EvolutionTransport()
    pipeline = OfferPipeline(
        monitored_conversation_id=settings.monitored_conversation_id,
        target_conversation_id=settings.target_conversation_id,
        keywords=settings.commerce_keywords,
        affiliate=AffiliateClient(
            settings.shopee_app_id, settings.shopee_secret, settings.shopee_api_url
        ),
        copywriter=Copywriter(settings.gemini_api_key, settings.gemini_model),
    )
    supervisor = SessionSupervisor(
        transport=transport,
        store=store,
        sink=broadcaster,
        pipeline=pipeline,
        session_key=settings.session_key,
        max_reconnect_attempts=settings.max_reconnect_attempts,
        workers=ThreadPoolExecutor(
            max_workers=settings.pipeline_workers, thread_name_prefix="pipeline"
        ),
    )
    return Runtime(
        settings=settings,
        store=store,
        broadcaster=broadcaster,
        transport=transport,
        supervisor=supervisor,
    )
