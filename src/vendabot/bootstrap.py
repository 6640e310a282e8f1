"""Service wiring.

Builds the orchestrator and its stores from Settings once per process.
Routes reach it through get_services(); tests swap it with set_services().
"""

from __future__ import annotations

from dataclasses import dataclass

from vendabot.config import Settings
from vendabot.domain.credentials import RecordCredentialStore
from vendabot.domain.conversations import ConversationStore
from vendabot.domain.idempotency import IdempotencyLedger
from vendabot.domain.orchestrator import DialogOrchestrator
from vendabot.domain.reconciliation import PaymentReconciler
from vendabot.domain.trial_cooldown import TrialCooldownGate
from vendabot.infra.record_store import MemoryRecordStore, PostgresRecordStore, RecordStore
from vendabot.observability.audit import (
    AuditSink,
    MemoryAuditSink,
    PaymentAudit,
    PostgresAuditSink,
)
from vendabot.paghiper.client import PagHiperClient
from vendabot.provisioning.client import HttpProvisioningGateway
from vendabot.whatsapp.outbound import EvolutionConfig, EvolutionTransport


@dataclass
class Services:
    settings: Settings
    store: RecordStore
    orchestrator: DialogOrchestrator


def build_services(settings: Settings) -> Services:
    """Create the production object graph for settings.

    Raises:
        RuntimeError: If a required collaborator is not configured.
    """
    store: RecordStore
    sink: AuditSink
    if settings.store_backend == "postgres":
        store = PostgresRecordStore()
        sink = PostgresAuditSink()
    else:
        store = MemoryRecordStore()
        sink = MemoryAuditSink()

    paghiper = PagHiperClient(
        api_key=settings.paghiper_api_key,
        token=settings.paghiper_token,
        base_url=settings.paghiper_base_url,
        pix_base_url=settings.paghiper_pix_base_url,
        notification_url=settings.paghiper_notification_url,
    )
    orchestrator = DialogOrchestrator(
        conversations=ConversationStore(store),
        ledger=IdempotencyLedger(store),
        cooldown=TrialCooldownGate(store),
        reconciler=PaymentReconciler(paghiper),
        payments=paghiper,
        provisioning=HttpProvisioningGateway(
            base_url=settings.provisioning_base_url,
            api_key=settings.provisioning_api_key,
        ),
        credentials=RecordCredentialStore(store),
        transport=EvolutionTransport(
            EvolutionConfig(
                base_url=settings.evolution_base_url,
                instance=settings.evolution_instance,
                api_key=settings.evolution_api_key,
            )
        ),
        audit=PaymentAudit(sink),
        trial_cooldown_days=settings.trial_cooldown_days,
        default_package_id=settings.default_package_id,
        burst_attempts=settings.burst_attempts,
        burst_interval=settings.burst_interval_seconds,
        poll_attempts=settings.poll_attempts,
        poll_interval=settings.poll_interval_seconds,
    )
    return Services(settings=settings, store=store, orchestrator=orchestrator)


_services: Services | None = None


def get_services() -> Services:
    """Return the process-wide services, building them on first use."""
    global _services
    if _services is None:
        _services = build_services(Settings.from_env())
    return _services


def set_services(services: Services | None) -> None:
    """Replace the process-wide services (tests)."""
    global _services
    _services = services
