"""Dialog orchestrator - the conversation state machine.

One inbound message is one call to handle_message(). Messages for the same
user are serialized; different users never wait on each other.

Payment finalization has two entry points that may race:

- the user replies "1" (I paid) -> burst check -> _finalize()
- the gateway notifies payment -> slow poll -> finalize_from_gateway()

Both go through IdempotencyLedger.try_mark_processed(), which lets exactly
one of them provision the account.
"""

from __future__ import annotations

import asyncio
import re
from typing import Awaitable, Callable

from vendabot.domain.collaborators import (
    ChargeError,
    CredentialStore,
    MessageTransport,
    PaymentInitiator,
    ProvisioningError,
    ProvisioningGateway,
    ProvisioningRequest,
)
from vendabot.domain.commands import STEP_COMMANDS, Command, parse_command
from vendabot.domain.conversations import PLAN_STEPS, ConversationState, ConversationStore
from vendabot.domain.idempotency import (
    IdempotencyLedger,
    OwnershipConflict,
    StaleWriteRejected,
)
from vendabot.domain.plans import (
    DEFAULT_PACKAGE_ID,
    INSTALLATION_PLAN_ID,
    PLANS,
    TUTORIALS,
    Plan,
    format_brl,
)
from vendabot.domain.reconciliation import (
    BURST_ATTEMPTS,
    BURST_INTERVAL_SECONDS,
    POLL_ATTEMPTS,
    POLL_INTERVAL_SECONDS,
    PaymentReconciler,
)
from vendabot.domain.trial_cooldown import DEFAULT_COOLDOWN_DAYS, TrialCooldownGate
from vendabot.infra.keyed_locks import KeyedLocks
from vendabot.observability.audit import PaymentAudit
from vendabot.observability.correlation import correlation_scope
from vendabot.observability.logging import get_logger
from vendabot.observability.redaction import mask_user_id, safe_log_context
from vendabot.whatsapp.templates import (
    render,
    render_charge,
    render_credentials,
    render_plans,
    render_status,
    render_stored_credentials,
    render_tutorials,
)

logger = get_logger(__name__)

Handler = Callable[[str, ConversationState, str | None], Awaitable[None]]

_TXID_FORMAT = re.compile(r"^[A-Za-z0-9_-]{6,64}$")


class DialogOrchestrator:
    """Routes parsed commands to handlers and owns the payment protocol."""

    def __init__(
        self,
        *,
        conversations: ConversationStore,
        ledger: IdempotencyLedger,
        cooldown: TrialCooldownGate,
        reconciler: PaymentReconciler,
        payments: PaymentInitiator,
        provisioning: ProvisioningGateway,
        credentials: CredentialStore,
        transport: MessageTransport,
        audit: PaymentAudit,
        locks: KeyedLocks | None = None,
        trial_cooldown_days: int = DEFAULT_COOLDOWN_DAYS,
        default_package_id: int = DEFAULT_PACKAGE_ID,
        burst_attempts: int = BURST_ATTEMPTS,
        burst_interval: float = BURST_INTERVAL_SECONDS,
        poll_attempts: int = POLL_ATTEMPTS,
        poll_interval: float = POLL_INTERVAL_SECONDS,
    ) -> None:
        self._conversations = conversations
        self._ledger = ledger
        self._cooldown = cooldown
        self._reconciler = reconciler
        self._payments = payments
        self._provisioning = provisioning
        self._credentials = credentials
        self._transport = transport
        self._audit = audit
        self._locks = locks or KeyedLocks()
        self._trial_cooldown_days = trial_cooldown_days
        self._default_package_id = default_package_id
        self._burst_attempts = burst_attempts
        self._burst_interval = burst_interval
        self._poll_attempts = poll_attempts
        self._poll_interval = poll_interval

        self._handlers: dict[Command, Handler] = {
            Command.RESET: self._on_reset,
            Command.SHOW_PLANS: self._on_show_plans,
            Command.RENEW: self._on_renew,
            Command.SELECT_PLAN: self._on_select_plan,
            Command.TRIAL: self._on_trial,
            Command.CONFIRM_PAID: self._on_confirm_paid,
            Command.NOT_PAID: self._on_not_paid,
            Command.ATTACH_TXID: self._on_attach_txid,
            Command.STATUS: self._on_status,
            Command.CREDENTIALS: self._on_credentials,
            Command.TUTORIALS: self._on_tutorials,
            Command.SELECT_TUTORIAL: self._on_select_tutorial,
            Command.INSTALL_OPTION: self._on_install_option,
            Command.UNKNOWN: self._on_unknown,
        }
        self._validate_handlers()

    def _validate_handlers(self) -> None:
        """Every command reachable from any step must have a handler."""
        for step, commands in STEP_COMMANDS.items():
            missing = commands - set(self._handlers)
            if missing:
                raise ValueError(
                    f"No handler for {sorted(c.value for c in missing)} in step {step}"
                )

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def handle_message(self, user_id: str, text: str) -> None:
        """Process one inbound message from user_id.

        Never raises: unexpected failures are logged and answered with a
        generic apology.
        """
        with correlation_scope():
            async with self._locks.hold(user_id):
                command: Command | None = None
                try:
                    state = self._conversations.get(user_id)
                    if state is None:
                        state = self._conversations.set(user_id, step="menu")
                    parsed = parse_command(text, state)
                    command = parsed.command
                    await self._handlers[command](user_id, state, parsed.argument)
                except Exception:
                    logger.exception(
                        "message handling failed",
                        extra={
                            "extra_fields": {
                                **safe_log_context(
                                    command=command.value if command else None
                                ),
                                "user_ref": mask_user_id(user_id),
                            }
                        },
                    )
                    await self._send_safely(user_id, render("generic_error"))

    async def finalize_from_gateway(self, transaction_id: str) -> bool:
        """Confirm and finalize a payment the gateway told us about.

        Returns:
            True if this call finalized the transaction.
        """
        record = self._ledger.get(transaction_id)
        if record is None or record.owner is None:
            logger.warning(
                "gateway notification for unknown transaction",
                extra={"extra_fields": safe_log_context(transaction_id=transaction_id)},
            )
            return False
        if record.is_processed:
            logger.info(
                "gateway notification for processed transaction",
                extra={"extra_fields": safe_log_context(transaction_id=transaction_id)},
            )
            return False

        owner = record.owner
        self._audit.payment_check_started(
            transaction_id, owner, self._poll_attempts, source="gateway"
        )
        result = await self._reconciler.poll_until_paid(
            transaction_id, self._poll_attempts, self._poll_interval
        )
        self._audit.payment_check_result(transaction_id, owner, result)
        if not result.paid:
            if result.last_error:
                self._audit.payment_check_error(transaction_id, owner, result.last_error)
            return False

        async with self._locks.hold(owner):
            if not self._mark_paid(transaction_id, owner):
                return False
            return await self._finalize(transaction_id, owner)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def _on_reset(self, user_id: str, state: ConversationState, _arg: str | None) -> None:
        self._conversations.reset_to_menu(user_id)
        await self._send(user_id, render("menu"))

    async def _on_show_plans(self, user_id: str, state: ConversationState, _arg: str | None) -> None:
        self._conversations.set(user_id, step="choosing_plan")
        await self._send(
            user_id,
            render_plans(renewal=False, cooldown_days=self._trial_cooldown_days),
        )

    async def _on_renew(self, user_id: str, state: ConversationState, _arg: str | None) -> None:
        self._conversations.set(user_id, step="renewing_plan")
        await self._send(
            user_id,
            render_plans(renewal=True, cooldown_days=self._trial_cooldown_days),
        )

    async def _on_select_plan(self, user_id: str, state: ConversationState, plan_id: str | None) -> None:
        plan = PLANS.get(plan_id or "")
        if plan is None:
            await self._send(user_id, render("invalid_plan_option"))
            return
        await self._start_charge(user_id, plan, state.selected_package)

    async def _on_trial(self, user_id: str, state: ConversationState, _arg: str | None) -> None:
        eligibility = self._cooldown.check_eligible(user_id, self._trial_cooldown_days)
        if not eligibility.allowed:
            await self._send(
                user_id,
                render("trial_not_allowed", {"remaining_days": eligibility.remaining_days}),
            )
            return

        await self._send(user_id, render("trial_creating"))
        request = ProvisioningRequest(
            account_class="trial",
            package_id=state.selected_package or self._default_package_id,
            user_id=user_id,
            note="trial",
        )
        outcome = await asyncio.to_thread(self._provisioning.provision, request)
        if isinstance(outcome, ProvisioningError):
            # Eligibility is not consumed by a failed attempt.
            self._audit.provisioning_error(None, user_id, outcome.reason, account_class="trial")
            await self._send(user_id, render("trial_failed"))
            return

        self._cooldown.mark_issued(user_id)
        self._credentials.save(user_id, outcome, "trial")
        self._audit.account_created(None, user_id, outcome, "trial")
        self._conversations.set(user_id, step="menu")
        await self._send(user_id, render_credentials(outcome))

    async def _on_confirm_paid(self, user_id: str, state: ConversationState, _arg: str | None) -> None:
        transaction_id = state.pending_transaction_id
        if transaction_id is None:
            await self._send(user_id, render("no_pending_payment"))
            return
        if not await self._check_claim(user_id, transaction_id):
            return

        self._audit.payment_check_started(
            transaction_id, user_id, self._burst_attempts, source="user"
        )
        result = await self._reconciler.burst_check_paid(
            transaction_id, self._burst_attempts, self._burst_interval
        )
        self._audit.payment_check_result(transaction_id, user_id, result)
        if not result.paid:
            if result.last_error and result.last_status is None:
                self._audit.payment_check_error(transaction_id, user_id, result.last_error)
                await self._send(user_id, render("payment_check_unavailable"))
            else:
                await self._send(user_id, render("payment_not_confirmed"))
            return

        if not self._mark_paid(transaction_id, user_id):
            await self._send(user_id, render("transaction_not_yours"))
            return
        await self._send(user_id, render("payment_processing"))
        await self._finalize(transaction_id, user_id)

    async def _on_not_paid(self, user_id: str, state: ConversationState, _arg: str | None) -> None:
        await self._send(user_id, render("not_paid_ack"))

    async def _on_attach_txid(self, user_id: str, state: ConversationState, transaction_id: str | None) -> None:
        if not transaction_id or not _TXID_FORMAT.match(transaction_id):
            self._audit.invalid_transaction_id(user_id, transaction_id)
            await self._send(user_id, render("txid_invalid"))
            return
        if not await self._check_claim(user_id, transaction_id):
            return

        try:
            self._ledger.set(transaction_id, owner=user_id)
        except OwnershipConflict as e:
            self._audit.ownership_violation(transaction_id, user_id, e.owner)
            await self._send(user_id, render("transaction_not_yours"))
            return
        self._conversations.set(user_id, pending_transaction_id=transaction_id)
        await self._send(user_id, render("txid_attached", {"transaction_id": transaction_id}))

    async def _on_status(self, user_id: str, state: ConversationState, _arg: str | None) -> None:
        by_class = self._credentials.get(user_id)
        if not by_class and not state.has_pending_payment:
            await self._send(user_id, render("status_empty"))
            return
        await self._send(user_id, render_status(by_class, state.pending_transaction_id))

    async def _on_credentials(self, user_id: str, state: ConversationState, _arg: str | None) -> None:
        by_class = self._credentials.get(user_id)
        if not by_class:
            await self._send(user_id, render("credentials_empty"))
            return
        await self._send(user_id, render_stored_credentials(by_class))

    async def _on_tutorials(self, user_id: str, state: ConversationState, _arg: str | None) -> None:
        self._conversations.set(user_id, step="choosing_tutorial", tutorial_context=None)
        await self._send(user_id, render_tutorials(TUTORIALS))

    async def _on_select_tutorial(self, user_id: str, state: ConversationState, option: str | None) -> None:
        tutorial = TUTORIALS.get(option or "")
        if tutorial is None:
            self._conversations.reset_to_menu(user_id)
            await self._send(user_id, render("invalid_tutorial", {"max_option": len(TUTORIALS)}))
            return

        self._conversations.set(
            user_id, step="choosing_install_option", tutorial_context=tutorial.option
        )
        await self._send(
            user_id,
            render(
                "install_options",
                {
                    "device_name": tutorial.name.upper(),
                    "app": tutorial.app,
                    "price_brl": format_brl(PLANS[INSTALLATION_PLAN_ID].price_cents),
                },
            ),
        )

    async def _on_install_option(self, user_id: str, state: ConversationState, option: str | None) -> None:
        tutorial = TUTORIALS.get(state.tutorial_context or "")
        if tutorial is None:
            self._conversations.reset_to_menu(user_id)
            await self._send(user_id, render("unknown_command"))
            return

        if option == "1":
            self._conversations.reset_to_menu(user_id)
            await self._send(
                user_id,
                render(
                    "tutorial_diy",
                    {
                        "device_name": tutorial.name,
                        "app": tutorial.app,
                        "video_url": tutorial.video_url,
                    },
                ),
            )
        elif option == "2":
            # Step is kept so "3" can hire the technician next.
            await self._send(
                user_id,
                render(
                    "technician_info",
                    {
                        "device_name": tutorial.name,
                        "price_brl": format_brl(PLANS[INSTALLATION_PLAN_ID].price_cents),
                    },
                ),
            )
        elif option == "3":
            await self._start_charge(user_id, PLANS[INSTALLATION_PLAN_ID], None)
            # Back to the menu with the installation charge still pending.
            self._conversations.set(user_id, step="menu", tutorial_context=None)
        else:
            self._conversations.reset_to_menu(user_id)
            await self._send(user_id, render("invalid_install_option"))

    async def _on_unknown(self, user_id: str, state: ConversationState, _arg: str | None) -> None:
        if state.step in PLAN_STEPS:
            await self._send(user_id, render("invalid_plan_option"))
            return
        await self._send(user_id, render("unknown_command"))

    # ------------------------------------------------------------------
    # Payment protocol
    # ------------------------------------------------------------------

    async def _start_charge(self, user_id: str, plan: Plan, package_id: int | None) -> None:
        outcome = await asyncio.to_thread(self._payments.create_charge, user_id, plan)
        if isinstance(outcome, ChargeError):
            logger.warning(
                "charge creation failed",
                extra={
                    "extra_fields": {
                        **safe_log_context(plan_id=plan.plan_id, reason=outcome.reason),
                        "user_ref": mask_user_id(user_id),
                    }
                },
            )
            await self._send(user_id, render("charge_failed"))
            return

        transaction_id = outcome.transaction_id
        self._ledger.set(
            transaction_id,
            status="pending",
            owner=user_id,
            plan_id=plan.plan_id,
            package_id=package_id or self._default_package_id,
        )
        # Supersedes any earlier pending transaction for this user.
        self._conversations.set(
            user_id, pending_transaction_id=transaction_id, selected_plan=plan.plan_id
        )
        self._audit.charge_created(transaction_id, user_id, outcome.amount_cents, plan.plan_id)

        await self._send(user_id, render_charge(plan, outcome))
        await self._send(user_id, render("ask_payment_confirmation"))

    async def _check_claim(self, user_id: str, transaction_id: str) -> bool:
        """Reject claims on foreign or already processed transactions."""
        record = self._ledger.get(transaction_id)
        if record is None:
            return True
        if not record.owned_by(user_id):
            self._audit.ownership_violation(transaction_id, user_id, record.owner)
            await self._send(user_id, render("transaction_not_yours"))
            return False
        if record.is_processed:
            self._audit.duplicate_claim_blocked(transaction_id, user_id)
            if record.provisioning_error:
                await self._send(user_id, render("already_processed_awaiting_support"))
            else:
                await self._send(user_id, render("already_processed"))
            return False
        return True

    def _mark_paid(self, transaction_id: str, user_id: str) -> bool:
        """Record money received. False only on an ownership conflict."""
        try:
            self._ledger.set(transaction_id, status="paid", owner=user_id)
        except StaleWriteRejected as e:
            # Already processed by a concurrent finalizer; try_mark_processed
            # will refuse and nothing more happens.
            logger.info(
                "ledger already past paid",
                extra={
                    "extra_fields": safe_log_context(
                        transaction_id=transaction_id, current=e.current
                    )
                },
            )
        except OwnershipConflict as e:
            self._audit.ownership_violation(transaction_id, user_id, e.owner)
            return False
        return True

    async def _finalize(self, transaction_id: str, user_id: str) -> bool:
        """Provision for a paid transaction, at most once.

        Caller must hold the user's lock and have marked the ledger paid.
        """
        if not self._ledger.try_mark_processed(transaction_id, user_id):
            return False

        record = self._ledger.get(transaction_id)
        plan = PLANS.get(record.plan_id or "") if record else None

        if plan is not None and not plan.provisions_account:
            self._clear_pending(user_id, transaction_id)
            await self._send(user_id, render("installation_paid"))
            return True

        request = ProvisioningRequest(
            account_class="official",
            package_id=(record.package_id if record else None) or self._default_package_id,
            user_id=user_id,
            note=f"txid={transaction_id}",
        )
        try:
            outcome = await asyncio.to_thread(self._provisioning.provision, request)
            if not isinstance(outcome, ProvisioningError):
                self._credentials.save(user_id, outcome, "official")
        except Exception as e:
            logger.exception(
                "official provisioning crashed",
                extra={
                    "extra_fields": {
                        **safe_log_context(transaction_id=transaction_id),
                        "user_ref": mask_user_id(user_id),
                    }
                },
            )
            outcome = ProvisioningError(reason=f"unexpected: {type(e).__name__}")

        if isinstance(outcome, ProvisioningError):
            # The ledger stays processed; support resolves this manually.
            self._ledger.set(transaction_id, provisioning_error=outcome.reason)
            self._audit.provisioning_error(
                transaction_id, user_id, outcome.reason, account_class="official"
            )
            await self._send(user_id, render("provisioning_failed_after_payment"))
            return True

        self._audit.account_created(transaction_id, user_id, outcome, "official")
        self._clear_pending(user_id, transaction_id)
        await self._send(user_id, render_credentials(outcome))
        return True

    def _clear_pending(self, user_id: str, transaction_id: str) -> None:
        state = self._conversations.get(user_id)
        if state is not None and state.pending_transaction_id == transaction_id:
            self._conversations.clear(user_id)

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _send(self, user_id: str, text: str) -> None:
        await self._transport.send(user_id, text)

    async def _send_safely(self, user_id: str, text: str) -> None:
        try:
            await self._transport.send(user_id, text)
        except Exception:
            logger.exception(
                "failed to deliver message",
                extra={"extra_fields": {"user_ref": mask_user_id(user_id)}},
            )
