"""Inbound text -> Command normalization.

Numeric replies are authoritative; text synonyms ("menu", "mensal", "sim")
are a convenience layer applied here, before the state machine sees
anything. The state machine only ever deals with Command values.
"""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass
from enum import Enum

from vendabot.domain.conversations import PLAN_STEPS, ConversationState
from vendabot.domain.plans import PLAN_OPTIONS, PLANS, TRIAL_OPTION


class Command(str, Enum):
    RESET = "reset"
    SHOW_PLANS = "show_plans"
    SELECT_PLAN = "select_plan"
    TRIAL = "trial"
    CONFIRM_PAID = "confirm_paid"
    NOT_PAID = "not_paid"
    ATTACH_TXID = "attach_txid"
    STATUS = "status"
    CREDENTIALS = "credentials"
    RENEW = "renew"
    TUTORIALS = "tutorials"
    SELECT_TUTORIAL = "select_tutorial"
    INSTALL_OPTION = "install_option"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ParsedCommand:
    command: Command
    argument: str | None = None


_RESET_WORDS = frozenset({"0", "menu", "inicio", "voltar", "oi", "ola"})
_YES_WORDS = frozenset({"1", "sim", "s", "paguei", "ja paguei"})
_NO_WORDS = frozenset({"2", "nao", "n", "ainda nao"})

_TXID_PATTERN = re.compile(r"^txid[\s:]+(\S+)$", re.IGNORECASE)

# Menu digits, valid only while at the menu.
MENU_OPTIONS: dict[str, Command] = {
    "1": Command.SHOW_PLANS,
    "2": Command.STATUS,
    "3": Command.CREDENTIALS,
    "4": Command.RENEW,
    "5": Command.TUTORIALS,
    "6": Command.TRIAL,
}

# Words accepted from any step.
_SECTION_WORDS: dict[str, Command] = {
    "planos": Command.SHOW_PLANS,
    "comprar": Command.SHOW_PLANS,
    "status": Command.STATUS,
    "acesso": Command.CREDENTIALS,
    "credenciais": Command.CREDENTIALS,
    "renovar": Command.RENEW,
    "tutoriais": Command.TUTORIALS,
    "tutorial": Command.TUTORIALS,
    "teste": Command.TRIAL,
    "teste gratis": Command.TRIAL,
}

# Commands each step can produce from parse_command(); used to validate the
# orchestrator's handler table.
_ALWAYS = frozenset(
    {
        Command.RESET,
        Command.ATTACH_TXID,
        Command.CONFIRM_PAID,
        Command.NOT_PAID,
        Command.SELECT_PLAN,
        Command.UNKNOWN,
        *_SECTION_WORDS.values(),
    }
)

STEP_COMMANDS: dict[str, frozenset[Command]] = {
    "menu": _ALWAYS | frozenset(MENU_OPTIONS.values()),
    "choosing_plan": _ALWAYS | {Command.TRIAL},
    "renewing_plan": _ALWAYS | {Command.TRIAL},
    "choosing_tutorial": _ALWAYS | {Command.SELECT_TUTORIAL},
    "choosing_install_option": _ALWAYS | {Command.INSTALL_OPTION},
}


def normalize_text(text: str) -> str:
    """Lowercase, strip accents and collapse whitespace."""
    decomposed = unicodedata.normalize("NFD", text)
    stripped = "".join(c for c in decomposed if unicodedata.category(c) != "Mn")
    return " ".join(stripped.lower().split())


def parse_command(text: str, state: ConversationState | None) -> ParsedCommand:
    """Map raw user text plus the current state to a command.

    Precedence: reset, TXID, payment yes/no (only with a pending
    transaction), global words, then digits interpreted by the current step.
    """
    normalized = normalize_text(text or "")
    step = state.step if state else "menu"
    pending = state is not None and state.has_pending_payment

    if normalized in _RESET_WORDS:
        return ParsedCommand(Command.RESET)

    # Transaction ids are case-sensitive on the gateway; match the raw text.
    match = _TXID_PATTERN.match((text or "").strip())
    if match:
        return ParsedCommand(Command.ATTACH_TXID, match.group(1))

    if pending and step not in ("choosing_tutorial", "choosing_install_option"):
        if normalized in _YES_WORDS:
            return ParsedCommand(Command.CONFIRM_PAID)
        if normalized in _NO_WORDS:
            return ParsedCommand(Command.NOT_PAID)

    if normalized in PLANS and PLANS[normalized].provisions_account:
        return ParsedCommand(Command.SELECT_PLAN, normalized)
    if normalized in _SECTION_WORDS:
        return ParsedCommand(_SECTION_WORDS[normalized])

    if step in PLAN_STEPS:
        if normalized == TRIAL_OPTION:
            return ParsedCommand(Command.TRIAL)
        if normalized in PLAN_OPTIONS:
            return ParsedCommand(Command.SELECT_PLAN, PLAN_OPTIONS[normalized])
        return ParsedCommand(Command.UNKNOWN, normalized)

    if step == "choosing_tutorial":
        return ParsedCommand(Command.SELECT_TUTORIAL, normalized)

    if step == "choosing_install_option":
        return ParsedCommand(Command.INSTALL_OPTION, normalized)

    if normalized in MENU_OPTIONS:
        return ParsedCommand(MENU_OPTIONS[normalized])

    return ParsedCommand(Command.UNKNOWN, normalized)
