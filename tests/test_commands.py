"""Inbound text normalization into commands."""

import pytest

from vendabot.domain.commands import (
    STEP_COMMANDS,
    Command,
    ParsedCommand,
    normalize_text,
    parse_command,
)
from vendabot.domain.conversations import VALID_STEPS, ConversationState

from helpers import USER


def _state(step="menu", pending=None, **kw):
    return ConversationState(user_id=USER, step=step, pending_transaction_id=pending, **kw)


class TestNormalizeText:
    def test_strips_accents_case_and_spaces(self):
        assert normalize_text("  Já   PAGUEI ") == "ja paguei"
        assert normalize_text("Olá") == "ola"
        assert normalize_text("NÃO") == "nao"


class TestParseCommand:
    @pytest.mark.parametrize("step", sorted(VALID_STEPS))
    @pytest.mark.parametrize("text", ["0", "menu", "MENU", "Início", "voltar", "oi", "Olá"])
    def test_reset_from_any_step(self, step, text):
        assert parse_command(text, _state(step, pending="T1")).command == Command.RESET

    def test_no_state_is_menu(self):
        assert parse_command("1", None) == ParsedCommand(Command.SHOW_PLANS)

    @pytest.mark.parametrize(
        "text,command",
        [
            ("1", Command.SHOW_PLANS),
            ("2", Command.STATUS),
            ("3", Command.CREDENTIALS),
            ("4", Command.RENEW),
            ("5", Command.TUTORIALS),
            ("6", Command.TRIAL),
            ("7", Command.UNKNOWN),
            ("qualquer coisa", Command.UNKNOWN),
        ],
    )
    def test_menu_digits(self, text, command):
        assert parse_command(text, _state("menu")).command == command

    @pytest.mark.parametrize(
        "text,command",
        [
            ("planos", Command.SHOW_PLANS),
            ("Status", Command.STATUS),
            ("acesso", Command.CREDENTIALS),
            ("renovar", Command.RENEW),
            ("tutoriais", Command.TUTORIALS),
            ("teste grátis", Command.TRIAL),
        ],
    )
    def test_section_words_from_other_steps(self, text, command):
        assert parse_command(text, _state("choosing_tutorial")).command == command

    def test_plan_name_selects_plan(self):
        parsed = parse_command("Trimestral", _state("menu"))
        assert parsed == ParsedCommand(Command.SELECT_PLAN, "trimestral")

    def test_installation_is_not_a_plan_word(self):
        assert parse_command("instalacao", _state("menu")).command == Command.UNKNOWN

    @pytest.mark.parametrize("step", ["choosing_plan", "renewing_plan"])
    @pytest.mark.parametrize(
        "text,expected",
        [
            ("1", ParsedCommand(Command.TRIAL)),
            ("2", ParsedCommand(Command.SELECT_PLAN, "mensal")),
            ("3", ParsedCommand(Command.SELECT_PLAN, "trimestral")),
            ("4", ParsedCommand(Command.SELECT_PLAN, "semestral")),
            ("5", ParsedCommand(Command.SELECT_PLAN, "anual")),
            ("9", ParsedCommand(Command.UNKNOWN, "9")),
        ],
    )
    def test_plan_step_digits(self, step, text, expected):
        assert parse_command(text, _state(step)) == expected

    @pytest.mark.parametrize("text", ["1", "sim", "S", "paguei", "Já paguei"])
    def test_yes_with_pending_payment(self, text):
        assert parse_command(text, _state("menu", pending="T1")).command == Command.CONFIRM_PAID

    @pytest.mark.parametrize("text", ["2", "não", "n", "ainda não"])
    def test_no_with_pending_payment(self, text):
        assert parse_command(text, _state("menu", pending="T1")).command == Command.NOT_PAID

    def test_pending_confirmation_wins_over_plan_digits(self):
        state = _state("choosing_plan", pending="T1")
        assert parse_command("1", state).command == Command.CONFIRM_PAID
        assert parse_command("2", state).command == Command.NOT_PAID

    def test_yes_without_pending_payment_is_a_step_digit(self):
        assert parse_command("sim", _state("menu")).command == Command.UNKNOWN
        assert parse_command("1", _state("menu")).command == Command.SHOW_PLANS

    def test_tutorial_steps_ignore_pending_payment(self):
        state = _state("choosing_tutorial", pending="T1")
        assert parse_command("1", state) == ParsedCommand(Command.SELECT_TUTORIAL, "1")

        state = _state("choosing_install_option", pending="T1", tutorial_context="2")
        assert parse_command("1", state) == ParsedCommand(Command.INSTALL_OPTION, "1")

    def test_txid_preserves_case(self):
        parsed = parse_command("txid AbC123xyz", _state("menu"))
        assert parsed == ParsedCommand(Command.ATTACH_TXID, "AbC123xyz")

    @pytest.mark.parametrize("text", ["TXID: QWE9876", "Txid QWE9876", "TXID   QWE9876"])
    def test_txid_separators(self, text):
        assert parse_command(text, _state("choosing_tutorial")).argument == "QWE9876"

    def test_txid_without_value_is_not_attach(self):
        assert parse_command("TXID", _state("menu")).command == Command.UNKNOWN

    def test_empty_text(self):
        assert parse_command("", _state("menu")).command == Command.UNKNOWN


class TestStepCommands:
    def test_every_step_is_covered(self):
        assert set(STEP_COMMANDS) == set(VALID_STEPS)

    def test_reset_is_reachable_everywhere(self):
        for commands in STEP_COMMANDS.values():
            assert Command.RESET in commands
            assert Command.UNKNOWN in commands
