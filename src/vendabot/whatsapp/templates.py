"""WhatsApp message templates.

Templates contain static text with placeholders. Credentials are only
interpolated at send time, never persisted in rendered form.
"""

from typing import Any

from vendabot.domain.collaborators import AccountCredentials, Charge
from vendabot.domain.plans import PLANS, Plan, Tutorial, format_brl

BACK_TO_MENU = "📝 Digite *0* para voltar ao menu principal"

TEMPLATES: dict[str, dict[str, Any]] = {
    "menu": {
        "text": (
            "🎬 *BEM-VINDO AO IPTV BOT* 🎬\n\n"
            "Escolha uma opção digitando apenas o *NÚMERO*:\n\n"
            "1️⃣ *PLANOS* - Ver planos disponíveis\n"
            "2️⃣ *STATUS* - Verificar sua assinatura\n"
            "3️⃣ *CREDENCIAIS* - Ver seus logins IPTV\n"
            "4️⃣ *RENOVAR* - Renovar assinatura\n"
            "5️⃣ *TUTORIAIS* - Como instalar IPTV\n"
            "6️⃣ *TESTE GRÁTIS* - Conta teste limitada\n\n"
            "💡 *Dica:* Digite *0* para voltar ao menu principal."
        ),
        "allowed_params": [],
    },
    "plans": {
        "text": (
            "{title}\n"
            "Escolha digitando apenas o *NÚMERO*:\n\n"
            "1️⃣ *CONTA TESTE* - GRÁTIS\n"
            "⚠️ 1 teste por cliente a cada {cooldown_days} dias\n\n"
            "{plan_lines}\n"
            "🔧 *Taxa de instalação técnica:* R$ {installation_brl} (opcional)\n\n"
            "💳 *Pagamento via PIX* - Ativação instantânea!\n"
            + BACK_TO_MENU
        ),
        "allowed_params": ["title", "cooldown_days", "plan_lines", "installation_brl"],
    },
    "charge_created": {
        "text": (
            "💳 PIX gerado para *{plan_name}*\n"
            "💰 *Valor:* R$ {amount_brl}\n"
            "{due_line}"
            "{savings_line}"
            "\n📋 *PIX COPIA E COLA:*\n{qr_payload}\n"
            "{qr_image_line}"
            "\n🔖 *Transação:* {transaction_id}"
        ),
        "allowed_params": [
            "plan_name",
            "amount_brl",
            "due_line",
            "savings_line",
            "qr_payload",
            "qr_image_line",
            "transaction_id",
        ],
    },
    "ask_payment_confirmation": {
        "text": (
            "💳 *CONFIRMAÇÃO DE PAGAMENTO*\n\n"
            "Você efetuou o pagamento?\n\n"
            "1️⃣ *SIM* - Já paguei\n"
            "2️⃣ *NÃO* - Ainda não paguei\n\n"
            "Digite apenas o *NÚMERO* da opção:"
        ),
        "allowed_params": [],
    },
    "charge_failed": {
        "text": "❌ Não foi possível gerar o PIX agora. Tente novamente em alguns minutos.",
        "allowed_params": [],
    },
    "payment_processing": {
        "text": "Pagamento confirmado! Criando sua conta agora... ⏳",
        "allowed_params": [],
    },
    "payment_not_confirmed": {
        "text": (
            "Ainda não consta pagamento confirmado. "
            "Aguarde alguns minutos e responda *1* novamente."
        ),
        "allowed_params": [],
    },
    "payment_check_unavailable": {
        "text": (
            "Não conseguimos consultar o pagamento agora. "
            "Tente novamente em alguns minutos."
        ),
        "allowed_params": [],
    },
    "not_paid_ack": {
        "text": "Tudo bem! Quando pagar, responda *1* para confirmarmos.",
        "allowed_params": [],
    },
    "no_pending_payment": {
        "text": (
            "Não encontramos uma cobrança pendente para você.\n\n"
            "Se você já pagou, envie *TXID* seguido do código da transação "
            "(ex: TXID ABC123).\n\n" + BACK_TO_MENU
        ),
        "allowed_params": [],
    },
    "already_processed": {
        "text": (
            "✅ Este pagamento já foi processado. "
            "Digite *3* no menu para ver suas credenciais."
        ),
        "allowed_params": [],
    },
    "already_processed_awaiting_support": {
        "text": (
            "✅ Este pagamento já foi confirmado, mas sua conta ainda não foi criada. "
            "Nosso suporte já foi avisado e vai enviar seu acesso em breve."
        ),
        "allowed_params": [],
    },
    "transaction_not_yours": {
        "text": (
            "❌ Esta transação não pode ser usada por este número. "
            "Fale com o suporte se precisar de ajuda."
        ),
        "allowed_params": [],
    },
    "txid_attached": {
        "text": (
            "🔖 Transação *{transaction_id}* vinculada.\n\n"
            "Responda *1* quando o pagamento estiver concluído."
        ),
        "allowed_params": ["transaction_id"],
    },
    "txid_invalid": {
        "text": (
            "❌ Código de transação inválido. Envie *TXID* seguido do código "
            "exatamente como aparece no comprovante."
        ),
        "allowed_params": [],
    },
    "credentials_empty": {
        "text": (
            "Você ainda não possui acessos cadastrados. "
            "Digite *1* no menu para ver os planos ou *6* para um teste grátis."
        ),
        "allowed_params": [],
    },
    "provisioning_failed_after_payment": {
        "text": (
            "Seu pagamento foi confirmado, mas houve uma falha ao criar sua conta. "
            "Nosso suporte já foi avisado e vai enviar seu acesso em breve."
        ),
        "allowed_params": [],
    },
    "installation_paid": {
        "text": (
            "✅ Pagamento da instalação técnica confirmado!\n\n"
            "Um técnico vai entrar em contato em até 2 horas para agendar "
            "a instalação."
        ),
        "allowed_params": [],
    },
    "credentials": {
        "text": (
            "🎉 *CONTA IPTV CRIADA COM SUCESSO!*\n\n"
            "👤 *Usuário:* {username}\n"
            "🔑 *Senha:* {password}\n"
            "📅 *Vencimento:* {expires_at}\n"
            "{links_block}\n"
            "📱 *COMO USAR:*\n"
            "1. Baixe um app IPTV\n"
            "2. Configure com suas credenciais\n"
            "3. Use um dos links fornecidos\n\n"
            "✅ Suas credenciais ficam disponíveis na opção *3* do menu."
        ),
        "allowed_params": ["username", "password", "expires_at", "links_block"],
    },
    "trial_not_allowed": {
        "text": (
            "Você já utilizou o período de teste. Nova tentativa apenas em "
            "{remaining_days} dias. Apenas 1 teste por usuário."
        ),
        "allowed_params": ["remaining_days"],
    },
    "trial_creating": {
        "text": "Gerando acesso de TESTE... ⏳",
        "allowed_params": [],
    },
    "trial_failed": {
        "text": (
            "❌ Não foi possível gerar seu teste agora. "
            "Tente novamente mais tarde."
        ),
        "allowed_params": [],
    },
    "status_summary": {
        "text": "📋 *STATUS DA SUA CONTA*\n\n{lines}\n" + BACK_TO_MENU,
        "allowed_params": ["lines"],
    },
    "status_empty": {
        "text": (
            "❌ Você não possui assinaturas ativas. "
            "Digite *1* para ver planos disponíveis."
        ),
        "allowed_params": [],
    },
    "stored_credentials": {
        "text": "🔐 *SEUS ACESSOS*\n\n{lines}\n" + BACK_TO_MENU,
        "allowed_params": ["lines"],
    },
    "tutorials": {
        "text": (
            "📺 *TUTORIAIS DE INSTALAÇÃO IPTV* 📺\n\n"
            "Escolha digitando apenas o *NÚMERO*:\n\n"
            "{tutorial_lines}\n\n" + BACK_TO_MENU
        ),
        "allowed_params": ["tutorial_lines"],
    },
    "install_options": {
        "text": (
            "🔧 *INSTALAÇÃO {device_name}* 🔧\n\n"
            "Escolha digitando apenas o *NÚMERO*:\n\n"
            "1️⃣ *FAÇA VOCÊ MESMO* - GRATUITO\n"
            "• Tutorial em vídeo passo a passo\n"
            "• Aplicativo: {app}\n\n"
            "2️⃣ *INSTALAÇÃO TÉCNICA* - R$ {price_brl}\n"
            "• Técnico especializado, instalação remota\n\n" + BACK_TO_MENU
        ),
        "allowed_params": ["device_name", "app", "price_brl"],
    },
    "tutorial_diy": {
        "text": (
            "🎯 *TUTORIAL GRATUITO* 🎯\n\n"
            "📺 *Dispositivo:* {device_name}\n"
            "📱 *Aplicativo:* {app}\n\n"
            "🎬 *Vídeo:*\n{video_url}\n\n"
            "💡 *Dica:* Tenha suas credenciais IPTV em mãos antes de começar!\n\n"
            + BACK_TO_MENU
        ),
        "allowed_params": ["device_name", "app", "video_url"],
    },
    "technician_info": {
        "text": (
            "👨‍💻 *INSTALAÇÃO TÉCNICA* 👨‍💻\n\n"
            "📺 *Dispositivo:* {device_name}\n"
            "💰 *Valor:* R$ {price_brl}\n\n"
            "⏰ *COMO FUNCIONA:*\n"
            "1️⃣ Você paga via PIX\n"
            "2️⃣ Agendamos horário (mesmo dia)\n"
            "3️⃣ Técnico acessa seu dispositivo remotamente\n\n"
            "📱 Digite *3* para contratar a instalação técnica\n\n" + BACK_TO_MENU
        ),
        "allowed_params": ["device_name", "price_brl"],
    },
    "invalid_plan_option": {
        "text": (
            "❌ Opção inválida. Digite *1* para teste grátis ou de *2* a *5* "
            "para escolher um plano.\n\n" + BACK_TO_MENU
        ),
        "allowed_params": [],
    },
    "invalid_tutorial": {
        "text": (
            "❌ Opção inválida. Digite um número de *1* a *{max_option}* "
            "conforme o menu de tutoriais.\n\n"
            "Digite *0* para voltar ao menu principal."
        ),
        "allowed_params": ["max_option"],
    },
    "invalid_install_option": {
        "text": (
            "❌ Opção inválida. Digite *1* para tutorial gratuito, *2* para "
            "instalação técnica ou *0* para voltar ao menu."
        ),
        "allowed_params": [],
    },
    "unknown_command": {
        "text": (
            "❓ Comando não reconhecido.\n\n"
            "Digite *0* para ver o menu de opções disponíveis."
        ),
        "allowed_params": [],
    },
    "generic_error": {
        "text": "Desculpe, ocorreu um erro inesperado. Tente novamente mais tarde.",
        "allowed_params": [],
    },
}


def render(template_key: str, params: dict[str, Any] | None = None) -> str:
    """Render template with params. Validates allowed_params.

    Args:
        template_key: Template identifier.
        params: Parameters to interpolate (must be in allowed_params).

    Returns:
        Rendered text string.

    Raises:
        ValueError: If template_key unknown or params contains disallowed keys.
    """
    if template_key not in TEMPLATES:
        raise ValueError(f"Unknown template: {template_key}")

    params = params or {}
    template = TEMPLATES[template_key]
    allowed = set(template["allowed_params"])
    provided = set(params.keys())

    extras = provided - allowed
    if extras:
        raise ValueError(f"Disallowed params for {template_key}: {extras}")
    missing = allowed - provided
    if missing:
        raise ValueError(f"Missing params for {template_key}: {missing}")

    return template["text"].format(**params)


# Builders for messages whose params need formatting first.


def render_plans(*, renewal: bool, cooldown_days: int) -> str:
    title = (
        "🔄 *RENOVAÇÃO DE ASSINATURA*"
        if renewal
        else "📺 *PLANOS DISPONÍVEIS*"
    )
    lines = []
    for option, plan_id in (("2", "mensal"), ("3", "trimestral"), ("4", "semestral"), ("5", "anual")):
        plan = PLANS[plan_id]
        line = f"{option}️⃣ *PLANO {plan.name.upper()}* - R$ {format_brl(plan.price_cents)}"
        if plan.savings_cents:
            line += (
                f"\n💸 *ECONOMIZE R$ {format_brl(plan.savings_cents)}* "
                f"(sai por R$ {format_brl(plan.monthly_cents)}/mês)"
            )
        lines.append(line + "\n")
    return render(
        "plans",
        {
            "title": title,
            "cooldown_days": cooldown_days,
            "plan_lines": "\n".join(lines),
            "installation_brl": format_brl(PLANS["instalacao"].price_cents),
        },
    )


def render_charge(plan: Plan, charge: Charge) -> str:
    due_line = (
        f"📅 *Vencimento:* {charge.due_at.strftime('%d/%m/%Y')}\n"
        if charge.due_at
        else ""
    )
    savings_line = (
        f"💸 *VOCÊ ESTÁ ECONOMIZANDO R$ {format_brl(plan.savings_cents)}!*\n"
        if plan.savings_cents
        else ""
    )
    qr_image_line = (
        f"\n🖼️ *QR Code (link):*\n{charge.qr_image_url}\n" if charge.qr_image_url else ""
    )
    return render(
        "charge_created",
        {
            "plan_name": plan.name,
            "amount_brl": format_brl(charge.amount_cents),
            "due_line": due_line,
            "savings_line": savings_line,
            "qr_payload": charge.qr_payload or "N/A",
            "qr_image_line": qr_image_line,
            "transaction_id": charge.transaction_id,
        },
    )


def _links_block(links: list[str], limit: int = 3) -> str:
    if not links:
        return ""
    lines = ["\n🔗 *Links disponíveis:*"]
    lines += [f"{i}. {link}" for i, link in enumerate(links[:limit], start=1)]
    if len(links) > limit:
        lines.append(f"... e mais {len(links) - limit} links")
    return "\n".join(lines) + "\n"


def render_credentials(credentials: AccountCredentials) -> str:
    return render(
        "credentials",
        {
            "username": credentials.username,
            "password": credentials.password,
            "expires_at": credentials.expires_at or "-",
            "links_block": _links_block(credentials.access_links),
        },
    )


_CLASS_LABELS = {"official": "Assinatura", "trial": "Teste"}


def render_stored_credentials(by_class: dict[str, AccountCredentials]) -> str:
    lines = []
    for account_class in ("official", "trial"):
        creds = by_class.get(account_class)
        if creds is None:
            continue
        lines.append(
            f"📦 *{_CLASS_LABELS[account_class]}*\n"
            f"👤 *Usuário:* {creds.username}\n"
            f"🔑 *Senha:* {creds.password}\n"
            f"📅 *Vencimento:* {creds.expires_at or '-'}\n"
        )
    return render("stored_credentials", {"lines": "\n".join(lines)})


def render_status(
    by_class: dict[str, AccountCredentials], pending_transaction_id: str | None
) -> str:
    lines = []
    for account_class in ("official", "trial"):
        creds = by_class.get(account_class)
        if creds is None:
            continue
        lines.append(
            f"📦 *{_CLASS_LABELS[account_class]}:* {creds.username}\n"
            f"📅 *Vence em:* {creds.expires_at or '-'}\n"
        )
    if pending_transaction_id:
        lines.append(f"⏳ *Pagamento pendente:* {pending_transaction_id}\n")
    return render("status_summary", {"lines": "\n".join(lines)})


def render_tutorials(tutorials: dict[str, Tutorial]) -> str:
    lines = [f"{t.option}️⃣ *{t.name.upper()}*" for t in tutorials.values()]
    return render("tutorials", {"tutorial_lines": "\n".join(lines)})
