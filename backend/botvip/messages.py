"""User-facing message texts (Portuguese, as sold to the bot's audience)."""

WELCOME = (
    "👋 Bem-vindo ao *BOTVIP.CO!*\n\n"
    "Aqui você encontra ferramentas exclusivas:\n"
    "💎 Recursos premium\n"
    "⚡ Automação avançada\n"
    "🚀 Suporte especializado"
)
WELCOME_PHOTO_CAPTION = "🤖 Bem-vindo ao BOTVIP.CO!"
MAIN_MENU = "📌 Menu principal:"
CHOOSE_PLAN = "💳 Escolha seu plano:"
NO_PLANS = "⚠️ Nenhum plano está disponível no momento. Tente novamente mais tarde."
HELP = "❓ Central de Ajuda.\nUse /planos para ver os planos e /vip para ver sua assinatura."
SUPPORT = "🛠 Suporte oficial: {support_handle}"
UNKNOWN_OPTION = "❌ Opção desconhecida!"
PLAN_NOT_FOUND = "Erro ao localizar o plano selecionado."

CHECKOUT_LINK = "💳 Clique no botão abaixo para realizar o pagamento:"
CHECKOUT_BUTTON = "💰 Finalizar Pagamento"
CHECKOUT_FAILED = "❌ Não foi possível criar o checkout agora. Tente novamente em instantes."
RETRY_BUTTON = "🔄 Tentar novamente"
CHECKOUT_SUCCESS_RETURN = "✔️ Checkout concluído! Seu pagamento está sendo processado."
CHECKOUT_CANCEL_RETURN = "Pagamento cancelado. Quando quiser, use /planos para tentar de novo."

VIP_ACTIVE = "✅ Sua assinatura VIP está ativa{until}."
VIP_ACTIVE_UNTIL = " até {date}"
VIP_INACTIVE = "🔒 Você ainda não é VIP. Use /planos para assinar."
PROTECTED_CONTENT = "🔓 Conteúdo exclusivo VIP liberado! Confira as novidades no canal."
PROTECTED_DENIED = "🔒 Este conteúdo é exclusivo para assinantes VIP. Use /planos para assinar."

GRANT_WITH_INVITE = (
    "🎉 Pagamento confirmado! Sua assinatura foi ativada com sucesso.\n\n"
    "Aqui está seu link de acesso ao canal VIP (uso único, válido por 24h):\n{invite_link}"
)
GRANT_NO_CHANNEL = "🎉 Pagamento confirmado! Sua assinatura foi ativada com sucesso."
GRANT_MANUAL = (
    "🎉 Pagamento confirmado! Não consegui gerar seu link de acesso automaticamente — "
    "ele será enviado manualmente em breve."
)
RENEWAL_CONFIRMED = "🔁 Pagamento da renovação confirmado! Seu acesso VIP continua ativo{until}."
LIFETIME_UPGRADE = "🚀 Pagamento confirmado! Seu acesso VIP agora é vitalício e continua ativo no canal."
REVOKED = "⛔ Sua assinatura VIP foi encerrada e o acesso ao canal foi removido. Use /planos para assinar novamente."
PAYMENT_FAILED = (
    "⚠️ Não conseguimos processar o pagamento da sua assinatura. "
    "Atualize sua forma de pagamento para não perder o acesso VIP."
)

FOLLOWUP_A = (
    "👋 Ei! Vi que você começou aqui no BOTVIP e deu uma olhada nas ofertas, mas não finalizou a compra. "
    "Posso tirar alguma dúvida rápida pra você? Se preferir, também ofereço uma call curta (paga) "
    "pra te orientar — me diz se quer que eu envie o link."
)
FOLLOWUP_B = (
    "Olá de novo! Só passando pra lembrar das vantagens do plano VIP: conteúdo exclusivo, "
    "atualizações e suporte. Quer que eu envie o link novamente ou prefere que eu te ofereça "
    "a opção de uma call rápida para tirar dúvidas?"
)
FOLLOWUP_BUTTON = "💳 Assinar agora"
