"""
taskmates.constants — Shared Presentation Constants
====================================================

Single source of truth for how badge categories are shown: icon,
localized label and description.  Import from here instead of
duplicating in the API and the worker.
"""

from __future__ import annotations

from taskmates.database.models import BadgeCategory

# ---------------------------------------------------------------------------
# Category presentation (badge cards, gallery headers, toasts)
# ---------------------------------------------------------------------------
CATEGORY_ICONS: dict[BadgeCategory, str] = {
    BadgeCategory.TEAMMATES: "\U0001f91d",        # 🤝
    BadgeCategory.HABITS: "\U0001f3af",           # 🎯
    BadgeCategory.COMMUNITIES: "\U0001f310",      # 🌐
    BadgeCategory.LEADERSHIP: "\U0001f451",       # 👑
    BadgeCategory.COLLABORATION: "\U0001f4aa",    # 💪
    BadgeCategory.POSITIVE_IMPACT: "\u2728",      # ✨
    BadgeCategory.SOCIABILITY: "\U0001f31f",      # 🌟
    BadgeCategory.RELIABILITY: "\U0001f6e1\ufe0f", # 🛡️
    BadgeCategory.CONSISTENCY: "\U0001f525",      # 🔥
}

CATEGORY_LABELS: dict[str, dict[BadgeCategory, str]] = {
    "en": {
        BadgeCategory.TEAMMATES: "Teammates",
        BadgeCategory.HABITS: "Habits",
        BadgeCategory.COMMUNITIES: "Communities",
        BadgeCategory.LEADERSHIP: "Leadership",
        BadgeCategory.COLLABORATION: "Collaboration",
        BadgeCategory.POSITIVE_IMPACT: "Positive Impact",
        BadgeCategory.SOCIABILITY: "Sociability",
        BadgeCategory.RELIABILITY: "Reliability",
        BadgeCategory.CONSISTENCY: "Consistency",
    },
    "pt": {
        BadgeCategory.TEAMMATES: "Parceiros",
        BadgeCategory.HABITS: "Hábitos",
        BadgeCategory.COMMUNITIES: "Comunidades",
        BadgeCategory.LEADERSHIP: "Liderança",
        BadgeCategory.COLLABORATION: "Colaboração",
        BadgeCategory.POSITIVE_IMPACT: "Impacto Positivo",
        BadgeCategory.SOCIABILITY: "Sociabilidade",
        BadgeCategory.RELIABILITY: "Confiabilidade",
        BadgeCategory.CONSISTENCY: "Consistência",
    },
}

CATEGORY_DESCRIPTIONS: dict[str, dict[BadgeCategory, str]] = {
    "en": {
        BadgeCategory.TEAMMATES:
            "Indicates your top teammates. Earned by completing tasks together.",
        BadgeCategory.HABITS:
            "Indicates your target behaviors. Earned by completing tasks with the same skill tag.",
        BadgeCategory.COMMUNITIES:
            "Indicates your most active communities. "
            "Earned by completing tasks with the same community tag.",
        BadgeCategory.LEADERSHIP:
            "Indicates your ability to mobilize people. "
            "Earned by gathering collaborators and requesters in your task.",
        BadgeCategory.COLLABORATION:
            "Indicates your teamwork spirit. Earned by completing tasks as a collaborator for others.",
        BadgeCategory.POSITIVE_IMPACT:
            "Indicates the recognition of your tasks. "
            "Earned by accumulating likes on a single completed task.",
        BadgeCategory.SOCIABILITY:
            "Indicates your ability to build networks. Earned by accumulating followers.",
        BadgeCategory.RELIABILITY:
            "Indicates your integrity. Earned by receiving consecutive maximum ratings.",
        BadgeCategory.CONSISTENCY:
            "Indicates your personal commitment. Earned by accumulating streaks in repeated tasks.",
    },
    "pt": {
        BadgeCategory.TEAMMATES:
            "Indica seus maiores parceiros de equipe. Desbloqueado ao concluir tarefas juntos.",
        BadgeCategory.HABITS:
            "Indica seus comportamentos-alvo. "
            "Desbloqueado ao concluir tarefas com a mesma tag de habilidade.",
        BadgeCategory.COMMUNITIES:
            "Indica as comunidades em que você é mais ativo. "
            "Desbloqueado ao concluir tarefas com a mesma tag de comunidade.",
        BadgeCategory.LEADERSHIP:
            "Indica sua capacidade de mobilizar pessoas. "
            "Desbloqueado ao reunir colaboradores e solicitadores em uma tarefa sua.",
        BadgeCategory.COLLABORATION:
            "Indica seu companheirismo. "
            "Desbloqueado ao concluir tarefas como colaborador de outras pessoas.",
        BadgeCategory.POSITIVE_IMPACT:
            "Indica o reconhecimento das suas tarefas. "
            "Desbloqueado ao acumular likes em uma mesma tarefa concluída.",
        BadgeCategory.SOCIABILITY:
            "Indica sua capacidade de construir redes. Desbloqueado ao acumular seguidores.",
        BadgeCategory.RELIABILITY:
            "Indica sua integridade. Desbloqueado ao receber avaliações máximas consecutivas.",
        BadgeCategory.CONSISTENCY:
            "Indica seu comprometimento pessoal. "
            "Desbloqueado ao acumular streaks em tarefas repetidas.",
    },
}


def _lang(locale: str) -> str:
    return locale if locale in CATEGORY_LABELS else "en"


def category_label(category: BadgeCategory | str, locale: str = "en") -> str:
    return CATEGORY_LABELS[_lang(locale)][BadgeCategory(category)]


def category_catalogue(locale: str = "en") -> list[dict[str, str]]:
    """Icon, label and description for every category, in display order.

    Unknown locales fall back to English.
    """
    lang = _lang(locale)
    return [
        {
            "category": category.value,
            "icon": CATEGORY_ICONS[category],
            "label": CATEGORY_LABELS[lang][category],
            "description": CATEGORY_DESCRIPTIONS[lang][category],
        }
        for category in BadgeCategory
    ]
