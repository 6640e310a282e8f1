"""Plan and tutorial catalog (static data)."""

from __future__ import annotations

from dataclasses import dataclass

DEFAULT_PACKAGE_ID = 2


@dataclass(frozen=True)
class Plan:
    """A purchasable item.

    Attributes:
        plan_id: Stable identifier (also used in ledger entries).
        name: Display name.
        price_cents: Price in BRL cents.
        duration_days: Access period granted (0 for services).
        savings_cents: Savings versus paying monthly, for display.
        provisions_account: False for services that do not create an
            account (installation fee).
    """

    plan_id: str
    name: str
    price_cents: int
    duration_days: int
    savings_cents: int = 0
    provisions_account: bool = True

    @property
    def monthly_cents(self) -> int:
        if self.duration_days < 30:
            return self.price_cents
        return round(self.price_cents / (self.duration_days / 30))


PLANS: dict[str, Plan] = {
    "mensal": Plan("mensal", "Mensal", 3500, 30),
    "trimestral": Plan("trimestral", "Trimestral", 9000, 90, savings_cents=1500),
    "semestral": Plan("semestral", "Semestral", 17000, 180, savings_cents=4000),
    "anual": Plan("anual", "Anual", 30000, 365, savings_cents=12000),
    "instalacao": Plan(
        "instalacao", "Instalação técnica", 2000, 0, provisions_account=False
    ),
}

INSTALLATION_PLAN_ID = "instalacao"

# Digits on the plans screen. "1" on that screen is the free trial.
PLAN_OPTIONS: dict[str, str] = {
    "2": "mensal",
    "3": "trimestral",
    "4": "semestral",
    "5": "anual",
}

TRIAL_OPTION = "1"


@dataclass(frozen=True)
class Tutorial:
    option: str
    device: str
    name: str
    app: str
    video_url: str


TUTORIALS: dict[str, Tutorial] = {
    t.option: t
    for t in (
        Tutorial("1", "samsung", "Samsung Smart TV", "Lazer Play",
                 "https://youtu.be/qlSRNVQgkIU"),
        Tutorial("2", "android", "Android TV / TV Box", "Uniplay IPTV",
                 "https://www.youtube.com/watch?v=FAoP4uu3vWs"),
        Tutorial("3", "lg", "LG Smart TV", "Smarters Pro",
                 "https://www.youtube.com/watch?v=2sMmOCtlhoo"),
        Tutorial("4", "roku", "Roku TV", "IPTV Player",
                 "https://www.youtube.com/watch?v=f_-1YmGawlE"),
        Tutorial("5", "pc", "PC/Notebook", "Purple Player",
                 "https://www.youtube.com/watch?v=qtjlLoBM1cw"),
        Tutorial("6", "ssiptv", "SS IPTV", "SS IPTV (adicionar playlist)",
                 "https://www.youtube.com/watch?v=NSzrIep2ZjM"),
        Tutorial("7", "android_mobile", "Celular Android", "IPTV Smarters Pro",
                 "https://www.youtube.com/watch?v=kYBXTwHhPUc"),
        Tutorial("8", "ios_mobile", "iPhone/iPad", "IPTV Smarters Pro",
                 "https://www.youtube.com/watch?v=mF8jJ5rKjgE"),
    )
}


def format_brl(cents: int) -> str:
    """Format cents as a BRL amount without symbol (e.g. 3500 -> '35,00')."""
    reais, centavos = divmod(cents, 100)
    return f"{reais:,}".replace(",", ".") + f",{centavos:02d}"
