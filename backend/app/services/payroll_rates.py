# backend/app/services/payroll_rates.py
"""
Nómina Rate Tables: loader + compute helpers (Colombia)

Config precedence per rate component:
    1) Environment variables (override specific fields)
    2) JSON files under app/data/payroll/<year>/
    3) Built-in defaults (keeps app working without data files)

Year resolution:
    - NOM_RATES_YEAR (ALWAYS used if set, even if folders are missing)
    - requested year (if folder exists; else closest available; else the requested year)
    - default 2025 (closest available; else 2025)

Implemented now:
    • Legal values: SMMLV, auxilio de transporte, UVT per year
    • Ley 2101: weekly hours 48 → 47 → 46 → 44 → 42, monthly hour table
    • Overtime: base hour = (salary/30) / (weekly/6); factors 1.25 / 1.75 / 2.0 / 2.5
    • Surcharges: divisor 220 from 2025-07-01; night 35%; Sunday 75% → 80% → 90% → 100%
    • Seguridad social: EE health 4% / pension 4%; ER health 8.5% / pension 12% / ARL / caja / ICBF / SENA
    • Fondo de solidaridad pensional (from 4 SMMLV)
    • Retención en la fuente: simplified flat rate above an exempt amount in UVT
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from functools import lru_cache
from typing import Any, Dict, Optional, List

logger = logging.getLogger(__name__)

# ---------------------------- Utilities ---------------------------- #


def D(val: Any) -> Decimal:
    if isinstance(val, Decimal):
        return val
    try:
        return Decimal(str(val))
    except Exception:
        return Decimal("0")


def q2(val: Decimal) -> Decimal:
    return D(val).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def q0(val: Decimal) -> Decimal:
    """Round to whole pesos (COP has no cents in practice)."""
    return D(val).quantize(Decimal("1"), rounding=ROUND_HALF_UP)


def _data_root() -> str:
    here = os.path.dirname(os.path.abspath(__file__))  # .../app/services
    return os.path.normpath(os.path.join(here, "..", "data", "payroll"))


def _year_dir(year: int) -> str:
    return os.path.join(_data_root(), str(year))


def _list_available_years() -> List[int]:
    root = _data_root()
    try:
        entries = os.listdir(root)
    except FileNotFoundError:
        return []
    yrs: List[int] = []
    for name in entries:
        p = os.path.join(root, name)
        if os.path.isdir(p):
            try:
                yrs.append(int(name))
            except ValueError:
                pass
    return sorted(set(yrs))


def _env_decimal(key: str, default: Decimal) -> Decimal:
    raw = os.getenv(key)
    if raw is None:
        return default
    try:
        return Decimal(raw.strip())
    except Exception:
        logger.warning("Ignoring non-numeric %s=%r", key, raw)
        return default


def _resolve_year(requested: Optional[int]) -> int:
    env_override = os.getenv("NOM_RATES_YEAR")
    avail = _list_available_years()

    def _closest(target: int) -> Optional[int]:
        if not avail:
            return None
        return min(avail, key=lambda y: abs(y - target))

    if env_override:
        try:
            return int(env_override)
        except ValueError:
            pass

    if requested is not None:
        if requested in avail:
            return requested
        closest = _closest(requested)
        return closest if closest is not None else requested

    default_target = 2025
    closest = _closest(default_target)
    return closest if closest is not None else default_target

# ---------------------------- Data holders ---------------------------- #

# Built-in legal values per year; JSON files override these.
_DEFAULT_LEGAL_VALUES: Dict[int, Dict[str, str]] = {
    2024: {"smmlv": "1300000", "transport_allowance": "162000", "uvt": "47065"},
    2025: {"smmlv": "1423500", "transport_allowance": "200000", "uvt": "49799"},
}


@dataclass(frozen=True)
class LegalValues:
    year: int
    smmlv: Decimal
    transport_allowance: Decimal
    uvt: Decimal

    @property
    def daily_minimum(self) -> Decimal:
        return self.smmlv / Decimal("30")


@dataclass(frozen=True)
class ContributionRates:
    health_ee: Decimal
    pension_ee: Decimal
    health_er: Decimal
    pension_er: Decimal
    arl: Decimal
    caja: Decimal
    icbf: Decimal
    sena: Decimal
    ibc_cap_smmlv: Decimal

# ---------------------------- Loader ---------------------------- #


def _load_json(path: str) -> Optional[Dict[str, Any]]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        return None
    except (OSError, ValueError):
        logger.warning("Unreadable rate file %s; using defaults", path)
        return None


@lru_cache(maxsize=32)
def _load_legal_values_for_year(effective_year: int) -> LegalValues:
    if effective_year in _DEFAULT_LEGAL_VALUES:
        defaults = _DEFAULT_LEGAL_VALUES[effective_year]
    else:
        closest = min(_DEFAULT_LEGAL_VALUES, key=lambda y: abs(y - effective_year))
        defaults = _DEFAULT_LEGAL_VALUES[closest]

    raw = _load_json(os.path.join(_year_dir(effective_year), "legal_values.json")) or {}
    smmlv = D(raw.get("smmlv", defaults["smmlv"]))
    transport = D(raw.get("transport_allowance", defaults["transport_allowance"]))
    uvt = D(raw.get("uvt", defaults["uvt"]))

    return LegalValues(
        year=effective_year,
        smmlv=_env_decimal("NOM_SMMLV", smmlv),
        transport_allowance=_env_decimal("NOM_TRANSPORT_ALLOWANCE", transport),
        uvt=_env_decimal("NOM_UVT", uvt),
    )


def load_legal_values(year: Optional[int] = 2025) -> LegalValues:
    effective = _resolve_year(year)
    return _load_legal_values_for_year(effective)


@lru_cache(maxsize=32)
def _load_contribution_rates_for_year(effective_year: int) -> ContributionRates:
    cfg = _load_json(os.path.join(_year_dir(effective_year), "contributions.json")) or {}
    return ContributionRates(
        health_ee=_env_decimal("NOM_HEALTH_EE_RATE", D(cfg.get("health_ee", "0.04"))),
        pension_ee=_env_decimal("NOM_PENSION_EE_RATE", D(cfg.get("pension_ee", "0.04"))),
        health_er=_env_decimal("NOM_HEALTH_ER_RATE", D(cfg.get("health_er", "0.085"))),
        pension_er=_env_decimal("NOM_PENSION_ER_RATE", D(cfg.get("pension_er", "0.12"))),
        arl=_env_decimal("NOM_ARL_RATE", D(cfg.get("arl", "0.00522"))),
        caja=_env_decimal("NOM_CAJA_RATE", D(cfg.get("caja", "0.04"))),
        icbf=_env_decimal("NOM_ICBF_RATE", D(cfg.get("icbf", "0.03"))),
        sena=_env_decimal("NOM_SENA_RATE", D(cfg.get("sena", "0.02"))),
        ibc_cap_smmlv=_env_decimal("NOM_IBC_CAP_SMMLV", D(cfg.get("ibc_cap_smmlv", "25"))),
    )


def load_contribution_rates(year: Optional[int] = 2025) -> ContributionRates:
    return _load_contribution_rates_for_year(_resolve_year(year))

# ---------------------------- Working hours (Ley 2101) ---------------------------- #

# (effective from, weekly hours), ascending
WEEKLY_HOURS_SCHEDULE = [
    (date(2023, 7, 15), 47),
    (date(2024, 7, 15), 46),
    (date(2025, 7, 15), 44),
    (date(2026, 7, 15), 42),
]

MONTHLY_HOURS = {48: 240, 47: 235, 46: 230, 44: 220, 42: 210}

SURCHARGE_DIVISOR_CUTOVER = date(2025, 7, 1)

NIGHT_SURCHARGE = Decimal("0.35")

# (in force until, Sunday/holiday surcharge), ascending; 100% afterwards
SUNDAY_SURCHARGE_SCHEDULE = [
    (date(2025, 7, 1), Decimal("0.75")),
    (date(2026, 7, 1), Decimal("0.80")),
    (date(2027, 7, 1), Decimal("0.90")),
]


def weekly_hours(on: Optional[date] = None) -> int:
    on = on or date.today()
    hours = 48
    for since, h in WEEKLY_HOURS_SCHEDULE:
        if on >= since:
            hours = h
    return hours


def monthly_hours(on: Optional[date] = None) -> int:
    return MONTHLY_HOURS[weekly_hours(on)]


def surcharge_divisor(on: Optional[date] = None) -> int:
    on = on or date.today()
    if on >= SURCHARGE_DIVISOR_CUTOVER:
        return 220
    return monthly_hours(on)


def overtime_base_hour(salary: Decimal | float | int, on: Optional[date] = None) -> Decimal:
    """Hourly value for overtime: (salary / 30) / (weekly hours / 6)."""
    daily_hours = Decimal(weekly_hours(on)) / Decimal("6")
    return (D(salary) / Decimal("30")) / daily_hours


def surcharge_base_hour(salary: Decimal | float | int, on: Optional[date] = None) -> Decimal:
    return D(salary) / Decimal(surcharge_divisor(on))


def sunday_surcharge(on: Optional[date] = None) -> Decimal:
    on = on or date.today()
    for until, rate in SUNDAY_SURCHARGE_SCHEDULE:
        if on < until:
            return rate
    return Decimal("1.00")


def overtime_factor(subtype: Optional[str]) -> Decimal:
    """
    Overtime multiplier by subtype.

        diurna                                  → 1.25
        nocturna / dominical / festiva          → 1.75
        dominical_diurna / festiva_diurna       → 2.00
        dominical_nocturna / festiva_nocturna   → 2.50
        nocturna_dominical                      → 2.50
        unknown                                 → 1.25
    """
    s = (subtype or "").strip().lower()
    if not s or s == "diurna":
        return Decimal("1.25")

    sunday_like = "dominical" in s or "festiv" in s
    if sunday_like and "nocturn" in s:
        return Decimal("2.5")
    if sunday_like and "diurn" in s:
        return Decimal("2.0")
    if sunday_like or s == "nocturna":
        return Decimal("1.75")
    return Decimal("1.25")

# ---------------------------- Compute helpers ---------------------------- #


def _period_fraction(days: Decimal | float | int | None) -> Decimal:
    """Share of a 30-day month covered by `days` (None means a full month)."""
    if days is None:
        return Decimal("1")
    d = D(days)
    if d <= 0:
        return Decimal("1")
    return min(d, Decimal("30")) / Decimal("30")


def cap_ibc(ibc: Decimal | float | int, *, year: Optional[int] = 2025,
            days: Decimal | float | int | None = None) -> Decimal:
    """Cap at 25 SMMLV, prorated when the IBC covers `days` of the month."""
    lv = load_legal_values(year)
    cap = q0(lv.smmlv * load_contribution_rates(year).ibc_cap_smmlv * _period_fraction(days))
    value = D(ibc)
    return cap if value > cap else value


def solidarity_fund_rate(ibc: Decimal | float | int, *, year: Optional[int] = 2025,
                         days: Decimal | float | int | None = None) -> Decimal:
    """
    Fondo de solidaridad pensional, by IBC expressed in SMMLV:
        < 4      → 0
        4 – <16  → 1.0%
        16 – <17 → 1.2%
        17 – <18 → 1.4%
        18 – <19 → 1.6%
        19 – <20 → 1.8%
        ≥ 20     → 2.0%

    With `days`, the IBC is brought to its monthly equivalent first.
    """
    smmlv = load_legal_values(year).smmlv
    if smmlv <= 0:
        return Decimal("0")
    multiple = D(ibc) / _period_fraction(days) / smmlv
    if multiple < 4:
        return Decimal("0")
    if multiple < 16:
        return Decimal("0.01")
    if multiple >= 20:
        return Decimal("0.02")
    # 16..19 step 0.2% per SMMLV
    step = int(multiple) - 16
    return Decimal("0.012") + Decimal("0.002") * step


def compute_employee_contributions(ibc: Decimal | float | int, *, year: Optional[int] = 2025,
                                   days: Decimal | float | int | None = None) -> Dict[str, Decimal]:
    rates = load_contribution_rates(year)
    base = D(ibc)
    return {
        "health": q0(base * rates.health_ee),
        "pension": q0(base * rates.pension_ee),
        "solidarity_fund": q0(base * solidarity_fund_rate(base, year=year, days=days)),
    }


def compute_employer_contributions(
    ibc_health: Decimal | float | int,
    ibc_parafiscal: Decimal | float | int,
    *,
    year: Optional[int] = 2025,
    arl_rate: Optional[Decimal] = None,
) -> Dict[str, Decimal]:
    rates = load_contribution_rates(year)
    health_base = D(ibc_health)
    para_base = D(ibc_parafiscal)
    arl = D(arl_rate) if arl_rate is not None else rates.arl
    out = {
        "health": q0(health_base * rates.health_er),
        "pension": q0(health_base * rates.pension_er),
        "arl": q0(health_base * arl),
        "caja": q0(para_base * rates.caja),
        "icbf": q0(para_base * rates.icbf),
        "sena": q0(para_base * rates.sena),
    }
    out["total"] = sum(out.values(), Decimal("0"))
    return out


def compute_withholding(taxable_monthly: Decimal | float | int, *, year: Optional[int] = 2025) -> Dict[str, Decimal]:
    """
    Retención en la fuente (simplified).

    tax = max(0, taxable - EXEMPT_UVT * UVT) * RATE

    JSON (app/data/payroll/<year>/withholding.json): {"rate": 0.19, "exempt_uvt": 95}
    ENV overrides: NOM_WITHHOLDING_RATE, NOM_WITHHOLDING_EXEMPT_UVT
    """
    cfg = _load_json(os.path.join(_year_dir(_resolve_year(year)), "withholding.json")) or {}
    rate = _env_decimal("NOM_WITHHOLDING_RATE", D(cfg.get("rate", "0.19")))
    exempt_uvt = _env_decimal("NOM_WITHHOLDING_EXEMPT_UVT", D(cfg.get("exempt_uvt", "95")))

    uvt = load_legal_values(year).uvt
    tx = D(taxable_monthly)
    exempt = exempt_uvt * uvt
    tax = q0((tx - exempt) * rate) if tx > exempt and rate > 0 else Decimal("0")
    return {"tax": tax, "exempt": q0(exempt)}

__all__ = [
    "D",
    "q2",
    "q0",
    "LegalValues",
    "load_legal_values",
    "load_contribution_rates",
    "weekly_hours",
    "monthly_hours",
    "surcharge_divisor",
    "overtime_base_hour",
    "surcharge_base_hour",
    "sunday_surcharge",
    "overtime_factor",
    "NIGHT_SURCHARGE",
    "cap_ibc",
    "solidarity_fund_rate",
    "compute_employee_contributions",
    "compute_employer_contributions",
    "compute_withholding",
]
