# comanda/config.py
from __future__ import annotations
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

log = logging.getLogger("comanda.config")

CONFIG_FILE = Path(os.getenv("COMANDA_CONFIG", Path(__file__).resolve().parent / "config.json"))


@dataclass
class KitchenConfig:
    urgent_after_minutes: int = 15


@dataclass
class ReceiptConfig:
    header: str = "COMANDA"
    footer: str = "Obrigado pela preferência!"
    currency: str = "R$"
    width_chars: int = 32


@dataclass
class SeedConfig:
    enabled: bool = True
    tables: int = 10


@dataclass
class AppConfig:
    # mutable defaults need default_factory
    kitchen: KitchenConfig = field(default_factory=KitchenConfig)
    receipt: ReceiptConfig = field(default_factory=ReceiptConfig)
    seed: SeedConfig = field(default_factory=SeedConfig)


def _merge(dst: dict, src: dict) -> dict:
    for k, v in src.items():
        if isinstance(v, dict) and isinstance(dst.get(k), dict):
            dst[k] = _merge(dst[k], v)
        else:
            dst[k] = v
    return dst


def _defaults() -> dict:
    return {
        "kitchen": {"urgent_after_minutes": 15},
        "receipt": {
            "header": "COMANDA",
            "footer": "Obrigado pela preferência!",
            "currency": "R$",
            "width_chars": 32,
        },
        "seed": {"enabled": True, "tables": 10},
    }


def load_config(path: Path | None = None) -> AppConfig:
    path = Path(path) if path is not None else CONFIG_FILE
    data = _defaults()
    if path.exists():
        try:
            file_data = json.loads(path.read_text(encoding="utf-8"))
            data = _merge(data, file_data or {})
        except (OSError, ValueError) as e:
            log.warning("config file %s unreadable, using defaults: %s", path, e)

    k, r, s = data["kitchen"], data["receipt"], data["seed"]
    return AppConfig(
        kitchen=KitchenConfig(
            urgent_after_minutes=int(k.get("urgent_after_minutes", 15)),
        ),
        receipt=ReceiptConfig(
            header=str(r.get("header", "COMANDA")),
            footer=str(r.get("footer", "")),
            currency=str(r.get("currency", "R$")),
            width_chars=int(r.get("width_chars", 32)),
        ),
        seed=SeedConfig(
            enabled=bool(s.get("enabled", True)),
            tables=int(s.get("tables", 10)),
        ),
    )


# loaded once at import
CONFIG = load_config()
