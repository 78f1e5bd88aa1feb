import logging
import os
from dataclasses import dataclass
from typing import Set

from dotenv import load_dotenv

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass(frozen=True)
class Config:
    database_path: str
    admin_ids: Set[int]
    home_state: str
    default_commission_rate: float
    log_level: str

    @classmethod
    def load(cls) -> "Config":
        load_dotenv()
        admin_ids = set()
        for raw_id in os.getenv("ADMIN_IDS", "").split(","):
            if not raw_id.strip():
                continue
            try:
                admin_ids.add(int(raw_id))
            except ValueError as exc:
                raise RuntimeError(f"ADMIN_IDS must be comma-separated integers, got {raw_id.strip()!r}") from exc
        database_path = os.getenv("DATABASE_PATH", "data/ledger.db")
        home_state = os.getenv("HOME_STATE", "West Bengal").strip() or "West Bengal"
        raw_rate = os.getenv("DEFAULT_COMMISSION_RATE", "0.10")
        try:
            default_commission_rate = float(raw_rate)
        except ValueError as exc:
            raise RuntimeError(f"DEFAULT_COMMISSION_RATE must be a number, got {raw_rate!r}") from exc
        if default_commission_rate < 0:
            raise RuntimeError("DEFAULT_COMMISSION_RATE must be non-negative")
        log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO"
        return cls(
            database_path=database_path,
            admin_ids=admin_ids,
            home_state=home_state,
            default_commission_rate=default_commission_rate,
            log_level=log_level,
        )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
    )
