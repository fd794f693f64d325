# common/settings.py
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from decimal import Decimal
from functools import lru_cache
from typing import Any, Dict, List, Optional

from common.config_loader import cfg_get, load_config, load_env_files, mask_key

logger = logging.getLogger("carmommy")

# System program id; used when no merchant address is configured.
DEFAULT_MERCHANT_ADDRESS = "11111111111111111111111111111111"
DEVNET_RPC_URL = "https://api.devnet.solana.com"
ELEVENLABS_BASE_URL = "https://api.elevenlabs.io"
CARFAX_BASE_URL = "https://helix.carfax.com"


@dataclass
class Settings:
    # secrets / deployment (env)
    elevenlabs_api_key: str = ""
    elevenlabs_agent_id: str = ""
    elevenlabs_phone_number_id: str = ""
    elevenlabs_webhook_secret: Optional[str] = None
    openai_api_key: str = ""
    merchant_address: str = DEFAULT_MERCHANT_ADDRESS

    # tunables (config.yaml)
    solana_rpc_url: str = DEVNET_RPC_URL
    payment_amount_sol: Decimal = Decimal("0.001")
    payment_tolerance_lamports: int = 1000
    extraction_model: str = "gpt-4o-mini"
    elevenlabs_base_url: str = ELEVENLABS_BASE_URL
    carfax_base_url: str = CARFAX_BASE_URL
    carfax_rows: int = 24
    cors_allow_origins: List[str] = field(
        default_factory=lambda: ["http://localhost:5173", "http://localhost:3000"]
    )

    @staticmethod
    def from_env(config: Optional[Dict[str, Any]] = None) -> "Settings":
        cfg = load_config() if config is None else config
        return Settings(
            elevenlabs_api_key=os.getenv("ELEVENLABS_API_KEY", ""),
            elevenlabs_agent_id=os.getenv("ELEVENLABS_AGENT_ID", ""),
            elevenlabs_phone_number_id=os.getenv("ELEVENLABS_PHONE_NUMBER_ID", ""),
            elevenlabs_webhook_secret=os.getenv("ELEVENLABS_WEBHOOK_SECRET") or None,
            openai_api_key=os.getenv("OPENAI_API_KEY", ""),
            merchant_address=os.getenv("SOLANA_MERCHANT_ADDRESS") or DEFAULT_MERCHANT_ADDRESS,
            solana_rpc_url=os.getenv("SOLANA_RPC_URL")
            or cfg_get(cfg, "solana.rpc_url", DEVNET_RPC_URL),
            payment_amount_sol=Decimal(str(cfg_get(cfg, "payment.amount_sol", "0.001"))),
            payment_tolerance_lamports=int(cfg_get(cfg, "payment.tolerance_lamports", 1000)),
            extraction_model=cfg_get(cfg, "openai.extraction_model", "gpt-4o-mini"),
            elevenlabs_base_url=cfg_get(cfg, "elevenlabs.base_url", ELEVENLABS_BASE_URL),
            carfax_base_url=cfg_get(cfg, "carfax.base_url", CARFAX_BASE_URL),
            carfax_rows=int(cfg_get(cfg, "carfax.rows", 24)),
            cors_allow_origins=list(
                cfg_get(cfg, "cors.allow_origins", ["http://localhost:5173", "http://localhost:3000"])
            ),
        )

    def log_summary(self) -> None:
        for name, value in (
            ("ELEVENLABS_API_KEY", self.elevenlabs_api_key),
            ("ELEVENLABS_AGENT_ID", self.elevenlabs_agent_id),
            ("ELEVENLABS_PHONE_NUMBER_ID", self.elevenlabs_phone_number_id),
            ("OPENAI_API_KEY", self.openai_api_key),
        ):
            if not value:
                logger.warning("%s is missing. Calls depending on it will use an empty credential.", name)
            else:
                logger.info("%s: %s", name, mask_key(value))
        if self.merchant_address == DEFAULT_MERCHANT_ADDRESS:
            logger.warning("SOLANA_MERCHANT_ADDRESS is not set; falling back to the system program address.")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    load_env_files()
    return Settings.from_env()
