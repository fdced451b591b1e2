"""Enrichment oracle client factory for passbook.

Secrets stay out of config.json: the oracle host and API key are read from
the environment (or a local .env file) via python-dotenv.
"""

from __future__ import annotations

import logging
import os
from typing import Optional

from dotenv import load_dotenv

from passbook import settings
from passbook.adapters.openai_oracle import OpenAICompatibleOracle


def build_oracle() -> Optional[OpenAICompatibleOracle]:
    """Create the oracle client from environment variables.

    Returns None when enrichment is disabled in config.json.
    """

    if not settings.ENRICHMENT.enabled:
        return None

    load_dotenv()

    host = os.getenv("OPENAI_HOST")
    api_key = os.getenv("OPENAI_API_KEY")

    # Fail fast instead of discovering a missing host on the first message.
    if not host:
        raise RuntimeError("Missing OPENAI_HOST in environment (enrichment.enabled is true)")

    logging.getLogger(__name__).info("Initializing oracle client for %s (%s)", host, settings.ORACLE_MODEL)

    return OpenAICompatibleOracle(
        host=host,
        model=settings.ORACLE_MODEL,
        api_key=api_key,
        timeout=settings.ORACLE_TIMEOUT,
    )
