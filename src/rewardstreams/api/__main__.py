# src/rewardstreams/api/__main__.py
from __future__ import annotations

import uvicorn

from rewardstreams.env import load_dotenv_if_present


def main() -> None:
    # Load .env early so REWARDSTREAMS_* vars exist before anything reads them.
    load_dotenv_if_present()

    # Import after dotenv load (prevents "config read before env" surprises)
    from rewardstreams.api.app import create_app
    from rewardstreams.runtime.config import load_streams_config

    cfg = load_streams_config()
    uvicorn.run(create_app(), host=cfg.api_host, port=int(cfg.api_port), log_level=cfg.log_level.lower())


if __name__ == "__main__":
    main()
