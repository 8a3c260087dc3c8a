# src/rewardstreams/api/app.py
from __future__ import annotations

import os
from typing import Optional

from fastapi import FastAPI

from rewardstreams.api.errors import ApiError, api_error_handler
from rewardstreams.api.routes_public import public_router
from rewardstreams.api.security import RequestSizeLimitMiddleware
from rewardstreams.api.structured_logging import RequestLogMiddleware, configure_structured_logging
from rewardstreams.runtime.config import StreamsConfig, apply_streams_config_to_env, load_streams_config
from rewardstreams.runtime.executor import StreamsExecutor
from rewardstreams.runtime.executor import build_executor as _build_executor


def build_executor(cfg: StreamsConfig) -> StreamsExecutor:
    """Build the executor for the API runtime.

    Tests can monkeypatch `rewardstreams.api.app.build_executor`.
    """
    return _build_executor(cfg)


def create_app(*, boot_runtime: bool = True, executor: Optional[StreamsExecutor] = None) -> FastAPI:
    """Create the FastAPI application.

    boot_runtime:
      - True (default): load config from env/file and attach an executor
      - False: no executor unless one is passed in (unit tests)
    """
    cfg: Optional[StreamsConfig] = executor.config if executor is not None else None
    if executor is None and boot_runtime:
        cfg = load_streams_config()
        apply_streams_config_to_env(cfg)
        executor = build_executor(cfg)

    configure_structured_logging()

    mode = (cfg.mode if cfg is not None else os.environ.get("REWARDSTREAMS_MODE", "prod")).strip().lower()
    if mode == "prod":
        app = FastAPI(title="Reward Streams API", docs_url=None, redoc_url=None, openapi_url=None)
    else:
        app = FastAPI(title="Reward Streams API")

    app.state.cfg = cfg
    app.state.executor = executor

    app.add_exception_handler(ApiError, api_error_handler)

    # Added last so it runs first: reject oversize bodies before logging/handling.
    app.add_middleware(RequestLogMiddleware)
    app.add_middleware(RequestSizeLimitMiddleware)

    app.include_router(public_router)

    return app
