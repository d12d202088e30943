"""Entry point for serving the HTTP front end via uvicorn."""

from __future__ import annotations

from typing import Any

import uvicorn

from safety_orchestrator.config import OrchestratorConfig
from safety_orchestrator.http import create_app
from safety_orchestrator.logging_utils import configure_logging


def build_uvicorn_config(config: OrchestratorConfig) -> dict[str, Any]:
    return {
        "host": config.http_host,
        "port": config.http_port,
        "log_level": config.log_level.lower(),
    }


def main() -> None:
    config = OrchestratorConfig.from_env()
    configure_logging(config.log_level, config.log_dir)
    uvicorn.run(create_app(config), **build_uvicorn_config(config))


if __name__ == "__main__":
    main()
