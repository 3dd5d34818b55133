"""Command-line entry point: ``python -m guardrail_relay`` or ``guardrail-relay``."""

import sys

import uvicorn

from guardrail_relay.app import create_app
from guardrail_relay.config import load_config
from guardrail_relay.errors import ConfigurationError
from guardrail_relay.telemetry import logger, setup_logging


def main() -> int:
    """Build the app from the environment and serve it with uvicorn.

    Configuration errors are reported before the listener binds.
    """
    try:
        config = load_config()
        setup_logging(config.server.log_file)
        app = create_app(config)
    except ConfigurationError as exc:
        logger.error("Failed to start relay: %s", exc.detail)
        logger.error(
            "Check LLM_PROVIDER and its API key variable, ETHICALZEN_GATEWAY_URL "
            "and ETHICALZEN_CERTIFICATE_ID."
        )
        return 1

    uvicorn.run(
        app,
        host=config.server.host,
        port=config.server.port,
        log_level="info",
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
