#!/usr/bin/env python3
"""
Crypto Agent Startup Script

This script starts the Crypto Agent FastAPI microservice.

Usage:
    python run.py [--port PORT] [--host HOST] [--env ENV]

Environment Variables:
    AGENT_PORT: Port to run the service on (default: 8080)
    ENV: Environment (development/production)
    LOG_LEVEL: Logging level (DEBUG/INFO/WARNING/ERROR)
    MORALIS_API_KEY: Live wallet holdings (sample holdings are used without it)
    RESEND_API_KEY: Alert email delivery
"""

import argparse
import logging
import os
import sys

import uvicorn
import structlog

from crypto_agent.config import settings

logger = structlog.get_logger()

def parse_arguments():
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(
        description="Crypto Agent - portfolio risk analytics and price alerts"
    )

    parser.add_argument(
        "--port", "-p",
        type=int,
        default=settings.AGENT_PORT,
        help=f"Port to run the service on (default: {settings.AGENT_PORT})"
    )

    parser.add_argument(
        "--host", "-H",
        type=str,
        default="0.0.0.0",
        help="Host to bind the service to (default: 0.0.0.0)"
    )

    parser.add_argument(
        "--env", "-e",
        type=str,
        choices=["development", "production"],
        default=settings.ENV,
        help=f"Environment mode (default: {settings.ENV})"
    )

    parser.add_argument(
        "--reload", "-r",
        action="store_true",
        help="Enable auto-reload for development"
    )

    parser.add_argument(
        "--log-level", "-l",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=settings.LOG_LEVEL,
        help=f"Log level (default: {settings.LOG_LEVEL})"
    )

    return parser.parse_args()

def validate_environment():
    """Warn about optional integrations that are not configured"""
    if not settings.MORALIS_API_KEY:
        if settings.USE_SAMPLE_HOLDINGS:
            logger.warning("MORALIS_API_KEY not set, portfolio tools will return sample holdings")
        else:
            logger.warning("MORALIS_API_KEY not set, portfolio tools will fail")
    if not settings.RESEND_API_KEY:
        logger.warning("RESEND_API_KEY not set, alert emails are disabled")

def apply_cli_overrides(args):
    """Push --env and --log-level into settings, the environment and the root logger.

    Importing crypto_agent already configured logging, so the level is reset
    here. The environment variables reach the reloader's worker process, which
    rebuilds settings from scratch.
    """
    os.environ["ENV"] = args.env
    os.environ["LOG_LEVEL"] = args.log_level
    settings.ENV = args.env
    settings.LOG_LEVEL = args.log_level
    logging.getLogger().setLevel(getattr(logging, args.log_level))

def main():
    """Main entry point"""
    args = parse_arguments()
    apply_cli_overrides(args)
    validate_environment()

    # The alert registry lives in process memory, so stay on one worker
    uvicorn_config = {
        "app": "crypto_agent.main:app",
        "host": args.host,
        "port": args.port,
        "log_level": args.log_level.lower(),
        "access_log": True,
        "reload": args.reload or args.env == "development",
        "workers": 1,
    }

    try:
        logger.info("Starting Crypto Agent",
                    host=args.host,
                    port=args.port,
                    env=args.env)
        uvicorn.run(**uvicorn_config)
    except KeyboardInterrupt:
        logger.info("Received shutdown signal")
    except Exception as e:
        logger.error("Failed to start server", error=str(e))
        sys.exit(1)

if __name__ == "__main__":
    main()
