"""Command line interface for running the API server."""
import argparse
import logging

import uvicorn

from config import settings_conf

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def main():
    parser = argparse.ArgumentParser(description="Run the Toolshed API server")
    parser.add_argument('--host', default=settings_conf['api_host'])
    parser.add_argument('--port', type=int, default=settings_conf['api_port'])
    parser.add_argument('--reload', action='store_true', help="Restart on code changes")
    args = parser.parse_args()

    logger.info(f"Starting API on {args.host}:{args.port}")
    uvicorn.run(
        "api:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level="info"
    )


if __name__ == "__main__":
    main()
