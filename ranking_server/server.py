#!/usr/bin/env python3
"""Pairwise Ranking API server — entrypoint for uvicorn ranking_server.server:app."""

from .app import app


def main():
    import uvicorn

    from .config import get_config

    config = get_config()
    uvicorn.run(app, host=config.host, port=config.port, log_level=config.log_level.lower())


if __name__ == "__main__":
    main()
