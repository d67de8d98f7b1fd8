# Copyright (c) 2025 Dave Tofflemire, SigilDERG Project
# Licensed under the GNU Affero General Public License v3.0 (AGPLv3).
# Commercial licenses are available. Contact: davetmire85@gmail.com

"""
Run the llm-search admin API with uvicorn (``llm-search-admin``).

Logging is configured from ``server.log_level`` and ``server.log_file``. The
search engine itself is built on the first admin request, so the server starts
even when search is disabled or the embedding provider is down.
"""

import logging

import uvicorn

from .admin_api import app as admin_app
from .config import configure_logging, get_config

logger = logging.getLogger("llm_search_admin_main")


def main() -> None:
    cfg = get_config()
    configure_logging(cfg.log_level, cfg.log_file)

    if not cfg.admin_enabled:
        logger.warning("Admin API is disabled in config (admin.enabled=false)")
        return

    host = cfg.admin_host
    port = cfg.admin_port

    logger.info("Starting llm-search Admin API on %s:%s", host, port)
    logger.info("This API is intended for localhost-only access.")

    uvicorn.run(
        admin_app,
        host=host,
        port=port,
        log_level=cfg.log_level.lower(),
    )


if __name__ == "__main__":
    main()
