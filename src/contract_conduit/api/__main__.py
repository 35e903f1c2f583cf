"""
contract_conduit.api.__main__

Entrypoint for `python -m contract_conduit.api` and the `contract-conduit` script.
"""

from __future__ import annotations

import uvicorn

from contract_conduit.api.app import create_app
from contract_conduit.settings import get_settings


def main() -> None:
    settings = get_settings()
    app = create_app(settings=settings)

    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_config=None,  # structlog
    )


if __name__ == "__main__":
    main()
