"""Run the gateway with uvicorn: ``python -m gateway``."""

import uvicorn

from gateway.config.loader import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "gateway.main:app",
        host="0.0.0.0",
        port=settings.listen_port,
        log_config=None,
        proxy_headers=True,
    )


if __name__ == "__main__":
    main()
