"""Run the proxy with uvicorn: ``python -m streamproxy``."""

import uvicorn

from streamproxy.config import settings


def main():
    uvicorn.run(
        "streamproxy.main:app",
        host=settings.host,
        port=settings.port,
        proxy_headers=True,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
