"""Run the bot and its webhook server: ``python -m botvip``."""

import uvicorn

from botvip.config import settings


def main() -> None:
    uvicorn.run("botvip.main:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
