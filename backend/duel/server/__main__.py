"""Run the duel server: ``python -m duel.server``."""

import uvicorn

from duel.server.settings import DuelServerSettings


def main() -> None:
    settings = DuelServerSettings()
    uvicorn.run("duel.server.app:get_app", factory=True, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
