from __future__ import annotations

import uvicorn

from .common.dotenv import load_dotenv_auto
from .core.config import ConfigManager


def main() -> None:
    load_dotenv_auto(allow_prefixes=("PULSEBOARD_", "REDIS_URL", "SUPABASE_", "NODE_ENV", "PORT"))
    cfg = ConfigManager().load()
    uvicorn.run(
        "pulseboard.app:create_app",
        factory=True,
        host=cfg.host,
        port=cfg.port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
