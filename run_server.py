#!/usr/bin/env python3
"""
Entrypoint to run the SkillMine API:
 - No auto-reload by default (a reload would kill running batch job threads)
 - Optional reload for local/dev via UVICORN_RELOAD=1, restricted to the package

Use the fully-qualified app path "skillmine.scripts.api:app" so we don't
mutate sys.path.
"""
import os

from dotenv import load_dotenv

load_dotenv()

ROOT_DIR = os.path.dirname(__file__)


def main() -> None:
    import uvicorn

    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8000"))
    log_level = os.getenv("LOG_LEVEL", "info")
    reload_flag = os.getenv("UVICORN_RELOAD") == "1"

    if reload_flag:
        config = uvicorn.Config(
            "skillmine.scripts.api:app",
            host=host,
            port=port,
            log_level=log_level,
            reload=True,
            reload_dirs=[os.path.join(ROOT_DIR, "skillmine")],
            reload_excludes=["*.log", "*.json", "skillmine/__pycache__"],
        )
    else:
        # Single process: batch jobs run as threads inside it
        config = uvicorn.Config("skillmine.scripts.api:app", host=host, port=port, log_level=log_level, reload=False)

    server = uvicorn.Server(config)
    server.run()


if __name__ == "__main__":
    main()
