import asyncio
import json
import logging
import os
from dotenv import load_dotenv, find_dotenv

# Load .env if present (CI uses env vars)
dotenv_path = find_dotenv(usecwd=True)
if dotenv_path:
    load_dotenv(dotenv_path, override=False)

from readerkit.fetchers import make_client
from readerkit.graph import build_report, load_sources, refresh_all, subscribe_all
from readerkit.storage import reset_db_if_requested

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


async def run_pipeline() -> dict:
    s: dict = {}
    s = load_sources(s)
    async with make_client() as client:
        s = await subscribe_all(s, client)
        s = await refresh_all(s, client)
    s = build_report(s)
    return s


if __name__ == "__main__":
    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s - %(levelname)s - %(message)s")
    reset_db_if_requested()  # honor RESET_DB_ON_RUN=true
    state = asyncio.run(run_pipeline())
    result = state["refresh"]
    print(json.dumps({"refresh": result.to_json(), "feeds": state["report"]}, indent=2))
