"""
Entry point for running the eBay auto-sync worker as a module.
Usage: python -m app.workers
"""
import asyncio
from app.utils.logger import configure_logging
from app.workers.auto_sync import run_worker

if __name__ == "__main__":
    configure_logging()
    asyncio.run(run_worker())
