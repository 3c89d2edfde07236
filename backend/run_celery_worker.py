#!/usr/bin/env python3
# backend/run_celery_worker.py
"""
Development Celery runner: one worker on the bookings queue with beat embedded.
For local development only; production runs worker and beat as separate processes.
"""
import os
from pathlib import Path
import subprocess
import sys

# Add backend to path
backend_dir = Path(__file__).parent
sys.path.insert(0, str(backend_dir))
os.chdir(backend_dir)

if __name__ == "__main__":
    queues = os.getenv("CELERY_QUEUES") or "bookings,celery"
    print(f"🚀 Starting Celery worker with embedded beat, queues: {queues}")

    cmd = [
        sys.executable,
        "-m",
        "celery",
        "-A",
        "careslot.tasks.celery_app",
        "worker",
        "--beat",
        "--loglevel=info",
        "--concurrency=2",
        "--max-tasks-per-child=100",
        "-Q",
        queues,
    ]

    subprocess.run(cmd)
