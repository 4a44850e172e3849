#!/usr/bin/env python
"""
Run the booking API under uvicorn.

Usage:
    python scripts/run_api.py [--no-reload]

Host and port come from RENTAL_API_HOST / RENTAL_API_PORT (default 0.0.0.0:8000).
"""
import os
import subprocess
import sys
from pathlib import Path


def main():
    project_root = Path(__file__).parent.parent

    env = os.environ.copy()
    src_path = str(project_root / "src")
    env["PYTHONPATH"] = os.pathsep.join(p for p in (src_path, env.get("PYTHONPATH")) if p)

    cmd = [
        sys.executable, "-m", "uvicorn", "rental_booking.api.main:app",
        "--host", env.get("RENTAL_API_HOST", "0.0.0.0"),
        "--port", env.get("RENTAL_API_PORT", "8000"),
    ]
    if "--no-reload" not in sys.argv[1:]:
        cmd.append("--reload")

    print(f"Starting Rental Booking API: {' '.join(cmd[2:])}")
    try:
        subprocess.run(cmd, cwd=str(project_root), env=env)
    except KeyboardInterrupt:
        print("\nAPI stopped.")


if __name__ == "__main__":
    main()
