"""
Helper script to apply all Alembic migrations using the current environment.
Usage: set DATABASE_URL then run this file from anywhere.
"""
import os
import subprocess
import sys
from pathlib import Path


def main() -> int:
    env = os.environ.copy()
    env.setdefault("FLASK_APP", "certsys.api.app:create_app")

    api_dir = Path(__file__).resolve().parents[1]
    project_root = api_dir.parents[1]
    env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(project_root), env.get("PYTHONPATH")]))
    cmd = [sys.executable, "-m", "flask", "db", "upgrade", "--directory", str(api_dir / "migrations")]

    result = subprocess.run(cmd, cwd=project_root, env=env)
    return result.returncode


if __name__ == "__main__":
    sys.exit(main())
