"""Chat Archive — dev launcher.

  python main.py                      API server in watch mode
  python main.py --demo               same, with a fresh demo campaign
  python main.py --compress SLUG      one compression pass, outcome as JSON
  python main.py --mcp                MCP server on stdio
"""

import argparse
import logging
import os
import signal
import subprocess
import sys
from pathlib import Path

from dotenv import load_dotenv

ROOT = Path(__file__).parent
load_dotenv(ROOT / ".env")

HOST = os.getenv("HOST", "0.0.0.0")
PORT = os.getenv("PORT", "13020")
LOG_LEVELS = ["critical", "error", "warning", "info", "debug"]


def _compress(slug: str) -> int:
    from chat_archive import service

    try:
        outcome = service.compress_campaign(slug)
    except LookupError as e:
        print(e, file=sys.stderr)
        return 1
    if outcome is None:
        print(f"A compression pass is already running for {slug}", file=sys.stderr)
        return 1
    print(outcome.model_dump_json(indent=2, exclude={"result"}))
    return 0 if outcome.status in ("saved", "fallback", "empty") else 2


def _serve(data_dir: Path | None, log_level: str) -> None:
    # The server re-initialises storage itself; hand it the same data dir
    env = os.environ.copy()
    if data_dir:
        env["DATA_DIR"] = str(data_dir.resolve())

    print(f"Starting API on http://localhost:{PORT}/api ...")
    proc = subprocess.Popen(
        [sys.executable, "-m", "uvicorn", "chat_archive.app:app", "--reload",
         "--host", HOST, "--port", PORT, "--log-level", log_level],
        cwd=ROOT, env=env,
    )

    def shutdown(*_):
        print("\nShutting down...")
        proc.terminate()
        proc.wait()
        sys.exit(0)

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)
    proc.wait()


def main():
    parser = argparse.ArgumentParser(description="Chat Archive dev launcher")
    parser.add_argument("--data-dir", type=Path, default=None,
                        help="Data storage directory (default: $DATA_DIR or ./data)")
    parser.add_argument("--demo", action="store_true",
                        help="Clean and create a demo campaign with pending records")
    parser.add_argument("--log-level", default="info", choices=LOG_LEVELS,
                        help="Log level (default: info)")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--compress", metavar="SLUG",
                      help="Run one compression pass for a campaign and exit")
    mode.add_argument("--mcp", action="store_true",
                      help="Run the MCP server on stdio instead of the API")
    args = parser.parse_args()

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    from chat_archive import storage
    data_dir = args.data_dir or Path(os.getenv("DATA_DIR", "data"))
    storage.init_storage(data_dir)
    if args.demo:
        from chat_archive.demo import create_demo_data
        create_demo_data()

    if args.compress:
        sys.exit(_compress(args.compress))
    if args.mcp:
        from chat_archive.mcp_server import mcp
        mcp.run()
        return
    _serve(args.data_dir, args.log_level)


if __name__ == "__main__":
    main()
