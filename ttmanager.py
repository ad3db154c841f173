"""TrustTunnel Manager entry point.

Usage:
  python ttmanager.py
  python ttmanager.py --config /opt/trusttunnel_client/manager.conf
  python ttmanager.py --addr 0.0.0.0:9090
  python ttmanager.py --version
"""

import argparse
import sys
from pathlib import Path

import uvicorn
from dotenv import load_dotenv

from src.api.server import VERSION, create_app
from src.core.config import DEFAULT_CONFIG_PATH, ManagerConfig
from src.core.logger import setup_logging


def main() -> None:
    parser = argparse.ArgumentParser(description="TrustTunnel Manager API")
    parser.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="manager config path (manager.conf or YAML)")
    parser.add_argument("--addr", default=None, help="listen address, overrides LISTEN_ADDR (e.g. :8080)")
    parser.add_argument("--version", action="store_true", help="print version and exit")
    args = parser.parse_args()

    if args.version:
        print("trusttunnel-manager", VERSION)
        sys.exit(0)

    load_dotenv(Path(__file__).resolve().parent / ".env")

    config = ManagerConfig(args.config)
    if args.addr:
        config.set("web.listen_addr", args.addr)
    try:
        config.validate()
    except ValueError as exc:
        print(f"Invalid configuration in {config.path}: {exc}", file=sys.stderr)
        sys.exit(2)

    log_dir = config.get("logging.dir") or None
    setup_logging(str(config.get("logging.level", "INFO")), Path(log_dir) if log_dir else None)

    host, port = config.listen_address()
    uvicorn.run(create_app(config), host=host, port=port, log_level="warning")


if __name__ == "__main__":
    main()
