from __future__ import annotations

import asyncio
import sys
from pathlib import Path

from app.wiring import build_pilot


def main() -> None:
    config_path = Path(sys.argv[1]) if len(sys.argv) > 1 else None
    try:
        asyncio.run(build_pilot(config_path).run())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
