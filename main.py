"""命令行启动入口：模拟一趟行程，同时在终端打印事件日志。"""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path

# 确保 src 加入路径
PROJECT_ROOT = Path(__file__).resolve().parent
SRC_DIR = PROJECT_ROOT / "src"
if SRC_DIR.exists() and str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from scripts.dev_server import DEFAULT_DESTINATION, DEFAULT_LINE, DEFAULT_ORIGIN, build_simulated_controller
from scripts.dev_server import main as run_dev_server
from stopsense.session import SessionController, describe_event


async def _print_events(controller: SessionController, interval: float = 1.0) -> None:
    cursor = 0
    while True:
        events = controller.event_log.since(cursor)
        for event in events:
            print(describe_event(event), flush=True)
        cursor += len(events)
        await asyncio.sleep(interval)


async def _run() -> None:
    controller = build_simulated_controller()
    printer = asyncio.create_task(_print_events(controller))
    try:
        await run_dev_server(
            controller,
            line_id=sys.argv[1] if len(sys.argv) > 1 else DEFAULT_LINE,
            origin_id=sys.argv[2] if len(sys.argv) > 2 else DEFAULT_ORIGIN,
            destination_id=sys.argv[3] if len(sys.argv) > 3 else DEFAULT_DESTINATION,
        )
    finally:
        printer.cancel()


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="[%(asctime)s][%(levelname)s] %(name)s: %(message)s")
    asyncio.run(_run())


if __name__ == "__main__":
    main()
