"""开发环境：用模拟传感器跑一趟行程并启动 FastAPI 服务。"""

from __future__ import annotations

import asyncio
import logging
import signal
import threading
from contextlib import suppress
from typing import Optional

import uvicorn

from stopsense.adapters.simulated import ScriptedSpeechService, SimulatedAudioSource, SimulatedMotionSource
from stopsense.config import AppConfig
from stopsense.session import SessionController
from stopsense.ui import create_app

logger = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO, format="[%(asctime)s][%(levelname)s] %(name)s: %(message)s")

DEFAULT_LINE = "bts_silom"
DEFAULT_ORIGIN = "silom_siam"
DEFAULT_DESTINATION = "silom_saphan_taksin"

ANNOUNCEMENT_SCRIPT = [
    (75.0, "Next station, Ratchadamri"),
    (100.0, "Next station Sala Daeng, interchange to MRT"),
    (100.0, "next station chong nonsi"),
]


def build_simulated_controller(config: Optional[AppConfig] = None) -> SessionController:
    config = config or AppConfig.load()
    return SessionController(
        config=config,
        motion_source=SimulatedMotionSource(rate_hz=20.0),
        audio_source=SimulatedAudioSource(sample_rate=config.audio_sample_rate, fft_size=config.audio_fft_size),
        speech_service=ScriptedSpeechService(script=ANNOUNCEMENT_SCRIPT),
    )


async def main(
    controller: Optional[SessionController] = None,
    line_id: str = DEFAULT_LINE,
    origin_id: str = DEFAULT_ORIGIN,
    destination_id: str = DEFAULT_DESTINATION,
) -> None:
    config_model = AppConfig.load()
    if controller is None:
        controller = build_simulated_controller(config_model)

    app = create_app(controller)
    await controller.start(line_id, origin_id, destination_id)

    uvicorn_config = uvicorn.Config(app, host=config_model.api_host, port=config_model.api_port, reload=False)
    server = uvicorn.Server(uvicorn_config)

    try:
        if threading.current_thread() is threading.main_thread():
            stop_event = asyncio.Event()

            def _handle_stop(*_: object) -> None:
                logger.info("收到终止信号，准备关闭服务器…")
                stop_event.set()

            loop = asyncio.get_running_loop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(sig, _handle_stop)

            async def _serve() -> None:
                await server.serve()
                stop_event.set()

            serve_task = asyncio.create_task(_serve())

            await stop_event.wait()
            serve_task.cancel()
            with suppress(asyncio.CancelledError):
                await serve_task
        else:
            await server.serve()
    finally:
        await controller.stop()


if __name__ == "__main__":
    asyncio.run(main())
