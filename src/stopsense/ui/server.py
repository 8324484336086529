"""FastAPI 只读接口，供展示层轮询会话状态与事件日志。"""

from __future__ import annotations

from typing import Optional

from fastapi import FastAPI, Query

from stopsense.session import SessionController


def create_app(controller: Optional[SessionController] = None) -> FastAPI:
    """构建 FastAPI 应用并注册基础路由。"""

    app = FastAPI(title="stopsense")
    _controller = controller or SessionController()

    @app.get("/health", tags=["system"])
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/favicon.ico", include_in_schema=False)
    async def favicon() -> dict[str, str]:
        return {}

    @app.get("/session", tags=["session"])
    async def session() -> dict:
        return _controller.snapshot().to_dict()

    @app.get("/events", tags=["session"])
    async def events(since: int = Query(0, ge=0)) -> dict:
        log = _controller.event_log
        entries = log.since(since)
        return {
            "next": log.total(),
            "events": [event.to_dict() for event in entries],
        }

    @app.get("/route", tags=["session"])
    async def route() -> dict:
        return {"stations": _controller.route_view()}

    return app
