from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from .di import AsyncStartStop, Container
from .di import build_graph as build_di_graph
from .infrastructure.document_store import DocumentStore
from .infrastructure.kv_storage import KeyValueStorage


class LifecycleError(RuntimeError):
    pass


@dataclass(slots=True)
class AppLifecycle:
    container: Container
    storage: KeyValueStorage | None = None
    store: DocumentStore | None = None
    _started: bool = field(default=False, init=False)
    _start_order: list[str] = field(default_factory=list, init=False)

    async def startup(self) -> None:
        if self._started:
            raise LifecycleError("startup() called twice")

        logger.info("startup: begin")
        # DI graph must be built during startup (crash here if anything is wrong)
        build_di_graph(self.container, storage=self.storage, store=self.store)

        await self._start_components()
        self._started = True
        logger.info("startup: done")

    async def shutdown(self) -> None:
        if not self._started:
            logger.info("shutdown: skipped (not started)")
            return

        logger.info("shutdown: begin")
        await self._stop_components()
        self._started = False
        logger.info("shutdown: done")

    async def __aenter__(self) -> Container:
        await self.startup()
        return self.container

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.shutdown()

    async def _start_components(self) -> None:
        for name, component in self.container.all_components():
            if isinstance(component, AsyncStartStop):
                logger.info("component.start: {}", name)
                try:
                    await component.start()
                except Exception as exc:
                    raise LifecycleError(f"Component failed to start: {name}") from exc
                self._start_order.append(name)

    async def _stop_components(self) -> None:
        for name in reversed(self._start_order):
            component: Any = self.container.get(name)
            if isinstance(component, AsyncStartStop):
                logger.info("component.stop: {}", name)
                try:
                    await component.stop()
                except Exception:
                    logger.exception("component.stop failed: {}", name)

        await asyncio.sleep(0)
        self._start_order.clear()
