from typing import Dict, List, Callable, Any
import asyncio
from concurrent.futures import ThreadPoolExecutor
import logging

from assessment.core.constants import EventEnum

logger = logging.getLogger(__name__)

class EventBus:
    def __init__(self):
        self._handlers: Dict[str, List[Callable]] = {}
        self._executor = ThreadPoolExecutor(max_workers=4)

    def subscribe(self, event_type: EventEnum, handler: Callable):
        self._handlers.setdefault(event_type, [])
        if handler not in self._handlers[event_type]:
            self._handlers[event_type].append(handler)

    async def publish(self, event_type: EventEnum, data: Dict[str, Any]):
        handlers = list(self._handlers.get(event_type, []))
        if not handlers:
            return

        tasks = []
        loop = asyncio.get_running_loop()
        for handler in handlers:
            if asyncio.iscoroutinefunction(handler):
                tasks.append(asyncio.create_task(handler(data)))
            else:
                tasks.append(loop.run_in_executor(self._executor, self._run_sync_handler, handler, data))

        # handler failures never propagate to the publisher
        results = await asyncio.gather(*tasks, return_exceptions=True)
        for handler, result in zip(handlers, results):
            if isinstance(result, Exception):
                logger.error(f"Error in event handler {handler.__name__} for {event_type}: {result}")

    def _run_sync_handler(self, handler: Callable, data: Dict[str, Any]):
        try:
            handler(data)
        except Exception as e:
            logger.error(f"Error in sync event handler {handler.__name__}: {e}")
            raise

event_bus = EventBus()
