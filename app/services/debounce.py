# app/services/debounce.py

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, List, Union

logger = logging.getLogger(__name__)

Callback = Callable[[], Union[Awaitable[Any], Any]]


class Debouncer:
    """
    Agrupa ráfagas de solicitudes por llave: "el último gana".

    schedule(key, cb) cancela la tarea pendiente de esa llave (si aún está
    esperando) y programa una nueva. Una tarea que ya empezó a ejecutar su
    callback no se cancela.
    """

    def __init__(self, delay: float) -> None:
        self.delay = delay
        self._tasks: Dict[str, asyncio.Task] = {}

    @property
    def pending(self) -> List[str]:
        return [key for key, task in self._tasks.items() if not task.done()]

    def schedule(self, key: str, callback: Callback) -> asyncio.Task:
        previous = self._tasks.get(key)
        if previous is not None and not previous.done():
            previous.cancel()

        task = asyncio.get_running_loop().create_task(self._run(key, callback))
        self._tasks[key] = task
        return task

    async def _run(self, key: str, callback: Callback) -> None:
        await asyncio.sleep(self.delay)

        # Ya no es "pendiente": una nueva solicitud programará otra ejecución
        if self._tasks.get(key) is asyncio.current_task():
            del self._tasks[key]

        try:
            result = callback()
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Debounced callback for %r failed", key)

    def cancel(self, key: str) -> bool:
        task = self._tasks.pop(key, None)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    def cancel_all(self) -> None:
        for key in list(self._tasks):
            self.cancel(key)
