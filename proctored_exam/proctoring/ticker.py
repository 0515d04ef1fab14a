"""
proctoring/ticker.py

주기 작업 실행기. asyncio 태스크 하나로 period마다 콜백을 호출한다.
콜백이 코루틴이면 끝날 때까지 기다린 뒤 다음 주기를 잰다 (작업이 겹치지 않음).
"""

import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Optional, Union

logger = logging.getLogger(__name__)

TickCallback = Callable[[], Union[None, Awaitable[None]]]


class Ticker:
    def __init__(self, period_seconds: float, callback: TickCallback, name: str = "ticker"):
        self.period_seconds = period_seconds
        self._callback = callback
        self.name = name
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """이미 돌고 있으면 아무것도 하지 않는다. 실행 중인 이벤트 루프가 필요."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name=self.name)

    def stop(self) -> None:
        """동기 취소. 두 번 호출해도 안전."""
        task, self._task = self._task, None
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.period_seconds)
            try:
                result = self._callback()
                if inspect.isawaitable(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception(f"{self.name}: 주기 작업 오류")
            if self._task is None:
                # 콜백 안에서 stop()이 불린 경우
                return


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None
