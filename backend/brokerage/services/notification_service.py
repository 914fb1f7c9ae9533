"""
状态变更通知

通知协作方只需实现 notify(event, payload)。服务在事务内收集事件，
提交成功后再分发；分发失败只记录日志，不影响已完成的状态流转。
"""
from typing import Any, Dict, List, Protocol, Tuple

from loguru import logger


NotificationEvent = Tuple[str, Dict[str, Any]]


class Notifier(Protocol):
    def notify(self, event: str, payload: Dict[str, Any]) -> None:
        ...


class LoggingNotifier:
    """默认通知实现：仅写日志"""

    def notify(self, event: str, payload: Dict[str, Any]) -> None:
        logger.info(f"通知事件 | {event} | {payload}")


def dispatch_notifications(notifier: Notifier, events: List[NotificationEvent]) -> None:
    """逐个分发事件，任何异常都被记录并忽略"""
    for event, payload in events:
        try:
            notifier.notify(event, payload)
        except Exception as e:
            logger.warning(f"通知发送失败（已忽略） | {event}: {e}")


default_notifier = LoggingNotifier()
