"""
事件核心类

管理器投递给插件的变更/关闭/启动事件
"""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, Generic, Optional, TypeVar
from uuid import UUID, uuid4

T = TypeVar("T")


@dataclass
class Event(Generic[T]):
    """事件类

    Attributes:
        event: 事件名称，取值见 PluginEvents
        data: 事件数据（变更的类、文件路径、配置树等）
        source: 事件源，通常是插件管理器或被观察的插件描述符
        target: 接收事件的插件名
        timestamp: 事件时间戳
        id: 事件唯一ID
        metadata: 事件元数据
    """

    event: str
    data: Optional[T] = None
    source: Optional[Any] = None
    target: Optional[str] = None
    timestamp: float = field(default_factory=time.time)
    id: UUID = field(default_factory=uuid4)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        target = f" -> {self.target}" if self.target else ""
        return f"Event({self.event}{target})"
