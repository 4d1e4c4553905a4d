"""
文件监视

基于 watchdog 监视目录，收集变更路径并在防抖间隔后统一回调
"""

import threading
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Set, Union

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from ..logger import logger
from ..utils.constants import DEFAULT_DEBOUNCE_INTERVAL

ChangeCallback = Callable[[Set[Path]], None]

_IGNORED_PARTS = {"__pycache__", ".git"}


class _ChangeEventHandler(FileSystemEventHandler):
    def __init__(self, watcher: "FileChangeWatcher"):
        super().__init__()
        self.watcher = watcher

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        paths = [event.src_path]
        dest = getattr(event, "dest_path", None)
        if dest:
            paths.append(dest)
        for raw in paths:
            path = Path(raw.decode() if isinstance(raw, bytes) else raw)
            if _IGNORED_PARTS.intersection(path.parts) or path.suffix == ".pyc":
                continue
            self.watcher.on_change(path)


class FileChangeWatcher:
    """带防抖的目录监视器

    watchdog 线程中收集变更路径，防抖计时器到期后在计时器线程中调用回调。
    """

    def __init__(
        self,
        callback: ChangeCallback,
        directories: Iterable[Union[str, Path]],
        debounce_interval: float = DEFAULT_DEBOUNCE_INTERVAL,
    ) -> None:
        self.callback = callback
        self.directories: List[Path] = []
        for directory in directories:
            directory = Path(directory)
            if directory not in self.directories:
                self.directories.append(directory)
        self.debounce_interval = debounce_interval
        self._lock = threading.Lock()
        self._pending: Set[Path] = set()
        self._timer: Optional[threading.Timer] = None
        self._observer: Optional[Observer] = None

    @property
    def is_running(self) -> bool:
        return self._observer is not None

    def start(self) -> None:
        if self._observer is not None:
            return
        observer = Observer()
        handler = _ChangeEventHandler(self)
        scheduled = 0
        for directory in self.directories:
            if directory.is_dir():
                observer.schedule(handler, str(directory), recursive=True)
                scheduled += 1
            else:
                logger.debug(f"监视目录 {directory} 不存在，跳过")
        observer.daemon = True
        observer.start()
        self._observer = observer
        logger.info(f"文件监视已启动，共 {scheduled} 个目录")

    def stop(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._pending.clear()
        if self._observer is not None:
            self._observer.stop()
            self._observer.join()
            self._observer = None
            logger.info("文件监视已停止")

    def on_change(self, path: Path) -> None:
        """记录变更路径并重置防抖计时器"""
        with self._lock:
            self._pending.add(path)
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self.debounce_interval, self._flush)
            self._timer.daemon = True
            self._timer.start()

    def _flush(self) -> None:
        with self._lock:
            paths = set(self._pending)
            self._pending.clear()
            self._timer = None
        if not paths:
            return
        try:
            self.callback(paths)
        except Exception:
            logger.exception(f"处理文件变更失败: {', '.join(p.name for p in paths)}")
