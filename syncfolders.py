# /syncfolders.py
"""
syncfolders
- Watches a source folder and mirrors every change into a target folder (one way).
- Optional full copy on startup (skip with --noinitial).
- Filesystem notifications come from watchdog and are debounced per path
  (default 3 seconds) before they are applied.
- Mirror actions:
  - created / modified file -> copy (metadata preserved via copy2)
  - created directory -> mkdir
  - removed file -> delete
  - removed directory -> rmdir (never recursive)
  - renamed -> remove old, then materialize new
- Failures are logged and never stop the watcher.
- Optional gitignore-style ignore rules (--ignore).
- Styled console output, optional plain log file (--log-dir).

Usage
  pip install watchdog pathspec colorama
  syncfolders -i ./src -o ./dst
  syncfolders --input "/src" --output "/dst" --noinitial --debounce 1
"""

from __future__ import annotations

import argparse
import datetime as dt
import enum
import logging
import os
import queue
import shutil
import signal
import sys
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from pathspec import PathSpec
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

try:
    from colorama import init as colorama_init  # type: ignore
except Exception:  # pragma: no cover
    colorama_init = None

LOGGER_NAME = "syncfolders"
DEFAULT_DEBOUNCE_SEC = 3.0
STOP_REASON = "stopping"


# -------------------------
# Console styling
# -------------------------

class Ansi:
    RESET = "\x1b[0m"
    RED = "\x1b[31m"
    GREEN = "\x1b[32m"
    ORANGE = "\x1b[38;5;208m"
    WHITE = "\x1b[97m"
    LIGHT_BROWN = "\x1b[33m"


ACTION_COLORS = {
    "COPY": Ansi.GREEN,
    "MKDIR": Ansi.LIGHT_BROWN,
    "DELETE": Ansi.ORANGE,
    "RMDIR": Ansi.ORANGE,
    "SKIP": Ansi.WHITE,
    "ANOMALY": Ansi.ORANGE,
}


def _supports_color(stream) -> bool:
    try:
        return hasattr(stream, "isatty") and stream.isatty()
    except (AttributeError, ValueError):
        return False


class ColorizingFormatter(logging.Formatter):
    def __init__(self, use_color: bool, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        if not self.use_color:
            return base

        if record.levelno >= logging.ERROR:
            return f"{Ansi.RED}{base}{Ansi.RESET}"

        action = getattr(record, "action", None)
        if action and action in base:
            color = ACTION_COLORS.get(action, "")
            base = base.replace(action, f"{color}{action}{Ansi.RESET}", 1)

        path_text = getattr(record, "path_text", None)
        if path_text and path_text in base:
            pcolor = Ansi.LIGHT_BROWN if getattr(record, "is_dir", False) else Ansi.WHITE
            base = base.replace(path_text, f"{pcolor}{path_text}{Ansi.RESET}")

        return base


def _today_log_name(prefix: str = "syncfolders") -> str:
    return f"{prefix}_{dt.date.today().isoformat()}.log"


def setup_logger(log_dir: Optional[Path] = None, level: int = logging.INFO) -> logging.Logger:
    """Console logger, plus a plain file log when ``log_dir`` is given."""
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False

    if logger.handlers:
        return logger

    if colorama_init:
        colorama_init()

    fmt = "%(asctime)s | %(levelname)s | %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"

    ch = logging.StreamHandler(sys.stdout)
    ch.setLevel(level)
    ch.setFormatter(ColorizingFormatter(use_color=_supports_color(sys.stdout), fmt=fmt, datefmt=datefmt))
    logger.addHandler(ch)

    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        log_path = log_dir / _today_log_name()
        fh = logging.FileHandler(log_path, encoding="utf-8")
        fh.setFormatter(logging.Formatter(fmt=fmt, datefmt=datefmt))
        fh.setLevel(level)
        logger.addHandler(fh)
        logger.info("Logging to: %s", log_path)

    return logger


def log_action(
    logger: logging.Logger,
    action: str,
    message: str,
    path: Optional[Path] = None,
    is_dir: Optional[bool] = None,
    level: int = logging.INFO,
) -> None:
    extra = {"action": action}
    if path is not None:
        extra["path_text"] = str(path)
        extra["is_dir"] = bool(is_dir) if is_dir is not None else path.is_dir()
    logger.log(level, f"{action} | {message}", extra=extra)


# -------------------------
# Events / actions
# -------------------------

class ChangeKind(enum.Enum):
    CREATED = "created"
    MODIFIED = "modified"
    REMOVED = "removed"
    RENAMED = "renamed"
    RESCAN = "rescan"
    ERROR = "error"
    # hints delivered before the debounced event, never acted upon
    NOTICE_WRITE = "notice_write"
    NOTICE_REMOVE = "notice_remove"
    CHMOD = "chmod"


@dataclass(frozen=True)
class ChangeEvent:
    kind: ChangeKind
    path: Optional[Path] = None
    new_path: Optional[Path] = None
    reason: Optional[str] = None

    @classmethod
    def created(cls, path: Path) -> "ChangeEvent":
        return cls(ChangeKind.CREATED, path=Path(path))

    @classmethod
    def modified(cls, path: Path) -> "ChangeEvent":
        return cls(ChangeKind.MODIFIED, path=Path(path))

    @classmethod
    def removed(cls, path: Path) -> "ChangeEvent":
        return cls(ChangeKind.REMOVED, path=Path(path))

    @classmethod
    def renamed(cls, old: Path, new: Path) -> "ChangeEvent":
        return cls(ChangeKind.RENAMED, path=Path(old), new_path=Path(new))

    @classmethod
    def error(cls, reason: str) -> "ChangeEvent":
        return cls(ChangeKind.ERROR, reason=reason)

    @property
    def is_stop(self) -> bool:
        return self.kind is ChangeKind.ERROR and self.reason == STOP_REASON


# Pushed onto the event channel when the watcher can no longer deliver events.
CHANNEL_CLOSED = object()


class ActionKind(enum.Enum):
    COPY_FILE = "copy_file"
    ENSURE_DIRECTORY = "ensure_directory"
    REMOVE_FILE = "remove_file"
    REMOVE_DIRECTORY = "remove_directory"
    NOOP = "noop"


@dataclass(frozen=True)
class MirrorAction:
    kind: ActionKind
    source: Path
    relative: Path
    target: Path


# -------------------------
# Config / CLI
# -------------------------

@dataclass(frozen=True)
class MirrorConfig:
    source_root: Path
    target_root: Path
    perform_initial_sync: bool = True
    debounce_sec: float = DEFAULT_DEBOUNCE_SEC
    ignore_patterns: tuple[str, ...] = ()
    log_dir: Optional[Path] = None


def parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        prog="syncfolders",
        description="Mirror changes from one folder to another (one way).",
    )
    p.add_argument("-i", "--input", type=str, default=None, help="Folder to watch (source).")
    p.add_argument("-o", "--output", type=str, default=None, help="Folder to keep in sync (target).")
    p.add_argument("-n", "--noinitial", action="store_true", help="Skip the full copy on startup.")
    p.add_argument(
        "--debounce",
        type=float,
        default=DEFAULT_DEBOUNCE_SEC,
        help="Seconds of quiet per path before a change is applied.",
    )
    p.add_argument(
        "--ignore",
        action="append",
        default=[],
        metavar="PATTERN",
        help="gitignore-style pattern to leave out of the mirror (repeatable).",
    )
    p.add_argument("--log-dir", type=str, default=None, help="Also write a log file into this directory.")
    p.add_argument("-v", "--verbose", action="store_true", help="Log debug detail.")
    return p.parse_args(argv)


def _is_subpath(child: Path, parent: Path) -> bool:
    try:
        child.relative_to(parent)
        return True
    except ValueError:
        return False


def validate_roots(source: Path, target: Path) -> tuple[Path, Path]:
    source = source.expanduser().resolve()
    target = target.expanduser().resolve()

    if not source.is_dir():
        raise ValueError(f"Input folder does not exist or is not a folder: {source}")
    if not target.is_dir():
        raise ValueError(f"Output folder does not exist or is not a folder: {target}")
    if not os.access(source, os.R_OK | os.X_OK):
        raise ValueError(f"Input folder is not readable: {source}")
    if not os.access(target, os.R_OK | os.W_OK | os.X_OK):
        raise ValueError(f"Output folder is not writable: {target}")
    if source == target:
        raise ValueError("Input and output folders must be different.")
    if _is_subpath(target, source):
        raise ValueError("Output folder must NOT be inside input folder (would cause loops).")
    if _is_subpath(source, target):
        raise ValueError("Input folder must NOT be inside output folder.")

    return source, target


def build_config(args: argparse.Namespace) -> MirrorConfig:
    source, target = validate_roots(Path(args.input), Path(args.output))
    return MirrorConfig(
        source_root=source,
        target_root=target,
        perform_initial_sync=not args.noinitial,
        debounce_sec=max(0.0, float(args.debounce)),
        ignore_patterns=tuple(args.ignore),
        log_dir=Path(args.log_dir).expanduser().resolve() if args.log_dir else None,
    )


# -------------------------
# Path mapping
# -------------------------

def _strip_anchor(path: Path) -> Path:
    if path.is_absolute():
        return Path(*path.parts[1:])
    return path


def _strip_root(path: Path, root: Path, logger: Optional[logging.Logger]) -> Path:
    try:
        return path.relative_to(root)
    except ValueError as e:
        fallback = _strip_anchor(path)
        if logger is not None:
            log_action(
                logger,
                "ANOMALY",
                f"path {path} is not under watched root {root}, using {fallback} | {e}",
                path=path,
                is_dir=False,
                level=logging.WARNING,
            )
        return fallback


def relativize(path: Path, root: Path, logger: Optional[logging.Logger] = None) -> Path:
    """Path of ``path`` relative to ``root``, both canonicalized first.

    When the canonical path does not live under the canonical root the
    anomaly is logged and the original path, minus its anchor, is used as the
    relative path so the result still lands inside the target root.
    A symlink is mapped by its resolved name, which is logged.
    """
    path = Path(path)
    resolved = path.resolve()
    if logger is not None and resolved.name != path.name:
        logger.info("Link %s mirrored under its resolved name %s", path, resolved)
    return _strip_root(resolved, Path(root).resolve(), logger)


def relativize_for_remove(path: Path, root: Path, logger: Optional[logging.Logger] = None) -> Path:
    """Like :func:`relativize` but purely lexical; removed paths no longer resolve."""
    cwd = Path.cwd()
    return _strip_root(Path(os.path.abspath(cwd / path)), Path(os.path.abspath(cwd / root)), logger)


def to_target_path(relative: Path, target_root: Path) -> Path:
    return Path.cwd() / target_root / relative


# -------------------------
# Ignore rules
# -------------------------

class IgnoreMatcher:
    def __init__(self, root: Path, patterns: tuple[str, ...] | list[str] = ()):
        self.root = Path(root).resolve()
        self.spec = PathSpec.from_lines("gitwildmatch", list(patterns))
        self.enabled = bool(patterns)

    def is_ignored(self, path: Path, is_dir: Optional[bool] = None) -> bool:
        if not self.enabled:
            return False
        try:
            rel = Path(os.path.abspath(path)).relative_to(self.root)
        except ValueError:
            return False
        rel_posix = rel.as_posix()
        if is_dir is None:
            is_dir = Path(path).is_dir()
        if is_dir and not rel_posix.endswith("/"):
            rel_posix += "/"
        return self.spec.match_file(rel_posix)


# -------------------------
# Mirror operations
# -------------------------

class MirrorExecutor:
    """Applies mirror actions to the target tree; failures are logged, never raised."""

    def __init__(self, config: MirrorConfig, logger: logging.Logger):
        self.config = config
        self.logger = logger

    def resolve_materialize(self, source: Path) -> MirrorAction:
        source = Path(source)
        if source.is_file():
            kind = ActionKind.COPY_FILE
        elif source.is_dir():
            kind = ActionKind.ENSURE_DIRECTORY
        else:
            return MirrorAction(ActionKind.NOOP, source, Path(), Path())
        rel = relativize(source, self.config.source_root, self.logger)
        return MirrorAction(kind, source, rel, to_target_path(rel, self.config.target_root))

    def resolve_remove(self, source: Path) -> MirrorAction:
        source = Path(source)
        rel = relativize_for_remove(source, self.config.source_root, self.logger)
        target = to_target_path(rel, self.config.target_root)
        if target.is_symlink() or target.is_file():
            kind = ActionKind.REMOVE_FILE
        elif target.is_dir():
            kind = ActionKind.REMOVE_DIRECTORY
        else:
            kind = ActionKind.NOOP
        return MirrorAction(kind, source, rel, target)

    def _log_failure(self, label: str, source: Path, relative, target, error: Exception, is_dir: bool = False) -> None:
        log_action(
            self.logger,
            label,
            f"ERROR input: {source} | relative: {relative} | output: {target} | {error!r}",
            path=target,
            is_dir=is_dir,
            level=logging.ERROR,
        )

    def _lexical_target(self, source: Path) -> tuple[Path, Path]:
        rel = relativize_for_remove(source, self.config.source_root)
        return rel, to_target_path(rel, self.config.target_root)

    def materialize(self, source: Path) -> bool:
        try:
            action = self.resolve_materialize(source)
        except OSError as e:
            rel, target = self._lexical_target(source)
            self._log_failure("MATERIALIZE", source, rel, target, e)
            return False
        if action.kind is ActionKind.NOOP:
            self.logger.debug("Source vanished before it could be mirrored: %s", source)
            return True
        return self.apply(action)

    def remove(self, source: Path) -> bool:
        try:
            action = self.resolve_remove(source)
        except OSError as e:
            rel, target = self._lexical_target(source)
            self._log_failure("REMOVE", source, rel, target, e)
            return False
        if action.kind is ActionKind.NOOP:
            log_action(
                self.logger,
                "SKIP",
                f"nothing to remove for {action.relative} at {action.target}",
                path=action.target,
                is_dir=False,
            )
            return True
        return self.apply(action)

    def apply(self, action: MirrorAction) -> bool:
        try:
            if action.kind is ActionKind.COPY_FILE:
                action.target.parent.mkdir(parents=True, exist_ok=True)
                if action.target.is_dir() and not action.target.is_symlink():
                    # directory replaced by a file; only an emptied directory gives way
                    action.target.rmdir()
                    log_action(self.logger, "RMDIR", f"{action.relative} replaced by a file", path=action.target, is_dir=True)
                shutil.copy2(action.source, action.target)
                log_action(self.logger, "COPY", f"{action.relative} updated -> {action.target}", path=action.target, is_dir=False)
            elif action.kind is ActionKind.ENSURE_DIRECTORY:
                if action.target.is_dir():
                    return True
                if action.target.is_symlink() or action.target.is_file():
                    action.target.unlink()
                    log_action(self.logger, "DELETE", f"{action.relative} replaced by a directory", path=action.target, is_dir=False)
                action.target.mkdir(parents=True, exist_ok=True)
                log_action(self.logger, "MKDIR", f"{action.relative} -> {action.target}", path=action.target, is_dir=True)
            elif action.kind is ActionKind.REMOVE_FILE:
                action.target.unlink()
                log_action(self.logger, "DELETE", f"{action.relative} deleted in target", path=action.target, is_dir=False)
            elif action.kind is ActionKind.REMOVE_DIRECTORY:
                action.target.rmdir()
                log_action(self.logger, "RMDIR", f"{action.relative} removed in target", path=action.target, is_dir=True)
            return True
        except (OSError, shutil.Error) as e:
            self._log_failure(
                action.kind.name,
                action.source,
                action.relative,
                action.target,
                e,
                is_dir=action.kind in (ActionKind.ENSURE_DIRECTORY, ActionKind.REMOVE_DIRECTORY),
            )
            return False


def copy_tree(
    source: Path,
    target: Path,
    logger: logging.Logger,
    ignore: Optional[IgnoreMatcher] = None,
) -> tuple[int, int]:
    """Copy everything inside ``source`` into ``target``, overwriting existing files.

    Returns ``(copied, failed)``.
    """
    logger.info("INITIAL SYNC: start")
    copied = failed = 0
    skipped_dirs: list[Path] = []

    for src_path in sorted(source.rglob("*")):
        if any(_is_subpath(src_path, d) for d in skipped_dirs):
            continue
        try:
            is_dir = src_path.is_dir()
            if ignore is not None and ignore.is_ignored(src_path, is_dir=is_dir):
                if is_dir:
                    skipped_dirs.append(src_path)
                continue

            dst_path = target / src_path.relative_to(source)
            if is_dir:
                if not dst_path.is_dir():
                    dst_path.mkdir(parents=True, exist_ok=True)
                    log_action(logger, "MKDIR", f"(initial) {dst_path}", path=dst_path, is_dir=True)
                continue
            if not src_path.is_file():
                continue

            dst_path.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(src_path, dst_path)
            copied += 1
            log_action(logger, "COPY", f"(initial) {src_path} -> {dst_path}", path=dst_path, is_dir=False)
        except (OSError, shutil.Error) as e:
            failed += 1
            log_action(logger, "COPY", f"ERROR (initial) {src_path} | {e}", path=src_path, is_dir=False, level=logging.ERROR)

    logger.info("INITIAL SYNC: done (%d copied, %d failed)", copied, failed)
    return copied, failed


# -------------------------
# Event translation
# -------------------------

class EventTranslator:
    def __init__(self, executor: MirrorExecutor, logger: logging.Logger):
        self.executor = executor
        self.logger = logger

    def handle(self, event: ChangeEvent) -> None:
        kind = event.kind
        if kind in (ChangeKind.CREATED, ChangeKind.MODIFIED):
            self.executor.materialize(event.path)
        elif kind is ChangeKind.REMOVED:
            self.executor.remove(event.path)
        elif kind is ChangeKind.RENAMED:
            # old target first: both names may map onto the same target path
            self.executor.remove(event.path)
            self.executor.materialize(event.new_path)
        elif kind is ChangeKind.ERROR:
            if not event.is_stop:
                self.logger.warning("Watcher reported an error: %s", event.reason)
        else:
            self.logger.debug("Ignoring %s for %s", kind.value, event.path)


# -------------------------
# Watchdog + debounce
# -------------------------

@dataclass
class _Pending:
    kind: ChangeKind
    last_seen: float
    old_path: Optional[Path] = None


class Debouncer:
    """
    Collapses bursts of raw notifications per path into one terminal event,
    emitted once the path has been quiet for ``delay`` seconds.
    Notice hints go out immediately.
    """

    def __init__(self, channel, delay: float, clock: Callable[[], float] = time.monotonic):
        self.channel = channel
        self.delay = delay
        self.clock = clock
        self._pending: dict[Path, _Pending] = {}
        self._guard = threading.Lock()

    def created(self, path: Path) -> None:
        path = Path(path)
        with self._guard:
            cur = self._pending.get(path)
            if cur is None:
                kind = ChangeKind.CREATED
            elif cur.kind is ChangeKind.REMOVED:
                kind = ChangeKind.MODIFIED
            else:
                kind = cur.kind
            self._put(path, kind, cur.old_path if cur else None)
        self._maybe_flush()

    def modified(self, path: Path) -> None:
        path = Path(path)
        with self._guard:
            cur = self._pending.get(path)
            if cur is None:
                self.channel.put(ChangeEvent(ChangeKind.NOTICE_WRITE, path=path))
                self._put(path, ChangeKind.MODIFIED)
            elif cur.kind is ChangeKind.REMOVED:
                self._put(path, ChangeKind.MODIFIED)
            else:
                self._put(path, cur.kind, cur.old_path)
        self._maybe_flush()

    def removed(self, path: Path) -> None:
        path = Path(path)
        with self._guard:
            self.channel.put(ChangeEvent(ChangeKind.NOTICE_REMOVE, path=path))
            cur = self._pending.pop(path, None)
            if cur is not None and cur.kind is ChangeKind.CREATED:
                pass
            elif cur is not None and cur.kind is ChangeKind.RENAMED:
                self._put(cur.old_path, ChangeKind.REMOVED)
            else:
                self._put(path, ChangeKind.REMOVED)
        self._maybe_flush()

    def renamed(self, old: Path, new: Path) -> None:
        old, new = Path(old), Path(new)
        with self._guard:
            self.channel.put(ChangeEvent(ChangeKind.NOTICE_REMOVE, path=old))
            cur = self._pending.pop(old, None)
            self._pending.pop(new, None)
            if cur is not None and cur.kind is ChangeKind.CREATED:
                self._put(new, ChangeKind.CREATED)
            elif cur is not None and cur.kind is ChangeKind.RENAMED:
                if cur.old_path == new:
                    self._put(new, ChangeKind.MODIFIED)
                else:
                    self._put(new, ChangeKind.RENAMED, cur.old_path)
            else:
                self._put(new, ChangeKind.RENAMED, old)
        self._maybe_flush()

    def _put(self, path: Path, kind: ChangeKind, old_path: Optional[Path] = None) -> None:
        self._pending.pop(path, None)
        self._pending[path] = _Pending(kind, self.clock(), old_path)

    def _maybe_flush(self) -> None:
        if self.delay <= 0:
            self.flush(force=True)

    def flush(self, force: bool = False) -> int:
        """Emit every pending event that is due (all of them with ``force``)."""
        now = self.clock()
        with self._guard:
            due = [
                (path, p)
                for path, p in self._pending.items()
                if force or now - p.last_seen >= self.delay
            ]
            for path, _ in due:
                del self._pending[path]
            # deepest first so directories are emptied before they are renamed or removed
            due.sort(key=lambda item: len(item[0].parts), reverse=True)
            for path, p in due:
                self.channel.put(self._to_event(path, p))
        return len(due)

    @staticmethod
    def _to_event(path: Path, p: _Pending) -> ChangeEvent:
        if p.kind is ChangeKind.RENAMED:
            return ChangeEvent.renamed(p.old_path, path)
        return ChangeEvent(p.kind, path=path)

    def pending_count(self) -> int:
        with self._guard:
            return len(self._pending)


class ChangeCollector(FileSystemEventHandler):
    """Feeds watchdog notifications into the debouncer, minus ignored paths."""

    def __init__(self, debouncer: Debouncer, ignore: IgnoreMatcher):
        super().__init__()
        self.debouncer = debouncer
        self.ignore = ignore

    def _skip(self, path: Path, is_dir: bool) -> bool:
        return self.ignore.is_ignored(path, is_dir=is_dir)

    def on_created(self, event):
        src = Path(os.fsdecode(event.src_path))
        if not self._skip(src, bool(event.is_directory)):
            self.debouncer.created(src)

    def on_modified(self, event):
        if event.is_directory:
            return
        src = Path(os.fsdecode(event.src_path))
        if not self._skip(src, False):
            self.debouncer.modified(src)

    def on_deleted(self, event):
        src = Path(os.fsdecode(event.src_path))
        if not self._skip(src, bool(event.is_directory)):
            self.debouncer.removed(src)

    def on_moved(self, event):
        src = Path(os.fsdecode(event.src_path))
        dest = Path(os.fsdecode(event.dest_path))
        is_dir = bool(event.is_directory)
        src_ignored = self._skip(src, is_dir)
        dest_ignored = self._skip(dest, is_dir)

        if src_ignored and dest_ignored:
            return
        if dest_ignored:
            self.debouncer.removed(src)
        elif src_ignored:
            self.debouncer.created(dest)
        else:
            self.debouncer.renamed(src, dest)


class FileWatcher:
    """
    Recursive watchdog subscription on ``root`` delivering debounced
    ChangeEvents into ``channel``. A daemon thread flushes due events and
    reports a dead observer by pushing CHANNEL_CLOSED.
    """

    def __init__(
        self,
        root: Path,
        channel,
        delay: float,
        logger: logging.Logger,
        ignore: Optional[IgnoreMatcher] = None,
        observer_factory: Callable[[], object] = Observer,
    ):
        self.root = Path(root)
        self.channel = channel
        self.logger = logger
        self.debouncer = Debouncer(channel, delay)
        self.handler = ChangeCollector(self.debouncer, ignore or IgnoreMatcher(root))
        self.observer = observer_factory()
        self.tick_sec = min(0.25, delay / 4) if delay > 0 else 0.25
        self._stop_event = threading.Event()
        self._flusher = threading.Thread(target=self._flush_loop, name="syncfolders-debounce", daemon=True)

    def start(self) -> None:
        self.observer.schedule(self.handler, str(self.root), recursive=True)
        self.observer.start()
        self._flusher.start()

    def _flush_loop(self) -> None:
        while not self._stop_event.wait(self.tick_sec):
            self.debouncer.flush()
            if not self.observer.is_alive() and not self._stop_event.is_set():
                self.logger.error("Watcher thread for %s stopped unexpectedly", self.root)
                self.channel.put(CHANNEL_CLOSED)
                return

    def stop(self) -> None:
        self._stop_event.set()
        self.observer.stop()
        if self.observer.is_alive():
            self.observer.join(timeout=10)
        if self._flusher.is_alive():
            self._flusher.join(timeout=10)


# -------------------------
# Session / shutdown
# -------------------------

class WatchSession:
    def __init__(
        self,
        config: MirrorConfig,
        translator: EventTranslator,
        logger: logging.Logger,
        watcher_factory: Optional[Callable[..., FileWatcher]] = None,
    ):
        self.config = config
        self.translator = translator
        self.logger = logger
        self.events: queue.SimpleQueue = queue.SimpleQueue()
        self.shutdown_ack: queue.SimpleQueue = queue.SimpleQueue()
        self.watcher_factory = watcher_factory or FileWatcher
        self.watcher: Optional[FileWatcher] = None

    def start(self) -> None:
        ignore = IgnoreMatcher(self.config.source_root, self.config.ignore_patterns)
        self.watcher = self.watcher_factory(
            self.config.source_root,
            self.events,
            self.config.debounce_sec,
            self.logger,
            ignore=ignore,
        )
        self.watcher.start()

    def consume(self) -> bool:
        """Run until shutdown (True) or until the event channel breaks (False)."""
        while True:
            try:
                self.shutdown_ack.get_nowait()
                self.logger.info("Closing.")
                return True
            except queue.Empty:
                pass

            event = self.events.get()
            if event is CHANNEL_CLOSED:
                self.logger.error("Error in watcher: event channel closed")
                return False
            self.translator.handle(event)

    def close(self) -> None:
        if self.watcher is not None:
            self.watcher.stop()
            self.watcher = None

    def run(self) -> bool:
        try:
            self.start()
            return self.consume()
        finally:
            self.close()


class ShutdownCoordinator:
    """
    Turns the first interrupt into a shutdown request: one value on the
    shutdown-ack channel plus a stop sentinel on the event channel so a
    consumer blocked on ``get`` wakes up. The handler only does the two puts.
    """

    def __init__(self, events, shutdown_ack):
        self.events = events
        self.shutdown_ack = shutdown_ack
        self._triggered = False
        self._previous: dict[int, object] = {}

    def install(self, signums: Optional[tuple[int, ...]] = None) -> None:
        if signums is None:
            signums = (signal.SIGINT,)
            if hasattr(signal, "SIGTERM"):
                signums += (signal.SIGTERM,)
        for signum in signums:
            self._previous[signum] = signal.signal(signum, self._on_signal)

    def restore(self) -> None:
        for signum, previous in self._previous.items():
            signal.signal(signum, previous)
        self._previous.clear()

    def _on_signal(self, signum, frame) -> None:
        self.request_shutdown()

    def request_shutdown(self) -> None:
        if self._triggered:
            return
        self._triggered = True
        self.shutdown_ack.put(True)
        self.events.put(ChangeEvent.error(STOP_REASON))

    @property
    def triggered(self) -> bool:
        return self._triggered


# -------------------------
# Main
# -------------------------

def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)

    if not args.input or not args.output:
        print(
            "No input and output folder set. Exiting. For help use `syncfolders --help`.",
            file=sys.stderr,
        )
        print("usage: syncfolders -i FOLDER/TO/WATCH -o FOLDER/TO/SYNC [-n]", file=sys.stderr)
        return 1

    logger = setup_logger(
        Path(args.log_dir).expanduser() if args.log_dir else None,
        level=logging.DEBUG if args.verbose else logging.INFO,
    )
    logger.info("Syncing folders, every change is logged below")

    try:
        config = build_config(args)
    except ValueError as e:
        logger.error("Config error: %s", e)
        return 1

    logger.info("Input : %s", config.source_root)
    logger.info("Output: %s", config.target_root)

    if config.perform_initial_sync:
        ignore = IgnoreMatcher(config.source_root, config.ignore_patterns)
        copy_tree(config.source_root, config.target_root, logger, ignore=ignore)
    else:
        logger.info("INITIAL SYNC: skipped (--noinitial)")

    executor = MirrorExecutor(config, logger)
    session = WatchSession(config, EventTranslator(executor, logger), logger)
    coordinator = ShutdownCoordinator(session.events, session.shutdown_ack)

    logger.info("Starting watcher... (Ctrl+C to stop, debounce %.1fs)", config.debounce_sec)
    coordinator.install()
    try:
        ok = session.run()
    except OSError as e:
        logger.error("Could not watch %s: %s", config.source_root, e)
        return 1
    finally:
        coordinator.restore()
        logger.info("Stopped.")
    return 0 if ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
