import contextlib
import fcntl
import logging
import os
import termios
import typeguard
from pathlib import Path
from typing import Literal

from ok_print_bridge import _exceptions


SharingType = Literal["oblivious", "exclusive"]

LOCK_DIR = Path("/var/lock")

log = logging.getLogger("ok_print_bridge.locking")


def lock_path_for(port: str) -> Path:
    """UUCP-style lock file path, e.g. /var/lock/LCK..ttyUSB0"""

    parts = Path(port).parts
    if len(parts) >= 2 and parts[-2] == "pts" and parts[-1].isdigit():
        return LOCK_DIR / f"LCK..pts.{parts[-1]}"
    return LOCK_DIR / f"LCK..{parts[-1]}"


@contextlib.contextmanager
@typeguard.typechecked
def using_lock_file(port: str, sharing: SharingType):
    lock_path = lock_path_for(port)
    claimed = sharing != "oblivious" and _claim_lock_file(port, lock_path)
    try:
        yield
    finally:
        if claimed:
            _release_lock_file(lock_path)


@contextlib.contextmanager
@typeguard.typechecked
def using_fd_lock(port: str, fd: int, sharing: SharingType):
    if sharing == "oblivious":
        yield
        return

    try:
        fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        log.debug("Acquired flock(LOCK_EX) on %s", port)
    except BlockingIOError as exc:
        raise _exceptions.LinkBusy("Port busy (flock held)", port) from exc
    except OSError:
        log.warning("Can't flock %s", port, exc_info=True)

    try:
        fcntl.ioctl(fd, termios.TIOCEXCL)
        log.debug("Acquired TIOCEXCL on %s", port)
    except OSError:
        log.warning("Can't set TIOCEXCL on %s", port, exc_info=True)

    try:
        yield
    finally:
        for what, release in (
            ("TIOCEXCL", lambda: fcntl.ioctl(fd, termios.TIOCNXCL)),
            ("flock", lambda: fcntl.flock(fd, fcntl.LOCK_UN | fcntl.LOCK_NB)),
        ):
            try:
                release()
                log.debug("Released %s on %s", what, port)
            except OSError:
                log.warning("Can't release %s on %s", what, port, exc_info=True)


def _claim_lock_file(port: str, lock_path: Path) -> bool:
    if not lock_path.parent.is_dir():
        log.debug("No lock directory %s", lock_path.parent)
        return False

    for _try in range(10):
        if owner_pid := _lock_file_owner(lock_path):
            if owner_pid == os.getpid():
                log.debug("We already own %s", lock_path)
                return False
            message = f"Port busy ({lock_path}: pid={owner_pid})"
            raise _exceptions.LinkBusy(message, port)

        try:
            with lock_path.open("xt") as lock_file:
                lock_file.write(f"{os.getpid():>10d}\n")
        except FileExistsError:
            log.warning("Conflict creating %s", lock_path)
            continue
        except OSError:
            log.warning("Can't create %s", lock_path, exc_info=True)
            return False

        log.debug("Claimed %s", lock_path)
        return True

    raise _exceptions.LinkBusy("Port busy (lock retries exceeded)", port)


def _release_lock_file(lock_path: Path) -> None:
    if _lock_file_owner(lock_path) != os.getpid():
        return

    try:
        lock_path.unlink()
        log.debug("Released %s", lock_path)
    except OSError:
        log.warning("Can't release %s", lock_path, exc_info=True)


def _lock_file_owner(lock_path: Path) -> int | None:
    try:
        with lock_path.open("rt") as lock_file:
            owner_pid = int(lock_file.read(128).strip())
        if owner_pid <= 0:
            raise ValueError(f"Bad pid {owner_pid}")
        try:
            os.kill(owner_pid, 0)  # check if process exists
        except PermissionError:
            pass  # exists, owned by another user
        return owner_pid
    except FileNotFoundError:
        return None
    except (ProcessLookupError, ValueError):
        try:
            lock_path.unlink()
            log.debug("Removed stale %s", lock_path)
        except OSError:
            log.warning("Can't remove %s", lock_path, exc_info=True)
        return None
    except OSError:
        log.warning("Can't check %s", lock_path, exc_info=True)
        return None
