import os
import time
from typing import Iterator, Optional


def tail(
    path: str,
    follow: bool = True,
    sleep_s: float = 0.25,
    stop_event: Optional[object] = None,
    from_start: bool = False,
) -> Iterator[str]:
    """Polling tail of a growing file with truncation/rotation handling (no extra deps).

    - Starts at the end of the file unless ``from_start`` (like ``tail -f``).
    - On truncation, continues from the beginning; on rotation (the path now
      points at a different inode), continues from the new file's end.
    - While the file is missing, waits for it to (re)appear.
    - Yields nothing more once ``stop_event.is_set()`` or, without ``follow``,
      at the first end of file.
    """
    def _stopped() -> bool:
        return stop_event is not None and getattr(stop_event, "is_set", lambda: False)()

    def _stat_or_none(p: str) -> Optional[os.stat_result]:
        try:
            return os.stat(p)
        except FileNotFoundError:
            return None

    st = _stat_or_none(path)
    while st is None and follow and not _stopped():
        time.sleep(sleep_s)
        st = _stat_or_none(path)
    if st is None:
        return

    handle = open(path, "r", encoding="utf-8", errors="replace")
    try:
        if not from_start:
            handle.seek(0, os.SEEK_END)
        position = handle.tell()
        inode = st.st_ino
        while not _stopped():
            line = handle.readline()
            if line.endswith("\n") or (line and not follow):
                position = handle.tell()
                yield line
                continue
            # Partial line at EOF: rewind and wait for the writer to finish it
            handle.seek(position)
            if not follow:
                break
            time.sleep(sleep_s)

            st_now = _stat_or_none(path)
            if st_now is None:
                continue
            truncated = st_now.st_size < position
            rotated = st_now.st_ino != inode
            if truncated or rotated:
                handle.close()
                handle = open(path, "r", encoding="utf-8", errors="replace")
                if rotated and not truncated:
                    handle.seek(0, os.SEEK_END)
                position = handle.tell()
                inode = st_now.st_ino
    finally:
        handle.close()


__all__ = ["tail"]
