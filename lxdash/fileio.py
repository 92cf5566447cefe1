"""File access layer used by the FTP server.

Paths are host paths. Results that the server reports back to a client
are FAT-style: packed dates and times and a small set of attribute bits.
Files opened for writing are written by a background thread through a
pair of large cache buffers, so the caller is not blocked by the disk.
"""

import os
import queue
import stat as _stat
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import IntEnum, IntFlag

MAX_LFN = 255
PAGE_SIZE = 4096
FILE_CACHE_SIZE = 128 * 1024
_SIZE_MASK = 0xFFFFFFFF


class FResult(IntEnum):
    """Result codes of the file layer."""

    OK = 0
    DISK_ERR = 1
    INT_ERR = 2
    NOT_READY = 3
    NO_FILE = 4
    NO_PATH = 5
    INVALID_NAME = 6
    DENIED = 7
    EXIST = 8
    INVALID_OBJECT = 9
    WRITE_PROTECTED = 10
    INVALID_DRIVE = 11
    NOT_ENABLED = 12
    NO_FILESYSTEM = 13
    MKFS_ABORTED = 14
    TIMEOUT = 15
    LOCKED = 16
    NOT_ENOUGH_CORE = 17
    TOO_MANY_OPEN_FILES = 18
    INVALID_PARAMETER = 19


class FileError(Exception):
    """A file operation failed; ``result`` holds the reason."""

    def __init__(self, result, path=None):
        self.result = FResult(result)
        self.path = path
        detail = f": {path}" if path is not None else ""
        super().__init__(f"{self.result.name}{detail}")


class Attr(IntFlag):
    """FAT-style file attribute bits."""

    RDO = 0x01
    HID = 0x02
    SYS = 0x04
    DIR = 0x10
    ARC = 0x20


class OpenMode(IntFlag):
    """Modes accepted by :func:`open_file`."""

    READ = 0x01
    WRITE = 0x02
    CREATE_ALWAYS = 0x08


@dataclass
class FileInfo:
    """Directory entry or stat result."""

    name: str
    size: int = 0
    date: int = 0
    time: int = 0
    attrib: Attr = Attr(0)


def to_native_path(path, drive_letters=False):
    """Turn a ``/``-separated path into a backslash path.

    With ``drive_letters`` the leading component names a drive, so
    ``/E/dir`` becomes ``E:\\dir``.
    """
    out = path.replace("/", "\\")
    if drive_letters and len(out) > 1 and out[0] == "\\":
        out = out[1] + ":\\" + out[3:]
    return out


def fat_datetime(timestamp):
    """Pack a timestamp or datetime into a ``(date, time)`` pair of FAT words.

    Numeric timestamps are taken as UTC.
    """
    if isinstance(timestamp, datetime):
        moment = timestamp
    else:
        moment = datetime.fromtimestamp(timestamp, timezone.utc)
    date = (((moment.year - 1980) << 9) & 0xFE00) | ((moment.month << 5) & 0x01E0) | (moment.day & 0x001F)
    time = ((moment.hour << 11) & 0xF800) | ((moment.minute << 5) & 0x07E0) | ((moment.second // 2) & 0x001F)
    return date, time


_WINDOWS_ATTRS = (
    (_stat.FILE_ATTRIBUTE_DIRECTORY, Attr.DIR),
    (_stat.FILE_ATTRIBUTE_HIDDEN, Attr.HID),
    (_stat.FILE_ATTRIBUTE_ARCHIVE, Attr.ARC),
    (_stat.FILE_ATTRIBUTE_SYSTEM, Attr.SYS),
    (_stat.FILE_ATTRIBUTE_READONLY, Attr.RDO),
)


def _attributes(name, st):
    native = getattr(st, "st_file_attributes", None)
    if native is not None:
        attrib = Attr(0)
        for bit, flag in _WINDOWS_ATTRS:
            if native & bit:
                attrib |= flag
        return attrib
    attrib = Attr(0)
    if _stat.S_ISDIR(st.st_mode):
        attrib |= Attr.DIR
    if not st.st_mode & _stat.S_IWUSR:
        attrib |= Attr.RDO
    if name.startswith(".") and name not in (".", ".."):
        attrib |= Attr.HID
    return attrib


def _info(name, st):
    date, time = fat_datetime(st.st_mtime)
    size = 0 if _stat.S_ISDIR(st.st_mode) else st.st_size & _SIZE_MASK
    return FileInfo(name=name[:MAX_LFN], size=size, date=date, time=time,
                    attrib=_attributes(name, st))


def stat(path):
    """Return the :class:`FileInfo` of a file or directory."""
    try:
        st = os.stat(path)
    except OSError:
        raise FileError(FResult.NO_FILE, path) from None
    return _info(os.path.basename(os.fspath(path).rstrip("/\\")), st)


class DirectoryReader:
    """Reads the entries of one directory, one at a time."""

    def __init__(self, path):
        self.path = path
        self._entries = None
        self._done = False

    def read(self):
        """Return the next entry, or None when there are no more."""
        if self._done:
            return None
        if self._entries is None:
            try:
                self._entries = os.scandir(self.path)
            except OSError:
                self._done = True
                return None
        for entry in self._entries:
            try:
                st = entry.stat()
            except OSError:
                continue
            return _info(entry.name, st)
        self._entries.close()
        self._done = True
        return None

    def __iter__(self):
        while (info := self.read()) is not None:
            yield info


def open_dir(path):
    """Open a directory for reading; raises NO_PATH if it does not exist."""
    if not os.path.exists(path):
        raise FileError(FResult.NO_PATH, path)
    return DirectoryReader(path)


def unlink(path):
    """Remove a file or an empty directory; failures are ignored."""
    try:
        if os.path.isdir(path):
            os.rmdir(path)
        else:
            os.remove(path)
    except OSError:
        pass


def _write_all(fd, data):
    view = memoryview(data)
    while len(view):
        written = os.write(fd, view)
        view = view[written:]


class CachedFile:
    """An open file; writes are cached and flushed by a background thread."""

    def __init__(self, fd, path, writable):
        self.path = path
        self._fd = fd
        self._writable = writable
        self._closed = False
        self._cache = bytearray()
        self._write_total = 0
        self._error = None
        self._queue = None
        self._thread = None
        if writable:
            self._queue = queue.Queue(maxsize=1)
            self._thread = threading.Thread(target=self._writer, daemon=True)
            self._thread.start()

    def _writer(self):
        while True:
            chunk = self._queue.get()
            if chunk is None:
                return
            try:
                _write_all(self._fd, chunk)
            except OSError as exc:
                self._error = exc

    def _check_open(self):
        if self._closed:
            raise FileError(FResult.INVALID_OBJECT, self.path)

    def write(self, data):
        """Append ``data`` and return the number of bytes taken."""
        self._check_open()
        if not self._writable:
            raise FileError(FResult.DENIED, self.path)
        view = memoryview(data).cast("B")
        taken = len(view)
        while len(view):
            room = FILE_CACHE_SIZE - len(self._cache)
            self._cache += view[:room]
            view = view[room:]
            if len(self._cache) == FILE_CACHE_SIZE:
                self._queue.put(bytes(self._cache))
                self._cache.clear()
                self._write_total += FILE_CACHE_SIZE
        return taken

    def read(self, length, position=0):
        """Read up to ``length`` bytes starting at ``position``."""
        self._check_open()
        try:
            os.lseek(self._fd, position, os.SEEK_SET)
            return os.read(self._fd, length)
        except OSError:
            raise FileError(FResult.INVALID_PARAMETER, self.path) from None

    def size(self):
        """Current size of the file on disk."""
        self._check_open()
        try:
            return os.fstat(self._fd).st_size & _SIZE_MASK
        except OSError:
            return 0

    def close(self):
        """Flush cached data, fix the final size and close the file."""
        if self._closed:
            return
        self._closed = True
        failed = False
        try:
            if self._writable:
                self._queue.put(None)
                self._thread.join()
                if self._cache:
                    try:
                        _write_all(self._fd, self._cache)
                    except OSError:
                        failed = True
                    self._write_total += len(self._cache)
                    self._cache.clear()
                try:
                    os.ftruncate(self._fd, self._write_total)
                except OSError:
                    pass
                failed = failed or self._error is not None
        finally:
            os.close(self._fd)
        if failed:
            raise FileError(FResult.INVALID_PARAMETER, self.path)

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()


def open_file(path, mode=OpenMode.READ):
    """Open a file; CREATE_ALWAYS creates or truncates it, else it must exist."""
    mode = OpenMode(mode)
    readable = bool(mode & OpenMode.READ)
    writable = bool(mode & OpenMode.WRITE)
    if readable and writable:
        flags = os.O_RDWR
    elif writable:
        flags = os.O_WRONLY
    else:
        flags = os.O_RDONLY
    if mode & OpenMode.CREATE_ALWAYS:
        flags |= os.O_CREAT | os.O_TRUNC
    flags |= getattr(os, "O_BINARY", 0)
    try:
        fd = os.open(path, flags, 0o666)
    except OSError:
        raise FileError(FResult.NO_FILE, path) from None
    return CachedFile(fd, path, writable)


def mkdir(path):
    """Create a directory."""
    try:
        os.mkdir(path)
    except OSError:
        raise FileError(FResult.INVALID_PARAMETER, path) from None


def rename(src, dst):
    """Move ``src`` to ``dst``; the destination must not exist."""
    if os.path.lexists(dst):
        raise FileError(FResult.INVALID_PARAMETER, dst)
    try:
        os.rename(src, dst)
    except OSError:
        raise FileError(FResult.INVALID_PARAMETER, src) from None