"""Background JPEG decoding with a bounded job pool.

Jobs are decoded by one worker thread, newest first. Each finished image
is handed to its callback from the worker thread as raw pixels: RGB565
little-endian words for a colour depth of 16, BGRA bytes for 32.
"""

import threading
from enum import Enum

from PIL import Image

from lxdash.config import DebugLevel, log

DEFAULT_QUEUE_SIZE = 64
_SCALE_DENOM = 8


def choose_scale(width, height, max_dimension):
    """Pick the largest ``n/8`` scale that keeps both sides within ``max_dimension``.

    Returns ``(numerator, out_width, out_height)``; the scale never goes
    below 1/8 and never enlarges the image.
    """
    num = _SCALE_DENOM + 1
    while True:
        num -= 1
        out_w = -(-width * num // _SCALE_DENOM)
        out_h = -(-height * num // _SCALE_DENOM)
        if num == 1 or max(out_w, out_h) <= max_dimension:
            return num, out_w, out_h


class _State(Enum):
    QUEUED = "queued"
    ABORTED = "aborted"
    FREE = "free"


class _Job:
    """A queued decode; ``done`` is set once its pool slot is released."""

    def __init__(self, filename, callback, user_data):
        self.filename = filename
        self.callback = callback
        self.user_data = user_data
        self.state = _State.QUEUED
        self.done = threading.Event()

    @property
    def aborted(self):
        return self.state is _State.ABORTED


def _to_rgb565(rgb):
    out = bytearray()
    for r, g, b in zip(rgb[0::3], rgb[1::3], rgb[2::3]):
        value = ((r >> 3) << 11) | ((g >> 2) << 5) | (b >> 3)
        out += value.to_bytes(2, "little")
    return bytes(out)


class JpegDecoder:
    """Decodes queued JPEG files on a worker thread."""

    def __init__(self, colour_depth=32, max_dimension=512, queue_size=DEFAULT_QUEUE_SIZE):
        if colour_depth not in (16, 32):
            raise ValueError("colour_depth must be 16 or 32")
        if queue_size <= 0:
            raise ValueError("queue_size must be positive")
        self.colour_depth = colour_depth
        self.max_dimension = max_dimension
        self.queue_size = queue_size
        self._lock = threading.Lock()
        self._pending = []
        self._in_use = 0
        self._semaphore = threading.Semaphore(0)
        self._running = False
        self._thread = None

    def start(self):
        """Start the worker thread; does nothing if it is already running."""
        if self._running:
            return
        self._running = True
        self._thread = threading.Thread(target=self._worker, name="jpegdecomp", daemon=True)
        self._thread.start()

    def stop(self):
        """Stop the worker; jobs still waiting are not decoded."""
        if not self._running:
            return
        self._running = False
        self._semaphore.release()
        self._thread.join()
        self._thread = None

    def queue(self, filename, callback, user_data=None):
        """Queue a file; returns a handle, or None when every slot is taken."""
        job = _Job(str(filename), callback, user_data)
        with self._lock:
            if self._in_use >= self.queue_size:
                return None
            self._in_use += 1
            self._pending.append(job)
        self._semaphore.release()
        return job

    def abort(self, handle):
        """Cancel a queued job; returns True if it was still pending or running."""
        if handle is None:
            return False
        with self._lock:
            if handle.state is _State.QUEUED:
                handle.state = _State.ABORTED
                return True
            return False

    def _decode(self, filename):
        with Image.open(filename) as img:
            if img.format != "JPEG":
                raise OSError(f"not a jpeg file: {filename}")
            _, out_w, out_h = choose_scale(img.width, img.height, self.max_dimension)
            img = img.convert("RGB")
            if (out_w, out_h) != img.size:
                img = img.resize((out_w, out_h))
        if self.colour_depth == 16:
            pixels = _to_rgb565(img.tobytes())
        else:
            pixels = img.convert("RGBA").tobytes("raw", "BGRA")
        return pixels, out_w, out_h

    def _finish(self, job):
        with self._lock:
            job.state = _State.FREE
            self._in_use -= 1
        job.done.set()

    def _worker(self):
        while True:
            self._semaphore.acquire()
            if not self._running:
                return
            with self._lock:
                if not self._pending:
                    continue
                job = self._pending.pop()
            try:
                if job.aborted:
                    continue
                try:
                    pixels, width, height = self._decode(job.filename)
                except (OSError, ValueError) as exc:
                    log(DebugLevel.ERROR, "Could not decode %s: %s", job.filename, exc)
                    continue
                if job.aborted:
                    continue
                try:
                    job.callback(pixels, width, height, job.user_data)
                except Exception as exc:  # a bad callback must not kill the worker
                    log(DebugLevel.ERROR, "Decode callback failed: %s", exc)
            finally:
                self._finish(job)

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, *args):
        self.stop()