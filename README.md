# lxdash

Support libraries for a game-launcher dashboard. Each module can be used on its own:

- **`lxdash.tlsf`**: a Two Level Segregated Fit allocator. It manages simulated
  byte pools, and allocation and release take constant time.
- **`lxdash.tlsf_bits`**: the bit-scan, alignment and size-class helpers that
  the allocator uses (`ffs`, `fls`, `align_up`, `mapping_insert`, ...).
- **`lxdash.fileio`**: file and directory access with FAT-style attributes and
  timestamps. Files opened for writing go through a double-buffered writer thread.
- **`lxdash.jpeg_queue`**: a background thread that decodes JPEG files and
  scales them down to a maximum dimension.
- **`lxdash.config`**: dashboard defaults, levelled debug logging and thumbnail sizing.

## Installation

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## The allocator

```python
from lxdash.tlsf import Tlsf, PoolError

heap = Tlsf(64 * 1024)
ptr = heap.malloc(100)
heap.write(ptr, b"hello")
assert heap.read(ptr, 5) == b"hello"

ptr = heap.realloc(ptr, 4000)     # grows in place or moves, keeping the data
aligned = heap.memalign(256, 32)
assert aligned % 256 == 0

heap.free(ptr)
heap.free(aligned)
assert heap.check() == 0
used, capacity = heap.usage()
```

Pointers are plain integers.

- `malloc(0)` returns `None`.
- `malloc` raises `MemoryError` when the request cannot be met. `realloc`
  does the same and leaves the original allocation untouched.
- `free(None)` is ignored. Freeing a pointer that is not allocated raises
  `ValueError`.
- `add_pool(size)` puts another pool under the same allocator and returns
  its address.
- `remove_pool(pool)` withdraws a pool. It raises `PoolError` if any block
  in the pool is still allocated.
- `walk_pool(pool, walker)` calls `walker(ptr, size, used)` for each block
  in address order.
- `check()` and `check_pool(pool)` return 0 when the allocator is
  consistent, and a negative count of failures otherwise.

## File access

```python
from lxdash import fileio

info = fileio.stat("games")
if info.attrib & fileio.Attr.DIR:
    for entry in fileio.open_dir("games"):
        print(entry.name, entry.size)

with fileio.open_file("out.bin", fileio.OpenMode.WRITE | fileio.OpenMode.CREATE_ALWAYS) as f:
    f.write(b"payload")
```

A failure raises `fileio.FileError`. Its `result` attribute holds an
`FResult` code such as `FResult.NO_FILE`.

`to_native_path("/E/dir", drive_letters=True)` gives `E:\dir`.
`fat_datetime` packs a timestamp or a `datetime` into FAT date and time
words. Numeric timestamps are taken as UTC.

`unlink` removes a file or an empty directory and ignores failures.
`rename` refuses to overwrite an existing destination.

## Thumbnail decoding

```python
from lxdash.jpeg_queue import JpegDecoder

def done(image, width, height, user_data):
    print(user_data, width, height, len(image))

with JpegDecoder(32, 300) as decoder:
    handle = decoder.queue("default_tbn.jpg", done, "cover")
```

The callback runs on the decoder's thread. The pixels it receives are:

- BGRA bytes for colour depth 32;
- little-endian RGB565 words for colour depth 16.

Images are scaled by the largest factor of n/8 that fits `max_dimension`.
They are never enlarged, and never scaled below 1/8. `choose_scale`
exposes this calculation.

Jobs are taken newest first. `abort(handle)` cancels a job that has not
finished yet. `queue` returns `None` when every slot is in use.

## Configuration and logging

`lxdash.config.log(level, message, *args)` prints a message when its
`DebugLevel` is at or above the threshold (`WARN`). It returns the text it
printed, or `None` when the message was filtered out.

`thumbnail_size(screen_width, margin, items_per_row)` returns the width
and height of one grid thumbnail.

## What this package does not do

These are building blocks only:

- There is no FTP server. `fileio` is only the file layer such a server
  would call.
- There is no dashboard user interface, game database or settings file
  handling.
- There is no command-line program.