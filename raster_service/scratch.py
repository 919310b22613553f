"""
Per-request scratch file management.

A ScratchSpace owns every file a single conversion writes under the
shared scratch directory. All of its files share one unique stem, so
concurrent requests never collide and no locking is needed. Leaving the
context (normally, on error, or on cancellation) removes every file the
request produced, including page outputs a renderer wrote before failing.
"""

import logging
import re
import secrets
import time
from pathlib import Path
from typing import List, Optional, Set

logger = logging.getLogger(__name__)

# Page outputs end in "-<page>.jpg"; poppler zero-pads the page number.
PAGE_NUMBER_PATTERN = re.compile(r"-(\d+)\.jpe?g$", re.IGNORECASE)


def create_scratch_name(prefix: str = "pdf") -> str:
    """
    Generate a collision-resistant scratch file stem.

    Combines the current epoch milliseconds with a random suffix so two
    requests arriving in the same millisecond still get distinct names.

    Example:
        >>> create_scratch_name()  # doctest: +SKIP
        'pdf_1735689600000_9f2c4ab1d03e'
    """
    return f"{prefix}_{int(time.time() * 1000)}_{secrets.token_hex(6)}"


def page_number_of(path: Path) -> Optional[int]:
    """Extract the trailing page number from a page output file name."""
    match = PAGE_NUMBER_PATTERN.search(path.name)
    return int(match.group(1)) if match else None


class ScratchSpace:
    """
    Scoped scratch storage for one conversion request.

    Usage:
        with ScratchSpace(Path("temp")) as scratch:
            pdf_path = scratch.write(pdf_bytes, ".pdf")
            ...
        # every file created above is gone here
    """

    def __init__(self, root: Path, prefix: str = "pdf"):
        self.root = Path(root)
        self.stem = create_scratch_name(prefix)
        self._tracked: Set[Path] = set()
        self._deleted: Set[Path] = set()

    def __enter__(self) -> "ScratchSpace":
        self.root.mkdir(parents=True, exist_ok=True)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.cleanup()

    @property
    def tracked(self) -> List[Path]:
        """Handles created by this request that have not been deleted yet."""
        return sorted(self._tracked)

    def write(self, buffer: bytes, suffix: str = ".pdf") -> Path:
        """Persist a buffer to a new tracked scratch file and return its handle."""
        path = self.root / f"{self.stem}{suffix}"
        if path in self._tracked or path in self._deleted:
            raise FileExistsError(f"Scratch file already created: {path}")
        self._tracked.add(path)
        path.write_bytes(buffer)
        logger.debug(f"[{self.stem}] Wrote {len(buffer)} bytes to {path.name}")
        return path

    def page_stem(self, handle: Path) -> Path:
        """Path prefix rasterizers use for the page outputs of ``handle``."""
        return handle.with_name(f"{handle.stem}-page")

    def list_page_outputs(self, handle: Path) -> List[Path]:
        """
        Enumerate the rasterized page files of ``handle`` in page order.

        Ordering comes from the page number embedded in each file name, so
        "page-10" sorts after "page-9" regardless of directory listing order.
        Every returned path becomes tracked by this scratch space.
        """
        stem = self.page_stem(handle)
        pages = []
        for path in self.root.glob(f"{stem.name}*"):
            number = page_number_of(path)
            if number is None:
                continue
            pages.append((number, path))

        pages.sort(key=lambda item: item[0])
        ordered = [path for _, path in pages]
        self._tracked.update(ordered)
        return ordered

    def read(self, handle: Path) -> bytes:
        return handle.read_bytes()

    def delete(self, handle: Path) -> None:
        """Remove a handle. Repeated calls and already-missing files are no-ops."""
        if handle in self._deleted:
            return
        self._tracked.discard(handle)
        self._deleted.add(handle)
        try:
            handle.unlink()
            logger.debug(f"[{self.stem}] Deleted {handle.name}")
        except FileNotFoundError:
            pass

    def cleanup(self) -> None:
        """
        Delete every tracked handle plus any stray file carrying this stem.

        Stray files are pages a renderer produced before failing, which were
        never enumerated through ``list_page_outputs``.
        """
        for handle in list(self._tracked):
            self.delete(handle)

        if not self.root.exists():
            return
        for stray in self.root.glob(f"{self.stem}*"):
            if stray.is_file():
                self._deleted.discard(stray)
                self.delete(stray)
