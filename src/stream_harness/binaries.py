"""Extraction of native helper executables onto the local filesystem."""

import logging
import os
import shutil
import stat
import sys
import tempfile
from importlib import resources
from pathlib import Path
from typing import Iterable

from .config.settings import BinarySpec

logger = logging.getLogger(__name__)

PACKAGE_PREFIX = "package:"
# temp files are created 0600, so readability for group and other is added too
EXECUTABLE_BITS = (
    stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH | stat.S_IRGRP | stat.S_IROTH
)


def _open_source(source: str):
    if source.startswith(PACKAGE_PREFIX):
        relative = source[len(PACKAGE_PREFIX):].lstrip("/")
        return resources.files("stream_harness").joinpath(relative).open("rb")
    return open(source, "rb")


def ensure_binary(spec: BinarySpec) -> bool:
    """Copy one binary into place unless it is already there.

    Returns:
        True if the binary was extracted, False if it already existed
    """
    destination = Path(spec.destination)
    destination.parent.mkdir(parents=True, exist_ok=True)

    if destination.exists():
        logger.warning(f"Binary already exists: {destination.absolute()}")
        return False

    # destination only ever holds a complete copy
    with _open_source(spec.source) as src, tempfile.NamedTemporaryFile(
        dir=destination.parent, prefix=f".{destination.name}.", delete=False
    ) as dst:
        partial = Path(dst.name)
        try:
            shutil.copyfileobj(src, dst)
        except BaseException:
            dst.close()
            partial.unlink()
            raise

    mode = os.stat(partial).st_mode
    os.chmod(partial, mode | EXECUTABLE_BITS)
    os.replace(partial, destination)

    logger.info(f"Extracted executable: {destination.absolute()}")
    logger.debug(f"Executable size: {destination.stat().st_size}")
    return True


def ensure_binaries(specs: Iterable[BinarySpec]) -> int:
    """Materialize every configured binary. No-op on Windows.

    Returns:
        Number of binaries extracted by this call
    """
    logger.debug("Extracting binaries, if needed")
    if sys.platform.startswith("win"):
        logger.debug("Running on Windows, skipping binary extraction")
        return 0

    return sum(1 for spec in specs if ensure_binary(spec))
