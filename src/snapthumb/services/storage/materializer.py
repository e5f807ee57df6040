"""Artifact files at stable, owner-derived paths.

The artifact for an owner always lives at `{artifact_dir}/{owner_id}.{ext}`,
so regeneration overwrites in place and references never dangle. Writes go to
a temporary file in the same directory followed by `os.replace`, so readers
see either the old image or the new one, never a partial file.
"""

import os
import re
import tempfile
from pathlib import Path

import structlog

from snapthumb.services.exceptions import InvalidOwnerIdError
from snapthumb.services.imaging.codec import OUTPUT_EXTENSION
from snapthumb.services.imaging.synthesis import ThumbnailSynthesizer

logger = structlog.get_logger(__name__)

OWNER_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]{0,127}$")
TEMP_SUFFIX = ".tmp"


def validate_owner_id(owner_id: str) -> str:
    """Ensure the owner id is a safe filename token.

    Raises:
        InvalidOwnerIdError: If the id is empty, too long, or contains path characters
    """
    if not isinstance(owner_id, str) or not OWNER_ID_PATTERN.match(owner_id):
        raise InvalidOwnerIdError(
            f"Invalid owner id {owner_id!r}: use 1-128 letters, digits, '_', '-' or '.'"
        )
    if ".." in owner_id:
        raise InvalidOwnerIdError(f"Invalid owner id {owner_id!r}: '..' is not allowed")
    return owner_id


class FileMaterializer:
    """Writes placeholder and final thumbnails for owners."""

    def __init__(
        self,
        artifact_dir: Path,
        synthesizer: ThumbnailSynthesizer,
        extension: str = OUTPUT_EXTENSION,
        url_prefix: str = "/thumbnails",
    ):
        self.artifact_dir = Path(artifact_dir)
        self.synthesizer = synthesizer
        self.extension = extension
        self.url_prefix = url_prefix.rstrip("/")

    def path_for(self, owner_id: str) -> Path:
        return self.artifact_dir / f"{validate_owner_id(owner_id)}.{self.extension}"

    def url_for(self, owner_id: str) -> str:
        return f"{self.url_prefix}/{validate_owner_id(owner_id)}.{self.extension}"

    def write_placeholder(self, owner_id: str, title: str, category: str) -> bool:
        """Write the loading placeholder for an owner.

        Never raises: rendering falls back to the minimal placeholder and IO
        failures are logged.

        Returns:
            True if a placeholder was written
        """
        try:
            data = self.synthesizer.render_loading(title, category)
        except Exception as e:
            logger.warning(
                "artifact.loading_render_failed",
                owner_id=owner_id,
                error_type=type(e).__name__,
                error_message=str(e),
            )
            data = self.synthesizer.render_minimal(title)

        try:
            self.write_final(owner_id, data)
        except OSError as e:
            logger.error(
                "artifact.placeholder_write_failed",
                owner_id=owner_id,
                error_type=type(e).__name__,
                error_message=str(e),
            )
            return False

        logger.debug("artifact.placeholder_written", owner_id=owner_id)
        return True

    def write_final(self, owner_id: str, data: bytes) -> Path:
        """Atomically replace the owner's artifact and bump its modification time.

        Raises:
            OSError: If the file cannot be written
        """
        target = self.path_for(owner_id)
        self.artifact_dir.mkdir(parents=True, exist_ok=True)

        fd, temp_name = tempfile.mkstemp(
            prefix=f".{owner_id}.", suffix=TEMP_SUFFIX, dir=self.artifact_dir
        )
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
                handle.flush()
                os.fsync(handle.fileno())
            os.chmod(temp_name, 0o644)
            os.replace(temp_name, target)
        except BaseException:
            try:
                os.unlink(temp_name)
            except FileNotFoundError:
                pass
            raise

        # Fresh mtime so clients revalidate cached copies of the previous image
        os.utime(target, None)
        return target

    def delete_artifact(self, owner_id: str) -> bool:
        """Remove an owner's artifact. Returns False if there was nothing to delete."""
        path = self.path_for(owner_id)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        logger.info("artifact.deleted", owner_id=owner_id)
        return True

    def cleanup_stale_temp_files(self) -> int:
        """Remove temp files left behind by interrupted writes."""
        if not self.artifact_dir.is_dir():
            return 0
        removed = 0
        for stale in self.artifact_dir.glob(f".*{TEMP_SUFFIX}"):
            try:
                stale.unlink()
                removed += 1
            except OSError as e:
                logger.warning("artifact.temp_cleanup_failed", path=str(stale), error=str(e))
        if removed:
            logger.info("artifact.temp_cleanup", removed=removed)
        return removed
