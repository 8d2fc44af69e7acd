"""
Local file storage for grievance documents.

Layout:
    <upload_dir>/grievances/<grievance_id>/<uuid>_<sanitized filename>

Document rows keep the folder and file id separately so the file can be
moved between volumes by rewriting one column.
"""

import logging
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from nyayasetu.core.config import get_settings
from nyayasetu.core.security import sanitize_filename

logger = logging.getLogger(__name__)


@dataclass
class StoredFile:
    file_id: str
    folder: str
    size: int
    mime_type: str

    @property
    def path(self) -> Path:
        return Path(self.folder) / self.file_id


def _root(base_dir: Optional[str] = None) -> Path:
    return Path(base_dir or get_settings().upload_dir)


async def create_grievance_folder(grievance_id: str, base_dir: Optional[str] = None) -> str:
    """Create (if needed) and return the folder for a grievance's documents."""
    folder = _root(base_dir) / "grievances" / sanitize_filename(grievance_id)
    folder.mkdir(parents=True, exist_ok=True)
    return str(folder)


async def upload_file(content: bytes, original_name: str, mime_type: str, folder: str) -> StoredFile:
    """Write bytes into folder under a collision-free name."""
    safe_name = sanitize_filename(original_name) or "document"
    file_id = f"{uuid.uuid4().hex}_{safe_name}"
    path = Path(folder) / file_id
    path.write_bytes(content)
    logger.info("Stored %s (%d bytes) in %s", file_id, len(content), folder)
    return StoredFile(file_id=file_id, folder=folder, size=len(content), mime_type=mime_type)


def resolve_path(folder: str, file_id: str) -> Path:
    """Absolute path of a stored file. Rejects ids that escape the folder."""
    base = Path(folder).resolve()
    path = (base / file_id).resolve()
    if base not in path.parents:
        raise ValueError(f"Invalid file id: {file_id!r}")
    return path


async def delete_file(folder: str, file_id: str) -> bool:
    path = resolve_path(folder, file_id)
    if not path.exists():
        return False
    path.unlink()
    logger.info("Deleted stored file %s", path)
    return True
