# Filename: clouddrive/storage.py
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional
from uuid import uuid4

import aiofiles
from fastapi import UploadFile
from jose import jwt, JWTError

BLOB_TOKEN_TYPE = "blob"


def file_extension(filename: Optional[str]) -> Optional[str]:
    if not filename or "." not in filename:
        return None
    ext = filename.rsplit(".", 1)[1]
    ext = "".join(c for c in ext if c.isalnum())
    return ext.lower() or None


def measure_upload(upload: UploadFile) -> int:
    """Size of an upload in bytes without consuming it."""
    if upload.size is not None:
        return upload.size
    fh = upload.file
    pos = fh.tell()
    fh.seek(0, 2)
    size = fh.tell()
    fh.seek(pos)
    return size


class BlobStore:
    """Object store for file content, kept on local disk.

    Keys are relative paths such as ``<user>/<random>.<ext>``. Clients never get
    a key directly: they get a signed URL that embeds the key and an expiry.
    """

    def __init__(self, root: Path, secret_key: str, base_url: str, algorithm: str = "HS256"):
        self.root = Path(root)
        self.secret_key = secret_key
        self.base_url = base_url.rstrip("/")
        self.algorithm = algorithm

    def init(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    def make_key(self, user_id: int, original_filename: Optional[str], prefix: Optional[str] = None) -> str:
        ext = file_extension(original_filename)
        name = uuid4().hex + (f".{ext}" if ext else "")
        parts = [str(user_id)]
        if prefix:
            parts.append(prefix)
        parts.append(name)
        return "/".join(parts)

    def _path(self, key: str) -> Path:
        p = (self.root / key).resolve()
        if self.root.resolve() not in p.parents:
            raise ValueError(f"blob key escapes storage root: {key!r}")
        return p

    async def save(self, upload_file: UploadFile, key: str) -> int:
        """
        Stream an UploadFile into the store under ``key``. Returns the number of bytes written.
        """
        dest_path = self._path(key)
        dest_path.parent.mkdir(parents=True, exist_ok=True)
        size = 0
        await upload_file.seek(0)
        async with aiofiles.open(dest_path, "wb") as out_file:
            while True:
                chunk = await upload_file.read(1024 * 1024)
                if not chunk:
                    break
                await out_file.write(chunk)
                size += len(chunk)
        return size

    def exists(self, key: str) -> bool:
        return self._path(key).exists()

    def get_file_path(self, key: str) -> str:
        p = self._path(key)
        return str(p) if p.exists() else ""

    def remove(self, key: str) -> None:
        """Delete a blob. Missing blobs are ignored, I/O errors propagate."""
        p = self._path(key)
        if p.exists():
            p.unlink()

    def signed_url(self, key: str, expires_in: int = 3600) -> str:
        expire = datetime.utcnow() + timedelta(seconds=expires_in)
        token = jwt.encode(
            {"typ": BLOB_TOKEN_TYPE, "key": key, "exp": expire},
            self.secret_key,
            algorithm=self.algorithm,
        )
        return f"{self.base_url}/api/files/blob/{token}"

    def resolve_signed(self, token: str) -> Optional[str]:
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except JWTError:
            return None
        if payload.get("typ") != BLOB_TOKEN_TYPE:
            return None
        return payload.get("key")
