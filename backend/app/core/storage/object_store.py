"""
Object storage contract shared by every backend.

Document handling code is written against ``ObjectStore`` only; which
backend sits behind it is decided once, at startup, by
``app.core.storage.storage_factory.create_object_store``.

Contract:
    put(data, key, content_type) -> UploadResult
        Idempotent overwrite of ``key``. Raises StorageError on failure.
    get(key) -> bytes
        Raises ObjectNotFoundError if absent, StorageError otherwise.
    delete(key) -> None
        Absent keys are not an error. Raises StorageError on backend failure.
    exists(key) -> bool
        Never raises for "absent"; raises StorageError on transport failure.
    sign_url(key, ttl_seconds=3600) -> str
        Time-limited GET URL. Does not check that the key exists.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol, Tuple, runtime_checkable

DEFAULT_URL_TTL_SECONDS = 3600


@dataclass(frozen=True)
class UploadResult:
    """Outcome of a successful ``put``."""

    key: str
    url: str
    bucket: str
    etag: Optional[str] = None

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {"key": self.key, "url": self.url, "bucket": self.bucket, "etag": self.etag}


@runtime_checkable
class ObjectStore(Protocol):
    """Five-operation capability set implemented by every storage backend."""

    bucket: str

    def put(self, data: bytes, key: str, content_type: str) -> UploadResult:
        ...

    def get(self, key: str) -> bytes:
        ...

    def delete(self, key: str) -> None:
        ...

    def exists(self, key: str) -> bool:
        ...

    def sign_url(self, key: str, ttl_seconds: int = DEFAULT_URL_TTL_SECONDS) -> str:
        ...


@runtime_checkable
class ManagedObjectStore(ObjectStore, Protocol):
    """Backends that can also provision and probe their bucket."""

    def ensure_bucket(self) -> bool:
        ...

    def check_health(self) -> Tuple[bool, Optional[List[str]], Optional[str]]:
        ...
