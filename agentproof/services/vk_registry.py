"""Verification-key registration with the relayer, cached per circuit.

States per circuit identity:
  UNREGISTERED -> register -> REGISTERED(vk_hash)
  UNREGISTERED -> "already registered" error carrying the hash -> REGISTERED(vk_hash)
  anything else -> RegistrationError

The cache sits behind a small async storage interface so the same registrar
runs against a JSON file in production and a dict in tests.
"""

import asyncio
import hashlib
import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

from agentproof.config import settings
from agentproof.core.exceptions import RegistrationError, RelayerError, VkAlreadyRegisteredError
from agentproof.schemas.proof import VerificationKeyRegistration

logger = logging.getLogger(__name__)


def circuit_identity(circuit_name: str, verification_key: dict) -> str:
    """Cache key: circuit name plus a fingerprint of its verification key."""
    canonical = json.dumps(verification_key, sort_keys=True, separators=(",", ":"))
    return f"{circuit_name}:{hashlib.sha256(canonical.encode('utf-8')).hexdigest()[:16]}"


class VkCacheStorage(Protocol):
    async def get(self, key: str) -> dict | None: ...

    async def put_if_absent(self, key: str, value: dict) -> dict: ...


class MemoryVkCacheStorage:
    def __init__(self) -> None:
        self._data: dict[str, dict] = {}

    async def get(self, key: str) -> dict | None:
        return self._data.get(key)

    async def put_if_absent(self, key: str, value: dict) -> dict:
        return self._data.setdefault(key, value)

    def clear(self) -> None:
        self._data.clear()


class FileVkCacheStorage:
    """JSON file mapping circuit identity -> registration.

    Writes go through a temp file and ``os.replace``. A writer re-reads the
    file first and keeps an existing entry, so the first registration wins.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = asyncio.Lock()

    def _read_all(self) -> dict:
        if not self.path.is_file():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError:
            logger.warning("Ignoring unreadable vk cache file %s", self.path)
            return {}
        return data if isinstance(data, dict) else {}

    async def get(self, key: str) -> dict | None:
        entry = self._read_all().get(key)
        return entry if isinstance(entry, dict) else None

    async def put_if_absent(self, key: str, value: dict) -> dict:
        async with self._lock:
            data = self._read_all()
            existing = data.get(key)
            if isinstance(existing, dict) and existing.get("vkHash"):
                return existing
            data[key] = value
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_name(f"{self.path.name}.{os.getpid()}.tmp")
            with tmp.open("w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, sort_keys=True)
            os.replace(tmp, self.path)
            return value


class VkHashCache:
    def __init__(self, storage: VkCacheStorage) -> None:
        self.storage = storage

    async def get(self, circuit_id: str) -> VerificationKeyRegistration | None:
        entry = await self.storage.get(circuit_id)
        if not entry or not entry.get("vkHash"):
            return None
        return VerificationKeyRegistration.model_validate(entry)

    async def store(self, circuit_id: str, vk_hash: str) -> VerificationKeyRegistration:
        registration = VerificationKeyRegistration(
            vk_hash=vk_hash, registered_at=datetime.now(timezone.utc)
        )
        stored = await self.storage.put_if_absent(
            circuit_id, registration.model_dump(mode="json", by_alias=True)
        )
        return VerificationKeyRegistration.model_validate(stored)


class VerificationKeyRegistrar:
    def __init__(self, client, cache: VkHashCache, circuit_name: str = "reputation") -> None:
        self.client = client
        self.cache = cache
        self.circuit_name = circuit_name
        self._lock = asyncio.Lock()

    async def ensure_registered(self, verification_key: dict) -> str:
        """Return a vkHash for this circuit, registering at most once."""
        circuit_id = circuit_identity(self.circuit_name, verification_key)
        cached = await self.cache.get(circuit_id)
        if cached:
            logger.debug("Using cached vkHash for %s: %s", circuit_id, cached.vk_hash)
            return cached.vk_hash

        async with self._lock:
            cached = await self.cache.get(circuit_id)
            if cached:
                return cached.vk_hash

            logger.info("Registering verification key for %s", circuit_id)
            try:
                vk_hash = await self.client.register_vk(verification_key)
            except VkAlreadyRegisteredError as exc:
                logger.info("Verification key already registered with hash %s", exc.vk_hash)
                vk_hash = exc.vk_hash
            except RelayerError as exc:
                raise RegistrationError(f"Failed to register verification key: {exc.message}") from exc

            registration = await self.cache.store(circuit_id, vk_hash)
            logger.info("Verification key registered for %s: %s", circuit_id, registration.vk_hash)
            return registration.vk_hash


_vk_cache: VkHashCache | None = None


def get_vk_cache() -> VkHashCache:
    """Process-wide cache backed by the configured JSON file."""
    global _vk_cache
    if _vk_cache is None:
        _vk_cache = VkHashCache(FileVkCacheStorage(settings.vk_cache_path))
    return _vk_cache


def set_vk_cache(cache: VkHashCache | None) -> None:
    global _vk_cache
    _vk_cache = cache
