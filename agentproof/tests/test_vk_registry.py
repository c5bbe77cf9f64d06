"""Verification-key registrar: once per circuit, recovering 'already registered'."""

import asyncio
import json

import pytest

from agentproof.core.exceptions import RegistrationError
from agentproof.services.relayer_client import RelayerClient
from agentproof.services.vk_registry import (
    FileVkCacheStorage,
    MemoryVkCacheStorage,
    VerificationKeyRegistrar,
    VkHashCache,
    circuit_identity,
)
from agentproof.tests.conftest import RELAYER_KEY, RELAYER_URL, VERIFICATION_KEY, FakeRelayer


def _registrar(relayer: FakeRelayer, storage=None) -> VerificationKeyRegistrar:
    client = RelayerClient(RELAYER_URL, RELAYER_KEY, transport=relayer.transport)
    return VerificationKeyRegistrar(client, VkHashCache(storage or MemoryVkCacheStorage()))


async def test_registration_is_idempotent():
    relayer = FakeRelayer(register=(200, {"vkHash": "0xvk1"}))
    registrar = _registrar(relayer)

    first = await registrar.ensure_registered(VERIFICATION_KEY)
    second = await registrar.ensure_registered(VERIFICATION_KEY)

    assert first == second == "0xvk1"
    assert relayer.count("register-vk") == 1


async def test_concurrent_callers_register_once():
    relayer = FakeRelayer(register=(200, {"vkHash": "0xvk1"}))
    registrar = _registrar(relayer)

    hashes = await asyncio.gather(*(registrar.ensure_registered(VERIFICATION_KEY) for _ in range(5)))

    assert set(hashes) == {"0xvk1"}
    assert relayer.count("register-vk") == 1


async def test_already_registered_error_yields_hash():
    relayer = FakeRelayer(
        register=(
            400,
            {
                "code": "REGISTER_VK_FAILED",
                "message": "Verification key already registered",
                "meta": {"vkHash": "0xabc"},
            },
        )
    )
    registrar = _registrar(relayer)

    assert await registrar.ensure_registered(VERIFICATION_KEY) == "0xabc"
    # Cached from the recovered hash
    assert await registrar.ensure_registered(VERIFICATION_KEY) == "0xabc"
    assert relayer.count("register-vk") == 1


async def test_other_registration_errors_are_fatal():
    relayer = FakeRelayer(register=(500, {"code": "INTERNAL", "message": "boom"}))
    registrar = _registrar(relayer)

    with pytest.raises(RegistrationError, match="boom"):
        await registrar.ensure_registered(VERIFICATION_KEY)

    # Nothing cached; the next call tries again
    with pytest.raises(RegistrationError):
        await registrar.ensure_registered(VERIFICATION_KEY)
    assert relayer.count("register-vk") == 2


async def test_different_keys_register_separately():
    relayer = FakeRelayer(register=(200, {"vkHash": "0xvk"}))
    registrar = _registrar(relayer)
    other_key = {**VERIFICATION_KEY, "nPublic": 10}

    await registrar.ensure_registered(VERIFICATION_KEY)
    await registrar.ensure_registered(other_key)

    assert relayer.count("register-vk") == 2
    assert circuit_identity("reputation", VERIFICATION_KEY) != circuit_identity("reputation", other_key)


def test_circuit_identity_ignores_key_order():
    reordered = dict(reversed(list(VERIFICATION_KEY.items())))
    assert circuit_identity("reputation", VERIFICATION_KEY) == circuit_identity("reputation", reordered)
    assert circuit_identity("reputation", VERIFICATION_KEY).startswith("reputation:")


async def test_file_cache_persists_across_instances(tmp_path):
    path = tmp_path / "cache" / "vk_cache.json"
    relayer = FakeRelayer(register=(200, {"vkHash": "0xpersisted"}))

    await _registrar(relayer, FileVkCacheStorage(path)).ensure_registered(VERIFICATION_KEY)
    again = await _registrar(relayer, FileVkCacheStorage(path)).ensure_registered(VERIFICATION_KEY)

    assert again == "0xpersisted"
    assert relayer.count("register-vk") == 1
    with path.open(encoding="utf-8") as f:
        data = json.load(f)
    (entry,) = data.values()
    assert entry["vkHash"] == "0xpersisted"
    assert "registeredAt" in entry


async def test_file_cache_first_writer_wins(tmp_path):
    storage = FileVkCacheStorage(tmp_path / "vk_cache.json")

    first = await storage.put_if_absent("reputation:x", {"vkHash": "0x1"})
    second = await storage.put_if_absent("reputation:x", {"vkHash": "0x2"})

    assert first == second == {"vkHash": "0x1"}
    assert await storage.get("reputation:x") == {"vkHash": "0x1"}


async def test_unreadable_cache_file_is_treated_as_empty(tmp_path):
    path = tmp_path / "vk_cache.json"
    path.write_text("{not json", encoding="utf-8")
    storage = FileVkCacheStorage(path)

    assert await storage.get("reputation:x") is None
    await storage.put_if_absent("reputation:x", {"vkHash": "0x1"})
    assert await storage.get("reputation:x") == {"vkHash": "0x1"}
