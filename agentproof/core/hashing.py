"""Keccak-256 helpers for review content and proof identifiers."""

from eth_utils import keccak


def hash_review(content: str) -> str:
    """Double keccak-256 of a review: keccak(hex(keccak(content))), 0x-prefixed."""
    first = keccak(text=content).hex()
    return "0x" + keccak(text=first).hex()


def generate_proof_id(agent_id: str, timestamp_ms: int, nonce: str = "") -> str:
    """0x-prefixed keccak-256 of ``agentId-timestampMs`` (plus ``-nonce`` when given)."""
    seed = f"{agent_id}-{timestamp_ms}"
    if nonce:
        seed = f"{seed}-{nonce}"
    return "0x" + keccak(text=seed).hex()
