from agentproof.config import settings

# Singleton storage instance
_store = None


def get_proof_store():
    """Get or create the global proof artifact store."""
    global _store
    if _store is None:
        from agentproof.storage.proof_store import ProofArtifactStore
        _store = ProofArtifactStore(root_dir=settings.proof_artifact_dir)
    return _store


def reset_proof_store() -> None:
    global _store
    _store = None
