"""HTTP client for the proof verification/aggregation relayer.

Endpoints (API key travels as a path segment):
    POST /register-vk/{key}
    POST /submit-proof/{key}
    GET  /job-status/{key}/{job_id}

Error responses are decoded here, once, into the RelayerError family so
callers branch on exception types instead of inspecting payloads.
"""

import logging

import httpx
from pydantic import ValidationError

from agentproof.config import Settings, settings
from agentproof.core.exceptions import (
    ConfigurationError,
    RelayerError,
    RelayerTransportError,
    VkAlreadyRegisteredError,
)
from agentproof.schemas.proof import JobStatusResponse, ProofArtifact, SubmissionResponse

logger = logging.getLogger(__name__)

PROOF_TYPE = "groth16"
PROOF_OPTIONS = {"library": "snarkjs", "curve": "bn128"}
ALREADY_REGISTERED_CODE = "REGISTER_VK_FAILED"


def decode_error(status_code: int, payload) -> RelayerError:
    """Map a relayer error body to a typed exception."""
    if not isinstance(payload, dict):
        return RelayerError(
            f"Relayer returned HTTP {status_code}",
            http_status=status_code,
            payload={"body": payload},
        )

    code = payload.get("code")
    message = str(payload.get("message") or payload.get("error") or f"HTTP {status_code}")
    meta = payload.get("meta") if isinstance(payload.get("meta"), dict) else {}
    vk_hash = meta.get("vkHash")

    # A code, when present, must be the registration one
    already_registered = (
        "already registered" in message.lower() and code in (None, ALREADY_REGISTERED_CODE)
    )
    if vk_hash and already_registered:
        return VkAlreadyRegisteredError(
            vk_hash, message=message, http_status=status_code, code=code, payload=payload
        )
    return RelayerError(message, http_status=status_code, code=code, payload=payload)


class RelayerClient:
    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(
        cls, cfg: Settings = settings, transport: httpx.AsyncBaseTransport | None = None
    ) -> "RelayerClient":
        return cls(
            cfg.relayer_api_url,
            cfg.relayer_api_key,
            timeout=cfg.relayer_timeout_seconds,
            transport=transport,
        )

    async def __aenter__(self) -> "RelayerClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def _path(self, *segments: str) -> str:
        if not self._api_key:
            raise ConfigurationError("Relayer API key not configured")
        return "/" + "/".join([segments[0], self._api_key, *segments[1:]])

    async def _request(self, method: str, path: str, body: dict | None = None) -> dict:
        try:
            resp = await self._client.request(method, path, json=body)
        except httpx.TransportError as exc:
            raise RelayerTransportError(f"Relayer unreachable: {exc!r}") from exc

        try:
            payload = resp.json()
        except ValueError:
            payload = resp.text

        if resp.is_error:
            raise decode_error(resp.status_code, payload)
        if not isinstance(payload, dict):
            raise RelayerError(
                "Relayer returned a non-object response",
                http_status=resp.status_code,
                payload={"body": payload},
            )
        return payload

    async def register_vk(self, verification_key: dict) -> str:
        """Register a verification key and return its relayer-side hash."""
        data = await self._request(
            "POST",
            self._path("register-vk"),
            {"proofType": PROOF_TYPE, "proofOptions": PROOF_OPTIONS, "vk": verification_key},
        )
        meta = data.get("meta") if isinstance(data.get("meta"), dict) else {}
        vk_hash = data.get("vkHash") or meta.get("vkHash")
        if not vk_hash:
            raise RelayerError("Registration response carried no vkHash", payload=data)
        return vk_hash

    async def submit_proof(
        self, artifact: ProofArtifact, vk_hash: str, chain_id: int
    ) -> SubmissionResponse:
        data = await self._request(
            "POST",
            self._path("submit-proof"),
            {
                "proofType": PROOF_TYPE,
                "vkRegistered": True,
                "chainId": chain_id,
                "proofOptions": PROOF_OPTIONS,
                "proofData": {
                    "proof": artifact.proof,
                    "publicSignals": artifact.public_signals,
                    "vk": vk_hash,
                },
            },
        )
        return SubmissionResponse.model_validate(data)

    async def job_status(self, job_id: str) -> JobStatusResponse:
        data = await self._request("GET", self._path("job-status", job_id))
        try:
            return JobStatusResponse.model_validate(data)
        except ValidationError as exc:
            raise RelayerError(f"Malformed job status for {job_id}: {exc}", payload=data) from exc
