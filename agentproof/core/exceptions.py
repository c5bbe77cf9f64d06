from fastapi import HTTPException, status


class AgentNotFoundError(HTTPException):
    def __init__(self, agent_id: str):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=f"Agent {agent_id} not found")


class AgentAlreadyExistsError(HTTPException):
    def __init__(self, name: str):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=f"Agent '{name}' already exists")


# ---------------------------------------------------------------------------
# Proof pipeline failures
# ---------------------------------------------------------------------------

class ProofPipelineError(Exception):
    """Base class for every typed failure raised by a pipeline stage."""

    kind = "pipeline"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigurationError(ProofPipelineError):
    kind = "configuration"


class ArtifactNotFoundError(ConfigurationError):
    kind = "artifact_not_found"

    def __init__(self, artifact: str, path):
        super().__init__(f"Circuit {artifact} not found: {path}")
        self.artifact = artifact
        self.path = str(path)


class InputError(ProofPipelineError):
    kind = "input"
    status_code = status.HTTP_400_BAD_REQUEST


class SubjectNotFoundError(InputError):
    kind = "not_found"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, agent_id: str):
        super().__init__(f"Agent {agent_id} not found")
        self.agent_id = agent_id


class ProofNotFoundError(InputError):
    kind = "proof_not_found"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, proof_id: str):
        super().__init__(f"Proof {proof_id} not found")
        self.proof_id = proof_id


class SubmissionNotFoundError(InputError):
    """No proof submitted through this service is known for the job."""

    kind = "submission_not_found"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, job_id: str, agent_id: str):
        super().__init__(f"No proof submitted for agent {agent_id} under job {job_id}")
        self.job_id = job_id
        self.agent_id = agent_id


class WitnessError(ProofPipelineError):
    kind = "witness"
    status_code = 422


class ProvingError(ProofPipelineError):
    kind = "proving"


class RelayerError(ProofPipelineError):
    """Non-success response from the relayer, decoded at the HTTP boundary."""

    kind = "relayer"
    status_code = status.HTTP_502_BAD_GATEWAY

    def __init__(
        self,
        message: str,
        *,
        http_status: int | None = None,
        code: str | None = None,
        payload: dict | None = None,
    ):
        super().__init__(message)
        self.http_status = http_status
        self.code = code
        self.payload = payload or {}


class RelayerTransportError(RelayerError):
    """The request never produced a response (connect/read failure, timeout)."""

    kind = "relayer_transport"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class VkAlreadyRegisteredError(RelayerError):
    """Registration refused because the key is known; the hash is recoverable."""

    kind = "vk_already_registered"

    def __init__(self, vk_hash: str, *, message: str = "Verification key already registered", **kwargs):
        super().__init__(message, **kwargs)
        self.vk_hash = vk_hash


class RegistrationError(ProofPipelineError):
    kind = "registration"
    status_code = status.HTTP_502_BAD_GATEWAY


class OptimisticRejectedError(ProofPipelineError):
    kind = "optimistic_rejected"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, result: str | None, job_id: str | None = None):
        super().__init__(f"Optimistic verification failed (result={result!r})")
        self.result = result
        self.job_id = job_id
