from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


PUBLIC_SIGNAL_NAMES: tuple[str, ...] = (
    "avgScaled",
    "numRatings",
    "reviewRootHash",
    "claimedUptimeBps",
    "claimedAvgExecTimeMs",
    "claimedReqsPerDay",
    "claimedDeploymentCount",
    "agentId",
    "epochDay",
)


def describe_public_signals(signals: list[str]) -> dict[str, str]:
    """Name each public signal, in circuit output order."""
    return dict(zip(PUBLIC_SIGNAL_NAMES, signals))


class CircuitInput(BaseModel):
    """Fixed-shape input for the reputation circuit.

    Field names serialize to the circuit's camelCase signal names. Every
    ``claimed_*`` value must equal its ``private_*`` counterpart.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    # Private
    ratings: list[str]
    review_hashes: list[str] = Field(alias="reviewHashes")
    private_uptime_bps: str = Field(alias="privateUptimeBps")
    private_avg_exec_time_ms: str = Field(alias="privateAvgExecTimeMs")
    private_reqs_per_day: str = Field(alias="privateReqsPerDay")
    private_deployment_count: str = Field(alias="privateDeploymentCount")

    # Public
    agent_id: str = Field(alias="agentId")
    epoch_day: str = Field(alias="epochDay")
    num_ratings: str = Field(alias="numRatings")
    claimed_uptime_bps: str = Field(alias="claimedUptimeBps")
    claimed_avg_exec_time_ms: str = Field(alias="claimedAvgExecTimeMs")
    claimed_reqs_per_day: str = Field(alias="claimedReqsPerDay")
    claimed_deployment_count: str = Field(alias="claimedDeploymentCount")
    avg_scaled: str = Field(alias="avgScaled")

    def claimed_pairs(self) -> dict[str, tuple[str, str]]:
        """Map each claimed public field to its (claimed, private) values."""
        return {
            "UptimeBps": (self.claimed_uptime_bps, self.private_uptime_bps),
            "AvgExecTimeMs": (self.claimed_avg_exec_time_ms, self.private_avg_exec_time_ms),
            "ReqsPerDay": (self.claimed_reqs_per_day, self.private_reqs_per_day),
            "DeploymentCount": (self.claimed_deployment_count, self.private_deployment_count),
        }

    def to_circuit_json(self) -> dict:
        return self.model_dump(by_alias=True)


class EncodingSnapshot(BaseModel):
    """What the circuit input was built from, frozen at encoding time."""

    model_config = ConfigDict(frozen=True)

    agent_id: str
    review_hashes: list[str]
    uptime_hours: list[float]
    avg_exec_time_ms: list[float]
    request_counts: list[int]
    encoded_at: datetime


class EncodedSubject(BaseModel):
    circuit_input: CircuitInput
    snapshot: EncodingSnapshot


class ProofArtifact(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    proof: dict
    public_signals: list[str] = Field(alias="publicSignals")

    def labelled_signals(self) -> dict[str, str]:
        return describe_public_signals(self.public_signals)


# ---------------------------------------------------------------------------
# Relayer wire payloads
# ---------------------------------------------------------------------------

class SubmissionResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    optimistic_verify: str | None = Field(default=None, alias="optimisticVerify")
    job_id: str | None = Field(default=None, alias="jobId")


class AggregationDetails(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    receipt: str | None = None
    receipt_block_hash: str | None = Field(default=None, alias="receiptBlockHash")
    root: str | None = None
    leaf: str | None = None
    leaf_index: int | None = Field(default=None, alias="leafIndex")
    number_of_leaves: int | None = Field(default=None, alias="numberOfLeaves")


class JobStatusResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    status: str = ""
    tx_hash: str | None = Field(default=None, alias="txHash")
    block_hash: str | None = Field(default=None, alias="blockHash")
    aggregation_id: int | None = Field(default=None, alias="aggregationId")
    aggregation_details: AggregationDetails | None = Field(default=None, alias="aggregationDetails")
    statement: str | None = None


class VerificationKeyRegistration(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    vk_hash: str = Field(alias="vkHash")
    registered_at: datetime = Field(alias="registeredAt")
