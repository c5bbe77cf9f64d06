from pydantic import BaseModel, ConfigDict, Field


class GenerateProofRequest(BaseModel):
    agent_id: str = Field(..., min_length=1)


class SubmitProofRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    agent_id: str = Field(..., min_length=1)
    proof_id: str = Field(..., pattern=r"^0x[0-9a-fA-F]{64}$")
    proof: dict
    public_signals: list[str] = Field(..., alias="publicSignals", min_length=1)
    chain_id: int | None = Field(default=None, alias="chainId")


class WaitAggregationRequest(BaseModel):
    agent_id: str = Field(..., min_length=1)


class VerifyProofRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    proof: dict
    public_signals: list[str] = Field(..., alias="publicSignals", min_length=1)
