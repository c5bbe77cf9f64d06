from agentproof.models.agent import Agent
from agentproof.models.review import Review
from agentproof.models.monitoring import MonitoringSample
from agentproof.models.employment import Employment
from agentproof.models.proof import ProofRecord

__all__ = [
    "Agent",
    "Review",
    "MonitoringSample",
    "Employment",
    "ProofRecord",
]
