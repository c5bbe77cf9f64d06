import logging
import warnings
from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Environment
    environment: str = "development"  # development | test | production

    # Server
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    cors_origins: str = ""  # comma-separated; empty disables CORS

    # Database (sqlite for local dev, postgresql+asyncpg for production)
    database_url: str = "sqlite+aiosqlite:///./data/agentproof.db"

    # Relayer (optimistic verification + aggregation)
    relayer_api_url: str = "https://relayer-api.horizenlabs.io/api/v1"
    relayer_api_key: str = ""
    relayer_chain_id: int = 845320009
    relayer_timeout_seconds: float = 30.0

    # Circuit artifacts
    circuit_name: str = "reputation"
    circuit_build_dir: str = "./circuit/build"
    circuit_wasm_path: str = ""  # defaults to <build>/reputation_js/reputation.wasm
    witness_generator_path: str = ""  # defaults to <build>/reputation_js/generate_witness.js
    circuit_zkey_path: str = ""  # defaults to <build>/reputation.zkey
    verification_key_path: str = ""  # defaults to <build>/verification_key.json
    node_binary: str = "node"
    snarkjs_binary: str = "snarkjs"

    # Local storage
    proof_scratch_dir: str = "./data/proof_scratch"
    proof_artifact_dir: str = "./data/proofs"
    vk_cache_path: str = "./data/vk_cache.json"

    # Aggregation polling
    aggregation_poll_interval_seconds: float = 20.0  # interactive requests
    aggregation_max_attempts: int = 15  # 15 x 20s = 5 minutes
    batch_poll_interval_seconds: float = 30.0
    batch_max_attempts: int = 20  # 20 x 30s = 10 minutes
    aggregation_backoff_factor: float = 1.0  # 1.0 = fixed interval

    # Encoding
    monitoring_window_samples: int = 7  # last-N samples kept on each proof record

    # Scheduled proof generation inside the API process
    proof_schedule_enabled: bool = False
    proof_schedule_interval_hours: float = 24.0

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    def artifact_paths(self) -> dict[str, Path]:
        """Resolve the four circuit artifacts, falling back to the build dir layout."""
        build = Path(self.circuit_build_dir)
        name = self.circuit_name
        return {
            "wasm": Path(self.circuit_wasm_path or build / f"{name}_js" / f"{name}.wasm"),
            "witness_generator": Path(
                self.witness_generator_path or build / f"{name}_js" / "generate_witness.js"
            ),
            "zkey": Path(self.circuit_zkey_path or build / f"{name}.zkey"),
            "verification_key": Path(self.verification_key_path or build / "verification_key.json"),
        }


settings = Settings()

_logger = logging.getLogger("agentproof.config")


def validate_pipeline_config(cfg: Settings) -> None:
    is_prod = cfg.environment.lower() in {"production", "prod"}

    if not cfg.relayer_api_key:
        if is_prod:
            raise RuntimeError(
                "FATAL: RELAYER_API_KEY is not set. "
                "Proofs cannot be submitted for aggregation without a relayer API key."
            )
        warnings.warn(
            "RELAYER_API_KEY is empty. Proof generation works locally but "
            "submission to the relayer will fail until it is configured.",
            stacklevel=1,
        )

    if cfg.aggregation_max_attempts < 1 or cfg.batch_max_attempts < 1:
        raise RuntimeError("Aggregation attempt budgets must be at least 1")

    if cfg.proof_schedule_enabled and cfg.proof_schedule_interval_hours <= 0:
        raise RuntimeError("PROOF_SCHEDULE_INTERVAL_HOURS must be positive")

    if cfg.aggregation_backoff_factor < 1.0:
        _logger.warning(
            "AGGREGATION_BACKOFF_FACTOR=%s shrinks the poll interval; using it anyway.",
            cfg.aggregation_backoff_factor,
        )


validate_pipeline_config(settings)
