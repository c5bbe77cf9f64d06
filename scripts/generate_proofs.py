"""Generate, submit and record reputation proofs for every active agent.

Usage:
    python scripts/generate_proofs.py                       # all active agents, one at a time
    python scripts/generate_proofs.py --agent-id ID [...]   # selected agents only
    python scripts/generate_proofs.py --concurrency 4       # run independent agents in parallel

Exits non-zero when any agent failed before a proof record was written.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from agentproof.database import async_session, dispose_engine, init_db  # noqa: E402
from agentproof.services.proof_pipeline import ProofPipeline, run_batch  # noqa: E402

logger = logging.getLogger("generate_proofs")


async def main(agent_ids: list[str] | None, concurrency: int) -> int:
    await init_db()
    try:
        async with ProofPipeline.from_settings() as pipeline:
            report = await run_batch(
                async_session, pipeline, agent_ids=agent_ids, concurrency=concurrency
            )
    finally:
        await dispose_engine()

    print(json.dumps(report.as_dict(), indent=2))
    return 1 if report.errors else 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Batch reputation proof generation")
    parser.add_argument(
        "--agent-id", action="append", dest="agent_ids", help="Agent id (repeatable)"
    )
    parser.add_argument(
        "--concurrency", type=int, default=1, help="Agents processed in parallel (default 1)"
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    sys.exit(asyncio.run(main(args.agent_ids, args.concurrency)))
