"""AWS CodePipeline-backed topology and commit metadata providers.

boto3 is synchronous; calls run in a worker thread so the event loop stays free
while another invocation polls for the same execution lock.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

import boto3
import structlog

from pipewatch.pipeline.topology import (
    ActionLayout,
    CommitMetadata,
    CommitMetadataProvider,
    PipelineTopology,
    StageLayout,
    TopologyProvider,
)

logger = structlog.get_logger()


class CodePipelineTopologyProvider(TopologyProvider):
    """Reads pipeline structure and execution revisions from the CodePipeline API."""

    def __init__(self, *, region: str, client: Any | None = None) -> None:
        self._client = client or boto3.client("codepipeline", region_name=region)

    async def describe_pipeline(
        self, pipeline_name: str, version: int | None = None
    ) -> PipelineTopology:
        params: dict[str, Any] = {"name": pipeline_name}
        if version is not None:
            params["version"] = version
        response = await asyncio.to_thread(self._client.get_pipeline, **params)
        declaration = response["pipeline"]
        topology = PipelineTopology(
            name=declaration.get("name", pipeline_name),
            stages=tuple(
                StageLayout(
                    name=stage["name"],
                    actions=tuple(
                        ActionLayout(name=a["name"], run_order=int(a.get("runOrder", 1)))
                        for a in stage.get("actions", [])
                    ),
                )
                for stage in declaration.get("stages", [])
            ),
        )
        logger.debug(
            "pipeline_described",
            pipeline=pipeline_name,
            version=version,
            stages=[s.name for s in topology.stages],
        )
        return topology

    async def get_artifact_revision(
        self, pipeline_name: str, execution_id: str
    ) -> dict[str, Any] | None:
        response = await asyncio.to_thread(
            self._client.get_pipeline_execution,
            pipelineName=pipeline_name,
            pipelineExecutionId=execution_id,
        )
        revisions = response.get("pipelineExecution", {}).get("artifactRevisions") or []
        return revisions[0] if revisions else None


def _commit_message(summary: str | None) -> str:
    """Extract the commit message from a revision summary.

    CodeStar source connections wrap it as JSON ({"CommitMessage": ...});
    other providers store the message verbatim.
    """
    if not summary:
        return ""
    try:
        parsed = json.loads(summary)
    except json.JSONDecodeError:
        return summary
    if isinstance(parsed, dict):
        return str(parsed.get("CommitMessage", summary))
    return summary


class ArtifactRevisionCommitProvider(CommitMetadataProvider):
    """Builds commit metadata from a CodePipeline artifact revision."""

    async def lookup(
        self, topology: PipelineTopology, revision: dict[str, Any] | None
    ) -> CommitMetadata | None:
        if not revision or not revision.get("revisionId"):
            return None
        return CommitMetadata(
            commit_id=revision["revisionId"],
            summary=_commit_message(revision.get("revisionSummary")),
            url=revision.get("revisionUrl") or "",
        )
