from __future__ import annotations

DB_SCHEMA = "pipewatch"

# EventBridge detail-type strings emitted by CodePipeline.
DETAIL_TYPE_PIPELINE = "CodePipeline Pipeline Execution State Change"
DETAIL_TYPE_STAGE = "CodePipeline Stage Execution State Change"
DETAIL_TYPE_ACTION = "CodePipeline Action Execution State Change"
