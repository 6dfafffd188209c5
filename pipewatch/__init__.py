"""pipewatch: ordered narration of CodePipeline executions."""
