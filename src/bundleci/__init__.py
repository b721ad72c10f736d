from .dsl import action, sh, pipeline
from .runner import run_pipeline
from .model import ExitCode, PipelineInput, RetryPolicy, RunContext, RunResult, SecretBundle, Step
from .desktop import desktop_pipeline

__all__ = [
    "action", "sh", "pipeline", "run_pipeline", "desktop_pipeline",
    "ExitCode", "PipelineInput", "RetryPolicy", "RunContext", "RunResult", "SecretBundle", "Step",
]
