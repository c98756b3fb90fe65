"""Trigger workflow runs over HTTP and observe them until they complete."""

from .config import LoggingConfig, RunnerConfig, TestConfiguration, load_test_configuration
from .engine import TriggerPollEngine
from .errors import (
    AsyncResponseTimeoutError,
    ManagementApiError,
    TriggerTimeoutError,
    WorkflowRunnerError,
    WorkflowTimeoutError,
)
from .http_client import HttpClient, HttpResponse
from .management import ManagementApi, WorkflowManagementClient
from .models import ActionStatus, CallbackUrlDefinition, RunDescriptor, WorkflowRunStatus
from .runner import WorkflowTestRunner

__all__ = [
    "ActionStatus",
    "AsyncResponseTimeoutError",
    "CallbackUrlDefinition",
    "HttpClient",
    "HttpResponse",
    "LoggingConfig",
    "ManagementApi",
    "ManagementApiError",
    "RunDescriptor",
    "RunnerConfig",
    "TestConfiguration",
    "TriggerPollEngine",
    "TriggerTimeoutError",
    "WorkflowManagementClient",
    "WorkflowRunStatus",
    "WorkflowRunnerError",
    "WorkflowTestRunner",
    "WorkflowTimeoutError",
    "load_test_configuration",
]
