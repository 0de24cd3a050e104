"""Lambda handler that forwards CloudWatch Logs subscription events to Datadog."""

from __future__ import annotations

from collections.abc import Mapping
from functools import lru_cache
from typing import Any

from svcutils import env, log
from svcutils.cloudwatch import Processor
from svcutils.datadog_client import LogClient, TCPClient
from svcutils.tags import Tags


def build_tags() -> Tags:
    """Build the tags attached to every forwarded entry from the environment."""
    tags = Tags()
    tags.add_tags_as_string("Enlight software")
    tags.add_tags_as_string(env.get_as_string("TAGS", "").lower())
    tags.add_tag("env", env.get_as_string("STAGE", "sandbox").lower())
    tags.add_tag("aws_account_id", env.get_as_string("AWS_ACCOUNT_ID", ""))
    tags.add_tag("aws_region", env.get_as_string("AWS_REGION", ""))
    tags.add_tag("vsts_release_name", env.get_as_string("VSTS_RELEASE_NAME", ""))
    tags.add_tag("vsts_release_def", env.get_as_string("VSTS_RELEASE_DEF", ""))
    tags.add_tag("vsts_build_number", env.get_as_string("VSTS_BUILD_NUMBER", ""))
    return tags


def default_client() -> TCPClient:
    """Create the Datadog intake client configured by the environment."""
    return TCPClient(
        env.get_as_string("DD_HOST", "lambda-intake.logs.datadoghq.com"),
        env.get_as_string("DD_PORT", "10516"),
        env.must_get_as_string("DD_API_KEY"),
        env.get_as_bool("DD_USE_SSL", True),
    )


@lru_cache(maxsize=None)
def _shared_client() -> TCPClient:
    return default_client()


def handler(event: Mapping[str, Any], client: LogClient | None = None) -> None:
    """Forward the log events of a CloudWatch Logs event, logging any failures."""
    if client is None:
        client = _shared_client()
    aws_logs = event.get("awslogs") or {}
    data = aws_logs.get("data", "") if isinstance(aws_logs, Mapping) else ""

    processor = Processor(env.get_as_string("SERVICE", ""), client).with_tags(build_tags())
    processor.process(data)

    for err in processor.errors():
        log.with_error(err).error("failed to send log events to Datadog")