from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version
from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from kana.config import TelemetrySettings
from kana.telemetry.logging import get_logger

DISTRIBUTION = "kana-voice-chat"

_configured = False


def package_version() -> str:
    try:
        return version(DISTRIBUTION)
    except PackageNotFoundError:
        return "0.0.0+local"


def build_resource(telemetry: TelemetrySettings) -> Resource:
    return Resource.create({SERVICE_NAME: telemetry.service_name, SERVICE_VERSION: package_version()})


def configure_tracing(telemetry: TelemetrySettings) -> bool:
    """Export pipeline spans over OTLP/HTTP when an endpoint is configured.

    Returns whether an exporter is installed. Without one, ``get_tracer``
    hands out the no-op tracer and spans cost nothing.
    """
    global _configured
    logger = get_logger(__name__)
    if _configured:
        return True
    if not telemetry.otlp_endpoint:
        logger.info("tracing.disabled")
        return False

    provider = TracerProvider(resource=build_resource(telemetry))
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=telemetry.otlp_endpoint)))
    trace.set_tracer_provider(provider)
    logger.info(
        "tracing.enabled",
        endpoint=telemetry.otlp_endpoint,
        service_name=telemetry.service_name,
        service_version=package_version(),
    )
    _configured = True
    return True


def get_tracer(name: str) -> Any:
    return trace.get_tracer(name, package_version())


__all__ = ["build_resource", "configure_tracing", "get_tracer", "package_version"]
