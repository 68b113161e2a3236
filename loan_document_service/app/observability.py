from loan_document_service.app.config import settings
import logging
from opentelemetry import trace, metrics
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader, ConsoleMetricExporter
from opentelemetry.sdk.resources import Resource, SERVICE_NAME as ResourceAttributesServiceName
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from pythonjsonlogger import jsonlogger


logger = logging.getLogger("loan_document_service")

def setup_json_logging():
    root_logger = logging.getLogger()
    if any(isinstance(h.formatter, jsonlogger.JsonFormatter) for h in root_logger.handlers):
        return
    logHandler = logging.StreamHandler()
    formatter = jsonlogger.JsonFormatter(
        fmt="%(asctime)s %(levelname)s %(name)s %(module)s %(funcName)s %(lineno)d %(otelTraceID)s %(otelSpanID)s %(message)s",
        rename_fields={"levelname": "level", "name": "logger_name", "asctime": "timestamp"},
    )
    logHandler.setFormatter(formatter)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    root_logger.addHandler(logHandler)
    log_level = settings.LOG_LEVEL.upper()
    root_logger.setLevel(log_level)
    logger.setLevel(log_level)
    logger.info(f"JSON logging configured at level {log_level}.")

METRIC_EXPORT_INTERVAL_MILLIS = 5000

def _build_tracer_provider(resource: Resource) -> TracerProvider:
    provider = TracerProvider(resource=resource)
    exporters = [ConsoleSpanExporter()]
    endpoint = settings.OTEL_EXPORTER_OTLP_TRACES_ENDPOINT
    if endpoint:
        logger.info(f"Exporting spans over OTLP to {endpoint}.")
        exporters.append(OTLPSpanExporter(endpoint=endpoint, insecure=True))
    for exporter in exporters:
        provider.add_span_processor(BatchSpanProcessor(exporter))
    return provider

def _build_meter_provider(resource: Resource) -> MeterProvider:
    exporters = [ConsoleMetricExporter()]
    endpoint = settings.OTEL_EXPORTER_OTLP_METRICS_ENDPOINT
    if endpoint:
        logger.info(f"Exporting metrics over OTLP to {endpoint}.")
        exporters.append(OTLPMetricExporter(endpoint=endpoint, insecure=True))
    readers = [
        PeriodicExportingMetricReader(exporter, export_interval_millis=METRIC_EXPORT_INTERVAL_MILLIS)
        for exporter in exporters
    ]
    return MeterProvider(resource=resource, metric_readers=readers)

def setup_opentelemetry(service_name: str):
    """Installs the global tracer and meter providers. Console exporters are always on; OTLP is added when configured."""
    resource = Resource(attributes={ResourceAttributesServiceName: service_name})
    trace.set_tracer_provider(_build_tracer_provider(resource))
    metrics.set_meter_provider(_build_meter_provider(resource))
    logger.info(f"OpenTelemetry tracing and metrics configured for service: {service_name}.")

# Call at module load time
setup_json_logging()

# --- Tracer and Meter instances ---
# Globally available after setup_opentelemetry is called by an entry point.
tracer = trace.get_tracer("loan_document_service.tracer")
meter = metrics.get_meter("loan_document_service.meter")

# --- Custom Metrics Definitions ---
batches_created_counter = meter.create_counter(
    name="loan_documents.batches.created.total",
    description="Counts consent batches created.",
    unit="1"
)

otp_verifications_counter = meter.create_counter(
    name="loan_documents.otp.verifications.total",
    description="Counts OTP verification attempts, partitioned by result.",
    unit="1"
)

documents_generated_counter = meter.create_counter(
    name="loan_documents.documents.generated.total",
    description="Counts documents generated by the generation worker, partitioned by bank.",
    unit="1"
)

batches_finished_counter = meter.create_counter(
    name="loan_documents.batches.finished.total",
    description="Counts batches reaching a terminal processing state, partitioned by status.",
    unit="1"
)

batch_generation_duration_histogram = meter.create_histogram(
    name="loan_documents.batch.generation.duration.seconds",
    description="Measures wall-clock duration of document generation for a batch.",
    unit="s"
)
logger.info("Custom metrics (Counters, Histogram) defined in observability.py.")
