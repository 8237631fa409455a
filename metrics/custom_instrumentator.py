from prometheus_client import Counter
from prometheus_fastapi_instrumentator import Instrumentator

instrumentator = Instrumentator(
    should_ignore_untemplated=True,      # /foo/123 → /foo/{id}
    excluded_handlers=["/metrics", "/api/v1/health"],
    should_instrument_requests_inprogress=True,
    should_group_status_codes=False,
)

auth_outcomes = Counter(
    "phonegate_auth_outcomes_total",
    "Auth operations by outcome code",
    ["operation", "outcome"],
)


def record_auth_outcome(operation: str, outcome: str) -> None:
    auth_outcomes.labels(operation=operation, outcome=outcome).inc()
