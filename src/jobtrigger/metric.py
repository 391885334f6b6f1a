from prometheus_client import Counter, CollectorRegistry, push_to_gateway

from jobtrigger import config

presubmit_filter_counter = Counter(
    "jobtrigger_presubmit_filter_total",
    "Presubmits evaluated by a filter, by outcome",
    labelnames=["outcome"],
)

filter_chain_counter = Counter(
    "jobtrigger_filter_chain_total",
    "Filters added to a command's filter chain",
    labelnames=["filter"],
)

dependency_error_counter = Counter(
    "jobtrigger_dependency_error_total",
    "Failures of the context resolver or eligibility checks",
    labelnames=["source"],
)

push_registry = CollectorRegistry()

api_call_count = Counter(
    "jobtrigger_num_api_calls",
    "Total number of GitHub API calls",
    registry=push_registry,
)


def push_metrics(job: str = "jobtrigger") -> bool:
    if config.PUSH_GATEWAY is None:
        return False
    push_to_gateway(config.PUSH_GATEWAY, job=job, registry=push_registry)
    return True
