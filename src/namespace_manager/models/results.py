"""Results returned by the lifecycle and monitor jobs."""

from dataclasses import dataclass, field


@dataclass
class BatchResult:
    """Outcome of a batch over store records.

    ``count`` is the number of records processed successfully; ``failures``
    maps the key of every record that failed to the exception it raised.
    """

    count: int = 0
    failures: dict[str, BaseException] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures


@dataclass
class MonitorResult:
    """Outcome of one reconciliation sweep."""

    namespaces: int = 0
    connections_terminated: int = 0
    queues_deleted: int = 0
    exchanges_deleted: int = 0
    notifications_sent: int = 0
    states_collected: int = 0
    failures: dict[str, BaseException] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures
