import threading
from collections import defaultdict
from typing import Dict, List


class MetricsTracker:
    """
    In-process counters for requests, inference attempts and document outcomes.

    Thread-safe: request middleware, the event loop and local-pipeline worker
    threads all record into the same tracker.
    """

    def __init__(self):

        self._lock = threading.Lock()

        self._metrics = {

            "total_requests": 0,
            "successful_requests": 0,
            "failed_requests": 0,

            "total_latency": 0.0,
            "avg_latency": 0.0,

            "latencies": [],

            "inference": {
                "calls": defaultdict(int),
                "failures": defaultdict(int),
                "failures_by_kind": defaultdict(int),
                "latencies": [],
            },

            "documents": defaultdict(int),
        }


    def record_success(self, latency: float):

        with self._lock:

            self._metrics["total_requests"] += 1

            self._metrics["successful_requests"] += 1

            self._metrics["total_latency"] += latency

            self._metrics["avg_latency"] = (
                self._metrics["total_latency"]
                / self._metrics["total_requests"]
            )

            self._metrics["latencies"].append(latency)


    def record_failure(self):

        with self._lock:

            self._metrics["total_requests"] += 1

            self._metrics["failed_requests"] += 1


    def record_inference_success(self, model: str, latency: float):

        with self._lock:

            inference = self._metrics["inference"]

            inference["calls"][model] += 1

            inference["latencies"].append(latency)


    def record_inference_failure(self, model: str, kind: str):

        with self._lock:

            inference = self._metrics["inference"]

            inference["calls"][model] += 1

            inference["failures"][model] += 1

            inference["failures_by_kind"][kind] += 1


    def record_document_outcome(self, status: str):

        with self._lock:

            self._metrics["documents"][status] += 1


    def get_metrics(self) -> Dict:

        with self._lock:

            inference = self._metrics["inference"]

            return {
                "total_requests": self._metrics["total_requests"],
                "successful_requests": self._metrics["successful_requests"],
                "failed_requests": self._metrics["failed_requests"],
                "avg_latency": self._metrics["avg_latency"],
                "p95_latency": _percentile(self._metrics["latencies"], 95),
                "inference": {
                    "calls": dict(inference["calls"]),
                    "failures": dict(inference["failures"]),
                    "failures_by_kind": dict(inference["failures_by_kind"]),
                    "p95_latency": _percentile(inference["latencies"], 95),
                },
                "documents": dict(self._metrics["documents"]),
            }


def _percentile(values: List[float], percentile: float) -> float:

    if not values:
        return 0.0

    sorted_values = sorted(values)

    index = int(len(sorted_values) * percentile / 100)

    index = min(index, len(sorted_values) - 1)

    return sorted_values[index]
