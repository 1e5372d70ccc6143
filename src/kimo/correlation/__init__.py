"""Correlation engine: snapshot fetch, join, agent fan-out, response assembly."""

from kimo.correlation.address import AddressResolver
from kimo.correlation.assembler import ResponseAssembler, parse_elapsed_time
from kimo.correlation.context import RequestContext
from kimo.correlation.fanout import AgentFanoutExecutor
from kimo.correlation.fetcher import SnapshotFetcher
from kimo.correlation.joiner import CorrelationJoiner
from kimo.correlation.request import CorrelationRequest

__all__ = [
    "AddressResolver",
    "AgentFanoutExecutor",
    "CorrelationJoiner",
    "CorrelationRequest",
    "RequestContext",
    "ResponseAssembler",
    "SnapshotFetcher",
    "parse_elapsed_time",
]
