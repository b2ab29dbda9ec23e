# Copyright (c) 2025 Keshav
# Licensed under the GNU Affero General Public License v3.0
# See LICENSE file for details.
"""Exception hierarchy for the capacity analytics engine.

Only unexpected errors ever reach the caller of an overview request.
:class:`NoConnectionsConfigured` turns into the empty overview, and
connection and history failures are caught at the fan-out boundary and
reported as reduced data completeness.
"""

from __future__ import annotations


class CapacityAnalyticsError(Exception):
    """Base class for all errors raised by this package."""


class ConfigError(CapacityAnalyticsError):
    """The configuration file or a setting in it is unusable."""


class MetricsClientError(CapacityAnalyticsError):
    """A remote metrics endpoint returned an error or could not be reached."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ConnectionUnreachable(CapacityAnalyticsError):
    """Fetching one connection's inventory failed."""

    def __init__(self, connection_id: str, reason: str) -> None:
        super().__init__(f"Connection '{connection_id}' unreachable: {reason}")
        self.connection_id = connection_id
        self.reason = reason


class HistoryUnavailable(CapacityAnalyticsError):
    """Fetching one node's or storage's historical series failed."""

    def __init__(self, connection_id: str, target: str, reason: str) -> None:
        super().__init__(
            f"History for '{target}' on '{connection_id}' unavailable: {reason}"
        )
        self.connection_id = connection_id
        self.target = target
        self.reason = reason


class NoConnectionsConfigured(CapacityAnalyticsError):
    """The connection registry returned no connections."""


class MalformedSample(CapacityAnalyticsError):
    """A historical sample could not be interpreted.

    Never propagated out of the normalizer; kept so the rejection reason
    has a name in diagnostics.
    """
