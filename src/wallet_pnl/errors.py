from __future__ import annotations


class WalletPnlError(Exception):
    """Base class for errors raised by the PnL engine."""


class InvalidDateRange(WalletPnlError, ValueError):
    """Date bounds are malformed, inverted, too long, or not a gap-free daily sequence."""


class MalformedUpstreamData(WalletPnlError, ValueError):
    """A venue fill, funding, or account record failed basic parsing."""


AMBIGUOUS_ANCHOR = "AmbiguousAnchor"
UNPRICED_SPOT_BALANCE = "UnpricedSpotBalance"
