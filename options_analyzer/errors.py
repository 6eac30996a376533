from __future__ import annotations


class AnalyzerError(Exception):
    """Base class for every error raised by this package."""


# -------------------------
# Market data
# -------------------------
class ProviderError(AnalyzerError):
    pass


class MalformedPayload(ProviderError):
    """Provider answered, but the body is not a usable time series."""


class RateLimited(MalformedPayload):
    """Upstream throttling (Alpha Vantage 'Note' / 'Information' fields)."""


class InvalidSymbolOrNoData(MalformedPayload):
    pass


class ProviderUnavailable(ProviderError):
    """Transport-level failure: timeout, connection error, non-2xx status."""


class DataUnavailable(AnalyzerError):
    """Primary and fallback providers both failed for a symbol."""


# -------------------------
# Trade ledger
# -------------------------
class TradeLedgerError(AnalyzerError):
    pass


class TradeNotFound(TradeLedgerError, KeyError):
    pass


class TradeClosed(TradeLedgerError):
    pass


class StorageWriteError(TradeLedgerError):
    pass


class StorageFormatError(TradeLedgerError):
    pass


# -------------------------
# Oracle
# -------------------------
class MalformedOracleResponse(AnalyzerError):
    pass
