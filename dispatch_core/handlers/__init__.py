from .dispatcher import AttemptOutcome, AttemptRecord, DispatchResult, Dispatcher

__all__ = ["AttemptOutcome", "AttemptRecord", "DispatchResult", "Dispatcher"]
