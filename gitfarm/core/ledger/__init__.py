from gitfarm.core.ledger.service import CreditLedger, InsufficientCreditsError

__all__ = ["CreditLedger", "InsufficientCreditsError"]
